"""HTTP surface for extraction requests and job management."""
