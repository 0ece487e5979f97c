"""Chunked LLM extraction with usage accounting, async jobs and webhooks."""

__version__ = "0.1.0"
