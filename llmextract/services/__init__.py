"""Outbound collaborators: LLM transport and content loading."""
