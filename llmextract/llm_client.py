"""Minimal LLM client abstraction used by the extraction pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional


@dataclass
class LLMRequest:
    """Parameters for an LLM completion call."""

    model: str
    messages: List[Dict[str, str]]
    timeout: float
    max_tokens: int
    temperature: float = 0.0
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LLMResponse:
    """Provider reply: message content plus the raw ``usage`` mapping, if any."""

    content: str
    model: str
    usage: Optional[Mapping[str, Any]] = None


Transport = Callable[[LLMRequest], Awaitable[LLMResponse]]


class LLMClient:
    """Simple, awaitable LLM client wrapper."""

    def __init__(self, transport: Optional[Transport] = None) -> None:
        self._transport = transport or self._default_transport

    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Execute the request using the configured transport."""

        return await self._transport(request)

    async def _default_transport(self, request: LLMRequest) -> LLMResponse:  # pragma: no cover - guidance
        """Default transport raises to signal missing integration."""

        raise RuntimeError(
            "No LLM transport configured. Provide a transport implementation when "
            "constructing LLMClient."
        )


def create_default_client() -> LLMClient:
    """Factory returning an ``LLMClient`` backed by the OpenRouter transport."""

    from .services.openrouter_client import OpenRouterTransport

    return LLMClient(transport=OpenRouterTransport.from_settings())
