"""Single-chunk extraction call: prompt, invoke the provider, normalise the reply."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..chunking import TextChunk
from ..config import Settings, get_settings
from ..errors import MalformedResponse
from ..llm_client import LLMClient, LLMRequest, create_default_client
from ..usage import TokenUsage
from . import prompt
from .models import ExtractionTask

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    model: str
    temperature: float = 0.0
    max_tokens: int = 2048
    timeout_s: float = 120.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ProviderConfig":
        settings = settings or get_settings()
        return cls(
            model=settings.extract_llm_model,
            temperature=settings.extract_llm_temperature,
            max_tokens=settings.extract_llm_max_tokens,
            timeout_s=settings.extract_llm_timeout_s,
        )


@dataclass(frozen=True, slots=True)
class CallOutcome:
    content: Any
    usage: TokenUsage


class ExtractionCaller:
    """Invoke the provider once for one chunk.

    This is the only place that sees provider-shaped responses; callers get
    parsed content plus a normalised :class:`TokenUsage`, or a
    :class:`~llmextract.errors.ProviderCallError` subclass.
    """

    def __init__(
        self,
        *,
        client: LLMClient | None = None,
        provider: ProviderConfig | None = None,
    ) -> None:
        self._client = client or create_default_client()
        self._provider = provider or ProviderConfig.from_settings()

    @property
    def provider(self) -> ProviderConfig:
        return self._provider

    async def extract(self, chunk: TextChunk, task: ExtractionTask) -> CallOutcome:
        messages = prompt.build_messages(
            instruction=task.instruction,
            chunk_text=chunk.text,
            chunk_index=chunk.index,
            chunk_total=chunk.total,
            schema=task.schema,
        )
        request = LLMRequest(
            model=self._provider.model,
            messages=messages,
            timeout=self._provider.timeout_s,
            max_tokens=self._provider.max_tokens,
            temperature=self._provider.temperature,
        )
        response = await self._client.complete(request)
        usage = TokenUsage.from_provider(response.usage)
        content = self._parse_content(response.content, task, usage)
        LOGGER.debug(
            "[caller] chunk=%s/%s parsed reply usage=%s",
            chunk.index,
            chunk.total,
            usage.availability.value,
        )
        return CallOutcome(content=content, usage=usage)

    @staticmethod
    def _parse_content(raw: str, task: ExtractionTask, usage: TokenUsage) -> Any:
        if task.schema is None:
            try:
                return prompt.parse_payload(raw)
            except ValueError:
                return raw.strip()
        try:
            payload = prompt.parse_payload(raw)
            prompt.check_schema(payload, task.schema)
        except ValueError as exc:
            raise MalformedResponse(str(exc), usage=usage) from exc
        return payload


__all__ = ["CallOutcome", "ExtractionCaller", "ProviderConfig"]
