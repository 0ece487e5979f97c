"""OpenRouter (OpenAI-compatible) chat-completions transport built on httpx."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from ..config import Settings, get_settings
from ..errors import (
    AuthError,
    MalformedResponse,
    ProviderError,
    ProviderTimeout,
    RateLimited,
)
from ..llm_client import LLMRequest, LLMResponse

LOGGER = logging.getLogger(__name__)

_TIMEOUT_STATUSES = {408, 504}
_AUTH_STATUSES = {401, 403}


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, Mapping):
        error = payload.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
        if error:
            return str(error)
    return response.text[:200]


def raise_for_provider_status(response: httpx.Response) -> None:
    """Translate an HTTP error status into the provider error taxonomy."""

    status = response.status_code
    if status < 400:
        return
    detail = f"HTTP {status}: {_error_detail(response)}"
    if status in _AUTH_STATUSES:
        raise AuthError(detail, status_code=status)
    if status == 429:
        raise RateLimited(
            detail,
            status_code=status,
            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
        )
    if status in _TIMEOUT_STATUSES:
        raise ProviderTimeout(detail, status_code=status)
    raise ProviderError(detail, status_code=status)


def parse_completion(payload: Any, *, model: str) -> LLMResponse:
    """Extract message content and raw usage from a chat-completions body."""

    if not isinstance(payload, Mapping):
        raise MalformedResponse("Completion body is not a JSON object")
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise MalformedResponse("Completion body is missing choices[0].message.content") from exc
    if not isinstance(content, str):
        raise MalformedResponse("Completion content is not text")
    usage = payload.get("usage")
    return LLMResponse(
        content=content,
        model=str(payload.get("model") or model),
        usage=usage if isinstance(usage, Mapping) else None,
    )


class OpenRouterTransport:
    """Awaitable transport posting chat-completion requests to OpenRouter."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "OpenRouterTransport":
        settings = settings or get_settings()
        return cls(api_key=settings.openrouter_api_key, base_url=settings.openrouter_base_url)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "X-Title": "llmextract",
            "Content-Type": "application/json",
        }

    async def __call__(self, request: LLMRequest) -> LLMResponse:
        if not self._api_key:
            raise AuthError("OPENROUTER_API_KEY is not configured")

        body: dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            **request.params,
        }
        url = f"{self._base_url}/chat/completions"
        LOGGER.debug("[openrouter] POST %s model=%s", url, request.model)

        try:
            if self._client is not None:
                response = await self._client.post(
                    url, headers=self._headers(), json=body, timeout=request.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=httpx.Timeout(request.timeout)) as client:
                    response = await client.post(url, headers=self._headers(), json=body)
        except httpx.TimeoutException as exc:
            raise ProviderTimeout(f"Provider request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Provider request failed: {exc}") from exc

        raise_for_provider_status(response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponse("Provider returned a non-JSON body") from exc
        return parse_completion(payload, model=request.model)


__all__ = ["OpenRouterTransport", "parse_completion", "raise_for_provider_status"]
