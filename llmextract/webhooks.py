"""Webhook delivery of terminal job results with bounded retries.

Payloads are signed with HMAC-SHA256 when a secret is configured, and every
attempt for one job carries the same ``X-Webhook-Delivery`` id so receivers
can drop duplicates.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx

from .config import Settings, get_settings
from .errors import WebhookDeliveryError

LOGGER = logging.getLogger(__name__)

DELIVERY_HEADER = "X-Webhook-Delivery"
ATTEMPT_HEADER = "X-Webhook-Attempt"
SIGNATURE_HEADER = "X-Webhook-Signature"


@dataclass(frozen=True, slots=True)
class WebhookConfig:
    url: str
    secret: Optional[str] = None
    max_retries: Optional[int] = None


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    delivered: bool
    attempts: int
    status_code: Optional[int] = None
    error: Optional[str] = None


def canonical_body(payload: Mapping[str, Any]) -> bytes:
    """Serialise ``payload`` deterministically; the signature covers these bytes."""

    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def sign_body(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def build_payload(
    *,
    task_id: str,
    status: str,
    urls: list[str],
    result: Any,
    token_usage: Mapping[str, Any] | None,
    task_type: str = "llm_extraction",
) -> Dict[str, Any]:
    return {
        "task_id": task_id,
        "task_type": task_type,
        "status": status,
        "urls": urls,
        "result": result,
        "token_usage": token_usage,
    }


class WebhookDispatcher:
    """POST job results to a callback URL with at-least-once semantics."""

    def __init__(
        self,
        *,
        timeout_s: float | None = None,
        max_retries: int | None = None,
        backoff_s: float | None = None,
        max_backoff_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._timeout_s = timeout_s or settings.webhook_timeout_s
        self._max_retries = max_retries if max_retries is not None else settings.webhook_retry_max
        self._backoff_s = backoff_s if backoff_s is not None else settings.webhook_backoff_s
        self._max_backoff_s = (
            max_backoff_s if max_backoff_s is not None else settings.webhook_backoff_max_s
        )
        self._transport = transport
        self._sleep = sleep

    def _headers(self, config: WebhookConfig, delivery_id: str, attempt: int, body: bytes) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            DELIVERY_HEADER: delivery_id,
            ATTEMPT_HEADER: str(attempt),
        }
        if config.secret:
            headers[SIGNATURE_HEADER] = sign_body(body, config.secret)
        return headers

    async def deliver(
        self,
        config: WebhookConfig,
        payload: Mapping[str, Any],
        *,
        delivery_id: str,
    ) -> DeliveryOutcome:
        """Send ``payload`` until a 2xx response or retries run out.

        Never raises for delivery failures; the returned outcome says what
        happened.
        """

        max_retries = config.max_retries if config.max_retries is not None else self._max_retries
        body = canonical_body(payload)
        attempts = 0
        status_code: int | None = None
        error: str | None = None

        async with httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport) as client:
            for attempt in range(max_retries + 1):
                attempts += 1
                try:
                    response = await client.post(
                        config.url,
                        content=body,
                        headers=self._headers(config, delivery_id, attempts, body),
                    )
                except httpx.HTTPError as exc:
                    status_code = None
                    error = f"{exc.__class__.__name__}: {exc}"
                else:
                    status_code = response.status_code
                    if 200 <= status_code < 300:
                        LOGGER.info(
                            "[webhook] delivered job=%s url=%s attempts=%s",
                            delivery_id,
                            config.url,
                            attempts,
                        )
                        return DeliveryOutcome(delivered=True, attempts=attempts, status_code=status_code)
                    error = f"HTTP {status_code}"

                LOGGER.warning(
                    "[webhook] attempt=%s for job=%s failed: %s", attempts, delivery_id, error
                )
                if attempt < max_retries:
                    delay = min(self._backoff_s * (2 ** attempt), self._max_backoff_s)
                    await self._sleep(delay)

        failure = WebhookDeliveryError(
            f"Webhook delivery for job {delivery_id} abandoned after {attempts} attempts: {error}"
        )
        LOGGER.error("[webhook] %s", failure)
        return DeliveryOutcome(delivered=False, attempts=attempts, status_code=status_code, error=error)


__all__ = [
    "DeliveryOutcome",
    "WebhookConfig",
    "WebhookDispatcher",
    "build_payload",
    "canonical_body",
    "sign_body",
]
