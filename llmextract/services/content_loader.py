"""Fetch plain document text for a URL."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

import httpx

LOGGER = logging.getLogger(__name__)

ContentLoader = Callable[[str], Awaitable[str]]


class ContentLoadError(RuntimeError):
    """Raised when the source content for a URL cannot be retrieved."""


async def fetch_text(url: str, *, timeout_s: float = 30.0) -> str:
    """Return the response body of ``url`` as text.

    No rendering or HTML conversion happens here; callers needing that pass
    already-normalised content instead.
    """

    try:
        async with httpx.AsyncClient(timeout=timeout_s, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise ContentLoadError(f"Could not load {url}: {exc}") from exc
    LOGGER.debug("[loader] fetched url=%s bytes=%s", url, len(response.content))
    return response.text


__all__ = ["ContentLoadError", "ContentLoader", "fetch_text"]
