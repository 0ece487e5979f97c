"""Process-wide logging setup for the extraction service."""

from __future__ import annotations

import logging

_ROOT_LOGGER_NAME = "llmextract"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Configure and return the package logger.

    Safe to call repeatedly; the stream handler is attached only once. When
    ``level`` is omitted the configured ``LOG_LEVEL`` setting is used.
    """

    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    if level is None:
        from ..config import get_settings

        level = get_settings().log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    if not any(getattr(handler, "_llmextract", False) for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._llmextract = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger


__all__ = ["configure_logging"]
