from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from llmextract.config import Settings, get_settings, reset_settings_cache
from llmextract.utils.logging import configure_logging


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXTRACT_CHUNK_TOKENS", "512")
    monkeypatch.setenv("WEBHOOK_RETRY_MAX", "2")
    reset_settings_cache()

    settings = get_settings()

    assert settings.extract_chunk_tokens == 512
    assert settings.webhook_retry_max == 2
    assert settings.extract_llm_model == "mock-model"
    assert get_settings() is settings


def test_blank_values_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXTRACT_CONCURRENCY", "   ")

    assert Settings.from_env().extract_concurrency == Settings().extract_concurrency


def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXTRACT_CONCURRENCY", "0")

    with pytest.raises(ValidationError):
        Settings.from_env()


def test_configure_logging_is_idempotent() -> None:
    logger = configure_logging("debug")
    configure_logging("warning")

    tagged = [handler for handler in logger.handlers if getattr(handler, "_llmextract", False)]
    assert len(tagged) == 1
    assert logger.level == logging.WARNING
