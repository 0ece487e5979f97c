"""Pydantic schemas used by the extraction API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExtractionOptions(BaseModel):
    """Options shared by synchronous and asynchronous extraction requests."""

    instruction: str = Field(default="", max_length=20_000)
    json_schema: Optional[Dict[str, Any]] = Field(default=None, alias="schema")
    chunk_tokens: Optional[int] = Field(default=None, gt=0)
    overlap_tokens: Optional[int] = Field(default=None, ge=0)
    concurrency: Optional[int] = Field(default=None, gt=0, le=32)
    max_retries: Optional[int] = Field(default=None, ge=0, le=10)

    model_config = {
        "populate_by_name": True,
    }

    def job_request(self) -> Dict[str, Any]:
        """Options as persisted on the job record."""

        return {
            "instruction": self.instruction,
            "schema": self.json_schema,
            "chunk_tokens": self.chunk_tokens,
            "overlap_tokens": self.overlap_tokens,
            "concurrency": self.concurrency,
            "max_retries": self.max_retries,
        }


class ExtractRequest(ExtractionOptions):
    """Synchronous extraction over one or more URLs."""

    urls: List[str] = Field(min_length=1, max_length=50)
    contents: Optional[Dict[str, str]] = None


class WebhookIn(BaseModel):
    url: str = Field(min_length=1)
    secret: Optional[str] = None
    max_retries: Optional[int] = Field(default=None, ge=0, le=20)


class JobCreateRequest(ExtractionOptions):
    """Asynchronous extraction job for a single URL or inline content."""

    url: str = Field(min_length=1)
    content: Optional[str] = None
    webhook: Optional[WebhookIn] = None

    def job_request(self) -> Dict[str, Any]:
        payload = super().job_request()
        if self.content is not None:
            payload["content"] = self.content
        return payload
