"""SQLModel table definitions for asynchronous extraction jobs."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(UTC)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        JobStatus.COMPLETED,
        JobStatus.PARTIALLY_COMPLETED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
    }
)


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"


class ExtractionJob(SQLModel, table=True):
    """Lifecycle record of one asynchronous extraction request."""

    __tablename__ = "extraction_jobs"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    status: str = Field(default=JobStatus.PENDING.value, nullable=False, index=True)
    input_ref: str = Field(nullable=False)
    request_json: dict = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, server_default="{}"),
    )
    webhook_url: Optional[str] = Field(default=None)
    webhook_secret: Optional[str] = Field(default=None)
    webhook_max_retries: Optional[int] = Field(default=None)
    result_json: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    error_msg: Optional[str] = Field(default=None)
    delivery_status: Optional[str] = Field(default=None)
    delivery_attempts: int = Field(default=0, nullable=False)
    delivery_error: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)

    @property
    def job_status(self) -> JobStatus:
        return JobStatus(self.status)

    @property
    def has_webhook(self) -> bool:
        return bool(self.webhook_url)


__all__ = ["DeliveryStatus", "ExtractionJob", "JobStatus", "TERMINAL_STATUSES"]
