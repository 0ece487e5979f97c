"""Persistent job store enforcing the extraction job state machine."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Iterator, Mapping

from sqlalchemy import desc, update
from sqlmodel import Session, select

from ..errors import AlreadyTerminal, InvalidTransition, JobNotFound
from ..extraction.models import AggregateResult, OverallStatus
from ..webhooks import DeliveryOutcome, WebhookConfig
from . import get_engine, init_db
from .models import DeliveryStatus, ExtractionJob, JobStatus

LOGGER = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset(
        {
            JobStatus.COMPLETED,
            JobStatus.PARTIALLY_COMPLETED,
            JobStatus.FAILED,
            JobStatus.CANCELLED,
        }
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.PARTIALLY_COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

_STATUS_FOR_OUTCOME = {
    OverallStatus.SUCCESS: JobStatus.COMPLETED,
    OverallStatus.PARTIAL: JobStatus.PARTIALLY_COMPLETED,
    OverallStatus.FAILED: JobStatus.FAILED,
}


def status_for_result(result: AggregateResult) -> JobStatus:
    """Map an aggregate outcome onto the terminal job status."""

    return _STATUS_FOR_OUTCOME[result.overall_status]


class JobStore:
    """Sole writer of ``ExtractionJob.status`` and ``ExtractionJob.result_json``.

    Transitions use a compare-and-swap on the current status so two writers
    racing on the same job cannot both succeed.
    """

    def __init__(self, engine=None) -> None:
        if engine is None:
            init_db()
            engine = get_engine()
        self._engine = engine

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = Session(self._engine, expire_on_commit=False)
        try:
            yield session
        finally:
            session.close()

    def create(
        self,
        input_ref: str,
        webhook_config: WebhookConfig | None = None,
        *,
        request: Mapping[str, Any] | None = None,
    ) -> ExtractionJob:
        job = ExtractionJob(input_ref=input_ref, request_json=dict(request or {}))
        if webhook_config is not None:
            job.webhook_url = webhook_config.url
            job.webhook_secret = webhook_config.secret
            job.webhook_max_retries = webhook_config.max_retries
        with self._session() as session:
            session.add(job)
            session.commit()
            session.refresh(job)
        LOGGER.info("[jobs] created job=%s input=%s", job.id, input_ref)
        return job

    def get(self, job_id: str) -> ExtractionJob:
        with self._session() as session:
            job = session.get(ExtractionJob, job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def list_jobs(self, *, status: JobStatus | None = None, limit: int = 50) -> list[ExtractionJob]:
        with self._session() as session:
            statement = select(ExtractionJob).order_by(desc(ExtractionJob.created_at))
            if status is not None:
                statement = statement.where(ExtractionJob.status == status.value)
            return list(session.exec(statement.limit(limit)).all())

    def transition(
        self,
        job_id: str,
        new_status: JobStatus,
        result: AggregateResult | None = None,
        *,
        error: str | None = None,
    ) -> ExtractionJob:
        """Move ``job_id`` to ``new_status`` if the state machine allows it."""

        current = self.get(job_id).job_status
        if new_status not in _ALLOWED_TRANSITIONS[current]:
            raise InvalidTransition(job_id, current.value, new_status.value)

        values: dict[str, Any] = {"status": new_status.value, "updated_at": datetime.now(UTC)}
        if result is not None:
            values["result_json"] = result.to_dict()
        if error is not None:
            values["error_msg"] = error

        statement = (
            update(ExtractionJob)
            .where(ExtractionJob.id == job_id)
            .where(ExtractionJob.status == current.value)
            .values(**values)
        )
        with self._engine.begin() as connection:
            swapped = connection.execute(statement).rowcount
        if swapped != 1:
            latest = self.get(job_id).job_status
            raise InvalidTransition(job_id, latest.value, new_status.value)

        LOGGER.info("[jobs] job=%s %s -> %s", job_id, current.value, new_status.value)
        return self.get(job_id)

    def complete(self, job_id: str, result: AggregateResult) -> ExtractionJob:
        """Commit ``result`` and the terminal status it implies."""

        return self.transition(job_id, status_for_result(result), result)

    def cancel(self, job_id: str) -> ExtractionJob:
        """Move a non-terminal job to ``cancelled``.

        A lost compare-and-swap is retried against the fresh status; only a
        job that has become terminal raises ``AlreadyTerminal``. Statuses move
        forward only, so the loop ends after a handful of rounds at most.
        """

        while True:
            current = self.get(job_id).job_status
            if current.terminal:
                raise AlreadyTerminal(job_id, current.value, JobStatus.CANCELLED.value)
            try:
                return self.transition(job_id, JobStatus.CANCELLED)
            except InvalidTransition as exc:
                LOGGER.info(
                    "[jobs] job=%s moved to %s during cancel; retrying", job_id, exc.current
                )

    def record_delivery(self, job_id: str, outcome: DeliveryOutcome) -> ExtractionJob:
        """Store webhook delivery bookkeeping; never touches ``status``."""

        with self._session() as session:
            job = session.get(ExtractionJob, job_id)
            if job is None:
                raise JobNotFound(job_id)
            job.delivery_status = (
                DeliveryStatus.DELIVERED.value if outcome.delivered else DeliveryStatus.FAILED.value
            )
            job.delivery_attempts = outcome.attempts
            job.delivery_error = outcome.error
            session.add(job)
            session.commit()
            session.refresh(job)
        return job


__all__ = ["JobStore", "status_for_result"]
