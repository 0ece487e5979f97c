"""Background execution of extraction jobs and webhook notification."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from ..errors import (
    ChunkingError,
    ExtractionCancelled,
    InvalidTransition,
    JobNotFound,
)
from ..extraction.caller import ExtractionCaller
from ..extraction.models import AggregateResult, ExtractionTask
from ..extraction.orchestrator import OrchestratorConfig, extract_document
from ..services.content_loader import ContentLoader, ContentLoadError, fetch_text
from ..webhooks import WebhookConfig, WebhookDispatcher, build_payload
from .models import ExtractionJob, JobStatus
from .store import JobStore

LOGGER = logging.getLogger(__name__)


def result_payload(job: ExtractionJob) -> dict[str, Any] | None:
    """Public result shape for a job, matching the synchronous endpoint."""

    if not job.result_json:
        return None
    aggregate = AggregateResult.from_dict(job.result_json)
    return aggregate_payload(job.input_ref, aggregate)


def aggregate_payload(url: str, aggregate: AggregateResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "url": url,
        "success": aggregate.success,
        "status": aggregate.overall_status.value,
        "extracted_content": aggregate.extracted_content(),
        "chunks": [chunk.to_dict() for chunk in aggregate.chunks],
    }
    token_usage = aggregate.token_usage()
    if token_usage is not None:
        payload["token_usage"] = token_usage
    return payload


class JobRunner:
    """Drive jobs from ``pending`` to a terminal state.

    Holds one cancellation event per job currently running in this process.
    """

    def __init__(
        self,
        store: JobStore,
        *,
        caller: ExtractionCaller | None = None,
        dispatcher: WebhookDispatcher | None = None,
        loader: ContentLoader = fetch_text,
    ) -> None:
        self._store = store
        self._caller = caller
        self._dispatcher = dispatcher
        self._loader = loader
        self._active: dict[str, asyncio.Event] = {}

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def caller(self) -> ExtractionCaller:
        if self._caller is None:
            self._caller = ExtractionCaller()
        return self._caller

    @property
    def loader(self) -> ContentLoader:
        return self._loader

    def submit(
        self,
        input_ref: str,
        *,
        request: Mapping[str, Any],
        webhook: WebhookConfig | None = None,
    ) -> ExtractionJob:
        return self._store.create(input_ref, webhook, request=request)

    def is_running(self, job_id: str) -> bool:
        return job_id in self._active

    async def run(self, job_id: str) -> ExtractionJob:
        """Execute ``job_id`` and return its terminal record."""

        try:
            job = self._store.transition(job_id, JobStatus.RUNNING)
        except InvalidTransition as exc:
            LOGGER.info("[jobs] job=%s not started: %s", job_id, exc)
            return self._store.get(job_id)

        cancel_event = asyncio.Event()
        self._active[job_id] = cancel_event
        try:
            job = await self._execute(job, cancel_event)
        finally:
            self._active.pop(job_id, None)

        await self.notify(job)
        return job

    async def _execute(self, job: ExtractionJob, cancel_event: asyncio.Event) -> ExtractionJob:
        request = job.request_json or {}
        task = ExtractionTask(
            instruction=str(request.get("instruction") or ""),
            schema=request.get("schema"),
        )
        try:
            text = request.get("content")
            if text is None:
                text = await self._loader(job.input_ref)
            aggregate = await extract_document(
                text,
                task,
                caller=self.caller,
                config=OrchestratorConfig.from_settings(
                    concurrency=request.get("concurrency"),
                    max_retries=request.get("max_retries"),
                ),
                chunk_tokens=request.get("chunk_tokens"),
                overlap_tokens=request.get("overlap_tokens"),
                cancel_event=cancel_event,
            )
        except ExtractionCancelled:
            LOGGER.info("[jobs] job=%s drained after cancellation", job.id)
            return self._store.get(job.id)
        except (ChunkingError, ContentLoadError) as exc:
            LOGGER.warning("[jobs] job=%s failed before extraction: %s", job.id, exc)
            return self._finish(job.id, JobStatus.FAILED, error=str(exc))
        except Exception as exc:  # pragma: no cover - unexpected failure
            LOGGER.exception("[jobs] job=%s crashed", job.id)
            return self._finish(job.id, JobStatus.FAILED, error=str(exc) or exc.__class__.__name__)

        return self._finish(job.id, None, result=aggregate)

    def _finish(
        self,
        job_id: str,
        status: JobStatus | None,
        *,
        result: AggregateResult | None = None,
        error: str | None = None,
    ) -> ExtractionJob:
        try:
            if result is not None:
                return self._store.complete(job_id, result)
            return self._store.transition(job_id, status, error=error)
        except InvalidTransition as exc:
            # Cancelled while the last calls were finishing.
            LOGGER.info("[jobs] job=%s result discarded: %s", job_id, exc)
            return self._store.get(job_id)

    def cancel(self, job_id: str) -> ExtractionJob:
        """Cancel ``job_id`` and signal its orchestrator if it runs here.

        Raises ``JobNotFound`` or ``AlreadyTerminal`` from the store.
        """

        job = self._store.cancel(job_id)
        event = self._active.get(job_id)
        if event is not None:
            event.set()
        return job

    async def notify(self, job: ExtractionJob) -> None:
        """Deliver the webhook for a terminal job, if one is registered."""

        if not job.has_webhook or not job.job_status.terminal:
            return
        dispatcher = self._dispatcher or WebhookDispatcher()
        result = result_payload(job)
        payload = build_payload(
            task_id=job.id,
            status=job.status,
            urls=[job.input_ref],
            result=result,
            token_usage=result.get("token_usage") if result else None,
        )
        config = WebhookConfig(
            url=job.webhook_url or "",
            secret=job.webhook_secret,
            max_retries=job.webhook_max_retries,
        )
        outcome = await dispatcher.deliver(config, payload, delivery_id=job.id)
        try:
            self._store.record_delivery(job.id, outcome)
        except JobNotFound:
            LOGGER.warning("[jobs] job=%s vanished before delivery was recorded", job.id)


__all__ = ["JobRunner", "aggregate_payload", "result_payload"]
