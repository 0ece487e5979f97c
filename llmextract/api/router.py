"""FastAPI router exposing synchronous extraction and the job lifecycle."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Mapping

import psutil
from fastapi import APIRouter, BackgroundTasks, HTTPException, Query
from fastapi.responses import JSONResponse

from ..errors import AlreadyTerminal, ChunkingError, JobNotFound
from ..extraction.models import ExtractionTask
from ..extraction.orchestrator import OrchestratorConfig, extract_document
from ..jobs.models import ExtractionJob, JobStatus
from ..jobs.runner import JobRunner, aggregate_payload, result_payload
from ..jobs.store import JobStore
from ..services.content_loader import ContentLoadError
from ..webhooks import WebhookConfig
from .schemas import ExtractionOptions, ExtractRequest, JobCreateRequest

router = APIRouter(prefix="/api", tags=["extraction"])

_RUNNER: JobRunner | None = None


def set_runner(runner: JobRunner | None) -> None:
    """Override the default job runner (useful for tests)."""

    global _RUNNER
    _RUNNER = runner


def get_runner() -> JobRunner:
    """Return the configured job runner, creating it if necessary."""

    global _RUNNER
    if _RUNNER is None:
        _RUNNER = JobRunner(JobStore())
    return _RUNNER


def _memory_mb() -> float:
    return psutil.Process().memory_info().rss / (1024 * 1024)


def _job_out(job: ExtractionJob) -> dict[str, Any]:
    return {
        "task_id": job.id,
        "status": job.status,
        "url": job.input_ref,
        "created_at": job.created_at.isoformat(),
        "updated_at": job.updated_at.isoformat(),
        "result": result_payload(job),
        "error": job.error_msg,
        "webhook": {
            "delivery_status": job.delivery_status,
            "attempts": job.delivery_attempts,
            "error": job.delivery_error,
        }
        if job.has_webhook
        else None,
    }


async def _extract_url(
    runner: JobRunner,
    url: str,
    content: str | None,
    options: ExtractionOptions,
) -> dict[str, Any]:
    task = ExtractionTask(instruction=options.instruction, schema=options.json_schema)
    try:
        text = content if content is not None else await runner.loader(url)
        aggregate = await extract_document(
            text,
            task,
            caller=runner.caller,
            config=OrchestratorConfig.from_settings(
                concurrency=options.concurrency,
                max_retries=options.max_retries,
            ),
            chunk_tokens=options.chunk_tokens,
            overlap_tokens=options.overlap_tokens,
        )
    except (ChunkingError, ContentLoadError) as exc:
        return {"url": url, "success": False, "extracted_content": None, "error": str(exc)}
    return aggregate_payload(url, aggregate)


@router.post("/extract")
async def extract(req: ExtractRequest) -> Any:
    runner = get_runner()
    started = time.perf_counter()
    memory_before = _memory_mb()
    contents: Mapping[str, str] = req.contents or {}

    results = await asyncio.gather(
        *(_extract_url(runner, url, contents.get(url), req) for url in req.urls)
    )
    return JSONResponse(
        status_code=200,
        content={
            "success": any(item["success"] for item in results),
            "results": list(results),
            "server_processing_time_s": round(time.perf_counter() - started, 4),
            "server_memory_delta_mb": round(_memory_mb() - memory_before, 3),
        },
    )


@router.post("/jobs")
async def create_job(req: JobCreateRequest, *, background_tasks: BackgroundTasks) -> Any:
    runner = get_runner()
    webhook = (
        WebhookConfig(url=req.webhook.url, secret=req.webhook.secret, max_retries=req.webhook.max_retries)
        if req.webhook is not None
        else None
    )
    job = runner.submit(req.url, request=req.job_request(), webhook=webhook)
    background_tasks.add_task(runner.run, job.id)
    return JSONResponse(status_code=202, content={"task_id": job.id, "status": job.status})


@router.get("/jobs")
async def list_jobs(
    status: JobStatus | None = Query(default=None),
    limit: int = Query(default=50, gt=0, le=500),
) -> Any:
    jobs = get_runner().store.list_jobs(status=status, limit=limit)
    return [_job_out(job) for job in jobs]


@router.get("/jobs/{job_id}")
async def get_job(job_id: str) -> Any:
    try:
        job = get_runner().store.get(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _job_out(job)


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, *, background_tasks: BackgroundTasks) -> Any:
    runner = get_runner()
    try:
        job = runner.cancel(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except AlreadyTerminal as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if not runner.is_running(job_id):
        background_tasks.add_task(runner.notify, job)
    return {"task_id": job.id, "status": job.status}
