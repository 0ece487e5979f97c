from __future__ import annotations

import json

import httpx
import pytest

from llmextract.errors import AuthError, ProviderError
from llmextract.jobs.models import JobStatus
from llmextract.jobs.runner import JobRunner, result_payload
from llmextract.jobs.store import JobStore
from llmextract.services.content_loader import ContentLoadError
from llmextract.webhooks import DELIVERY_HEADER, WebhookConfig, WebhookDispatcher

HOOK = WebhookConfig(url="https://hooks.test/cb", secret="s3cret", max_retries=2)


class HookSink:
    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.bodies: list[dict] = []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.bodies.append(json.loads(request.content))
        return httpx.Response(self.status)


@pytest.fixture
def sink() -> HookSink:
    return HookSink()


def _runner(caller, sink: HookSink, sleep_recorder, **kwargs) -> JobRunner:
    dispatcher = WebhookDispatcher(
        transport=httpx.MockTransport(sink), sleep=sleep_recorder, backoff_s=0.5
    )
    return JobRunner(JobStore(), caller=caller, dispatcher=dispatcher, **kwargs)


def _request(content: str | None, **options) -> dict:
    request = {"instruction": "List requirements", "chunk_tokens": 10, "concurrency": 1}
    if content is not None:
        request["content"] = content
    request.update(options)
    return request


async def test_successful_job_completes_and_notifies(stub_caller, sink, sleep_recorder, three_paragraphs) -> None:
    runner = _runner(stub_caller, sink, sleep_recorder)
    job = runner.submit("doc://spec", request=_request(three_paragraphs), webhook=HOOK)

    finished = await runner.run(job.id)

    assert finished.job_status is JobStatus.COMPLETED
    assert sorted(stub_caller.calls) == [0, 1, 2]
    payload = result_payload(finished)
    assert payload["success"] is True
    assert payload["token_usage"]["total_tokens"] == 45
    assert len(payload["token_usage"]["chunks"]) == 3

    assert len(sink.bodies) == 1
    body = sink.bodies[0]
    assert body["task_id"] == job.id
    assert body["status"] == "completed"
    assert body["urls"] == ["doc://spec"]
    assert body["token_usage"]["total_tokens"] == 45
    assert sink.requests[0].headers[DELIVERY_HEADER] == job.id

    stored = runner.store.get(job.id)
    assert stored.delivery_status == "delivered"
    assert stored.delivery_attempts == 1


async def test_partial_failure_maps_to_partially_completed(caller_factory, sink, sleep_recorder, three_paragraphs) -> None:
    caller = caller_factory({1: [AuthError("bad key")]})
    runner = _runner(caller, sink, sleep_recorder)
    job = runner.submit("doc://spec", request=_request(three_paragraphs))

    finished = await runner.run(job.id)

    assert finished.job_status is JobStatus.PARTIALLY_COMPLETED
    payload = result_payload(finished)
    assert payload["success"] is True
    assert payload["chunks"][1]["error"] == "auth_error"
    assert payload["token_usage"]["partial"] is True
    assert sink.bodies == []


async def test_all_chunks_failing_fails_the_job(caller_factory, sink, sleep_recorder, three_paragraphs) -> None:
    caller = caller_factory({index: [ProviderError("down")] * 5 for index in range(3)})
    runner = _runner(caller, sink, sleep_recorder)
    job = runner.submit("doc://spec", request=_request(three_paragraphs, max_retries=1), webhook=HOOK)

    finished = await runner.run(job.id)

    assert finished.job_status is JobStatus.FAILED
    assert len(caller.calls) == 3 * 2
    payload = result_payload(finished)
    assert payload["success"] is False
    assert "token_usage" not in payload
    assert sink.bodies[0]["status"] == "failed"
    assert sink.bodies[0]["token_usage"] is None


async def test_empty_content_fails_before_any_call(stub_caller, sink, sleep_recorder) -> None:
    runner = _runner(stub_caller, sink, sleep_recorder)
    job = runner.submit("doc://empty", request=_request("   "), webhook=HOOK)

    finished = await runner.run(job.id)

    assert finished.job_status is JobStatus.FAILED
    assert "empty" in finished.error_msg.lower()
    assert stub_caller.calls == []
    assert sink.bodies[0]["status"] == "failed"
    assert sink.bodies[0]["result"] is None


async def test_loader_is_used_when_content_is_not_inline(stub_caller, sink, sleep_recorder, three_paragraphs) -> None:
    fetched: list[str] = []

    async def _loader(url: str) -> str:
        fetched.append(url)
        return three_paragraphs

    runner = _runner(stub_caller, sink, sleep_recorder, loader=_loader)
    job = runner.submit("https://example.com/spec", request=_request(None))

    finished = await runner.run(job.id)

    assert fetched == ["https://example.com/spec"]
    assert finished.job_status is JobStatus.COMPLETED


async def test_loader_failure_fails_the_job(stub_caller, sink, sleep_recorder) -> None:
    async def _loader(url: str) -> str:
        raise ContentLoadError(f"Could not load {url}")

    runner = _runner(stub_caller, sink, sleep_recorder, loader=_loader)
    job = runner.submit("https://example.com/missing", request=_request(None))

    finished = await runner.run(job.id)

    assert finished.job_status is JobStatus.FAILED
    assert "Could not load" in finished.error_msg


async def test_webhook_failure_does_not_change_job_status(stub_caller, sleep_recorder, three_paragraphs) -> None:
    sink = HookSink(status=500)
    runner = _runner(stub_caller, sink, sleep_recorder)
    job = runner.submit("doc://spec", request=_request(three_paragraphs), webhook=HOOK)

    finished = await runner.run(job.id)

    assert finished.job_status is JobStatus.COMPLETED
    assert len(sink.requests) == HOOK.max_retries + 1
    assert sleep_recorder.delays == [0.5, 1.0]
    stored = runner.store.get(job.id)
    assert stored.job_status is JobStatus.COMPLETED
    assert stored.delivery_status == "failed"
    assert stored.delivery_attempts == 3
    assert stored.delivery_error == "HTTP 500"


async def test_cancel_while_running_discards_result(caller_factory, sink, sleep_recorder, three_paragraphs) -> None:
    holder: dict[str, JobRunner] = {}

    async def _cancel_during_first_call(chunk) -> None:
        runner = holder["runner"]
        (job_id,) = list(runner._active)
        runner.cancel(job_id)

    caller = caller_factory(on_call=_cancel_during_first_call)
    runner = _runner(caller, sink, sleep_recorder)
    holder["runner"] = runner
    job = runner.submit("doc://spec", request=_request(three_paragraphs), webhook=HOOK)

    finished = await runner.run(job.id)

    assert finished.job_status is JobStatus.CANCELLED
    assert finished.result_json is None
    assert caller.calls == [0]
    assert not runner.is_running(job.id)
    assert sink.bodies[0]["status"] == "cancelled"
    assert sink.bodies[0]["result"] is None


async def test_cancelled_job_is_not_started(stub_caller, sink, sleep_recorder, three_paragraphs) -> None:
    runner = _runner(stub_caller, sink, sleep_recorder)
    job = runner.submit("doc://spec", request=_request(three_paragraphs))
    runner.cancel(job.id)

    finished = await runner.run(job.id)

    assert finished.job_status is JobStatus.CANCELLED
    assert stub_caller.calls == []
