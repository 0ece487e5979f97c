"""Test configuration for llmextract."""

from __future__ import annotations

import asyncio
import inspect
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Generator, Mapping

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from llmextract.api.router import set_runner  # noqa: E402
from llmextract.chunking import TextChunk  # noqa: E402
from llmextract.config import reset_settings_cache  # noqa: E402
from llmextract.extraction.caller import CallOutcome  # noqa: E402
from llmextract.extraction.models import ExtractionTask  # noqa: E402
from llmextract.jobs import reset_engine  # noqa: E402
from llmextract.llm_client import LLMClient, LLMRequest, LLMResponse  # noqa: E402
from llmextract.usage import TokenUsage  # noqa: E402

THREE_PARAGRAPHS = "\n\n".join(["A" * 30, "B" * 30, "C" * 30])


@pytest.fixture(autouse=True)
def _isolate_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Generator[None, None, None]:
    """Provide isolated configuration for each test."""

    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'jobs.db'}")
    monkeypatch.setenv("EXTRACT_LLM_MODEL", "mock-model")
    monkeypatch.setenv("EXTRACT_BACKOFF_S", "0")
    monkeypatch.setenv("WEBHOOK_BACKOFF_S", "0")
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    reset_settings_cache()
    reset_engine()
    set_runner(None)
    yield
    set_runner(None)
    reset_settings_cache()
    reset_engine()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    """Return a test client for the FastAPI application."""

    from llmextract.app import app

    with TestClient(app) as test_client:
        yield test_client


class MockLLM(LLMClient):
    """Mock LLM client with a simple FIFO response queue."""

    def __init__(self) -> None:
        super().__init__(transport=self._dispatch)
        self._queue: list[LLMResponse | Exception] = []
        self.requests: list[LLMRequest] = []

    def enqueue(
        self, response: str | Exception, usage: Mapping[str, Any] | None = None
    ) -> None:
        if isinstance(response, Exception):
            self._queue.append(response)
        else:
            self._queue.append(LLMResponse(content=response, model="mock-model", usage=usage))

    async def _dispatch(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        if not self._queue:
            raise RuntimeError("MockLLM was called without a queued response")
        item = self._queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def mock_llm() -> MockLLM:
    return MockLLM()


def default_usage() -> TokenUsage:
    return TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15)


class StubCaller:
    """Stands in for ``ExtractionCaller`` with scripted per-chunk replies.

    ``script`` maps a chunk index to a list of replies consumed in order;
    exceptions are raised, anything else is returned. Once a chunk's list is
    exhausted the default outcome is returned.
    """

    def __init__(
        self,
        script: Mapping[int, list[Any]] | None = None,
        *,
        delay: float = 0.0,
        on_call: Callable[[TextChunk], Awaitable[None]] | None = None,
    ) -> None:
        self._script = {index: list(replies) for index, replies in (script or {}).items()}
        self._delay = delay
        self._on_call = on_call
        self.calls: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def extract(self, chunk: TextChunk, task: ExtractionTask) -> CallOutcome:
        self.calls.append(chunk.index)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._on_call is not None:
                await self._on_call(chunk)
            if self._delay:
                await asyncio.sleep(self._delay)
            replies = self._script.get(chunk.index)
            if replies:
                reply = replies.pop(0)
                if isinstance(reply, Exception):
                    raise reply
                return reply
            return CallOutcome(content={"chunk": chunk.index}, usage=default_usage())
        finally:
            self.in_flight -= 1


@pytest.fixture
def stub_caller() -> StubCaller:
    return StubCaller()


@pytest.fixture
def caller_factory() -> type[StubCaller]:
    return StubCaller


def make_chunks(count: int) -> list[TextChunk]:
    return [
        TextChunk(index=i, total=count, text=f"chunk {i}", start=i * 10, end=i * 10 + 7)
        for i in range(count)
    ]


@pytest.fixture
def chunk_factory() -> Callable[[int], list[TextChunk]]:
    return make_chunks


@pytest.fixture
def three_paragraphs() -> str:
    """Three 30-character paragraphs; a 10-token budget yields one chunk each."""

    return THREE_PARAGRAPHS


class SleepRecorder:
    """Async ``sleep`` replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        loop = asyncio.new_event_loop()
        try:
            signature = inspect.signature(pyfuncitem.obj)
            kwargs = {
                name: pyfuncitem.funcargs[name]
                for name in signature.parameters
                if name in pyfuncitem.funcargs
            }
            loop.run_until_complete(pyfuncitem.obj(**kwargs))
        finally:
            loop.close()
        return True
    return None
