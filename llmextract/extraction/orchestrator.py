"""Concurrent, retry-aware extraction across every chunk of a document."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Sequence

from ..chunking import TextChunk, chunk_text_for_llm
from ..config import Settings, get_settings
from ..errors import ErrorKind, ExtractionCancelled, ProviderCallError, RateLimited
from .caller import ExtractionCaller
from .models import AggregateResult, ChunkResult, ChunkStatus, ExtractionTask

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class OrchestratorConfig:
    """Concurrency and retry policy for one extraction run."""

    concurrency: int = 4
    max_retries: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 30.0

    def __post_init__(self) -> None:
        if self.concurrency <= 0:
            raise ValueError("concurrency must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides) -> "OrchestratorConfig":
        settings = settings or get_settings()
        values = {
            "concurrency": settings.extract_concurrency,
            "max_retries": settings.extract_retry_max,
            "base_delay_s": settings.extract_backoff_s,
            "max_delay_s": settings.extract_backoff_max_s,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def backoff(self, attempt: int, retry_after: float | None = None) -> float:
        """Delay before retry number ``attempt`` (0-based), capped at ``max_delay_s``."""

        delay = self.base_delay_s * (2 ** attempt)
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.max_delay_s)


class ExtractionOrchestrator:
    """Fan chunks out to an :class:`ExtractionCaller` under bounded concurrency.

    Each call to :meth:`run` owns its own result list; nothing is shared
    between runs.
    """

    def __init__(
        self,
        caller: ExtractionCaller,
        config: OrchestratorConfig | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._caller = caller
        self._config = config or OrchestratorConfig.from_settings()
        self._sleep = sleep

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    async def run(
        self,
        chunks: Sequence[TextChunk],
        task: ExtractionTask,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> AggregateResult:
        """Extract every chunk and assemble the aggregate result.

        Raises :class:`ExtractionCancelled` once in-flight calls drain if
        ``cancel_event`` was set during the run.
        """

        cancel_event = cancel_event or asyncio.Event()
        semaphore = asyncio.Semaphore(self._config.concurrency)
        start = time.perf_counter()
        LOGGER.info(
            "[orchestrator] starting chunks=%s concurrency=%s max_retries=%s",
            len(chunks),
            self._config.concurrency,
            self._config.max_retries,
        )

        results: List[ChunkResult | None] = await asyncio.gather(
            *(self._run_chunk(chunk, task, semaphore, cancel_event) for chunk in chunks)
        )
        finished = [result for result in results if result is not None]

        if cancel_event.is_set():
            LOGGER.info(
                "[orchestrator] cancelled after draining; finished=%s of %s",
                len(finished),
                len(chunks),
            )
            raise ExtractionCancelled(sorted(finished, key=lambda item: item.chunk_index))

        aggregate = AggregateResult.from_chunks(
            finished,
            chunk_count=len(chunks),
            duration_s=round(time.perf_counter() - start, 3),
        )
        LOGGER.info(
            "[orchestrator] finished status=%s invocations=%s total_tokens=%s",
            aggregate.overall_status.value,
            aggregate.invocations,
            aggregate.usage.total_tokens,
        )
        return aggregate

    async def _run_chunk(
        self,
        chunk: TextChunk,
        task: ExtractionTask,
        semaphore: asyncio.Semaphore,
        cancel_event: asyncio.Event,
    ) -> ChunkResult | None:
        attempt = 0
        while True:
            async with semaphore:
                if cancel_event.is_set():
                    return None
                try:
                    outcome = await self._caller.extract(chunk, task)
                except ProviderCallError as exc:
                    error = exc
                except Exception as exc:
                    LOGGER.exception(
                        "[orchestrator] chunk=%s unexpected caller failure", chunk.index
                    )
                    return ChunkResult(
                        chunk_index=chunk.index,
                        status=ChunkStatus.FAILED,
                        error=ErrorKind.PROVIDER_ERROR,
                        error_message=str(exc) or exc.__class__.__name__,
                        attempts=attempt + 1,
                    )
                else:
                    return ChunkResult(
                        chunk_index=chunk.index,
                        status=ChunkStatus.SUCCESS,
                        content=outcome.content,
                        usage=outcome.usage,
                        attempts=attempt + 1,
                    )

            LOGGER.warning(
                "[orchestrator] chunk=%s attempt=%s failed kind=%s: %s",
                chunk.index,
                attempt + 1,
                error.kind.value,
                error,
            )
            if not error.retryable or attempt >= self._config.max_retries:
                return self._failed(chunk, error, attempt + 1)
            retry_after = error.retry_after if isinstance(error, RateLimited) else None
            await self._sleep(self._config.backoff(attempt, retry_after))
            if cancel_event.is_set():
                return self._failed(chunk, error, attempt + 1)
            attempt += 1

    @staticmethod
    def _failed(chunk: TextChunk, error: ProviderCallError, attempts: int) -> ChunkResult:
        # Usage is present only when the provider billed the failing call.
        return ChunkResult(
            chunk_index=chunk.index,
            status=ChunkStatus.FAILED,
            usage=error.usage,
            error=error.kind,
            error_message=str(error),
            attempts=attempts,
        )


async def extract_document(
    text: str,
    task: ExtractionTask,
    *,
    caller: ExtractionCaller,
    config: OrchestratorConfig | None = None,
    chunk_tokens: int | None = None,
    overlap_tokens: int | None = None,
    cancel_event: asyncio.Event | None = None,
    sleep: Sleep = asyncio.sleep,
) -> AggregateResult:
    """Chunk ``text`` and run the orchestrator over it.

    Only :class:`~llmextract.errors.ChunkingError` (before any provider call)
    and :class:`~llmextract.errors.ExtractionCancelled` propagate.
    """

    settings = get_settings()
    chunks = chunk_text_for_llm(
        text,
        chunk_tokens or settings.extract_chunk_tokens,
        overlap_tokens if overlap_tokens is not None else settings.extract_chunk_overlap_tokens,
    )
    orchestrator = ExtractionOrchestrator(caller, config, sleep=sleep)
    return await orchestrator.run(chunks, task, cancel_event=cancel_event)


__all__ = ["ExtractionOrchestrator", "OrchestratorConfig", "extract_document"]
