"""Data models produced by the extraction orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..errors import ErrorKind
from ..usage import TokenUsage, accumulate_usage, usage_payload


class ChunkStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class OverallStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ExtractionTask:
    """What to extract: a free-form instruction and an optional JSON schema."""

    instruction: str
    schema: Optional[Dict[str, Any]] = None


@dataclass(frozen=True, slots=True)
class ChunkResult:
    """Terminal outcome of one chunk, after any retries."""

    chunk_index: int
    status: ChunkStatus
    content: Any = None
    usage: Optional[TokenUsage] = None
    error: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status is ChunkStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "chunk_index": self.chunk_index,
            "status": self.status.value,
            "content": self.content,
            "usage": self.usage.to_dict() if self.usage is not None else None,
            "attempts": self.attempts,
        }
        if self.error is not None:
            payload["error"] = self.error.value
            payload["error_message"] = self.error_message
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChunkResult":
        usage = data.get("usage")
        error = data.get("error")
        return cls(
            chunk_index=int(data["chunk_index"]),
            status=ChunkStatus(data["status"]),
            content=data.get("content"),
            usage=TokenUsage.from_dict(usage) if isinstance(usage, Mapping) else None,
            error=ErrorKind(error) if error else None,
            error_message=data.get("error_message"),
            attempts=int(data.get("attempts", 0)),
        )


def overall_status_for(chunks: Sequence[ChunkResult]) -> OverallStatus:
    succeeded = sum(1 for chunk in chunks if chunk.ok)
    if chunks and succeeded == len(chunks):
        return OverallStatus.SUCCESS
    if succeeded:
        return OverallStatus.PARTIAL
    return OverallStatus.FAILED


@dataclass(frozen=True, slots=True)
class AggregateResult:
    """Composite result of every chunk in one extraction request."""

    chunks: Tuple[ChunkResult, ...]
    usage: TokenUsage
    usage_chunks: Tuple[Optional[TokenUsage], ...]
    overall_status: OverallStatus
    invocations: int = 0
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_chunks(cls, results: Sequence[ChunkResult], **meta: Any) -> "AggregateResult":
        """Sort ``results`` by chunk index and accumulate their usage."""

        ordered = tuple(sorted(results, key=lambda item: item.chunk_index))
        summary = accumulate_usage(result.usage for result in ordered)
        return cls(
            chunks=ordered,
            usage=summary.total,
            usage_chunks=summary.chunks,
            overall_status=overall_status_for(ordered),
            invocations=sum(result.attempts for result in ordered),
            meta=dict(meta),
        )

    @property
    def success(self) -> bool:
        return self.overall_status is not OverallStatus.FAILED

    def extracted_content(self) -> List[Any]:
        """Flatten successful chunk contents in chunk order."""

        merged: List[Any] = []
        for chunk in self.chunks:
            if not chunk.ok or chunk.content is None:
                continue
            if isinstance(chunk.content, list):
                merged.extend(chunk.content)
            else:
                merged.append(chunk.content)
        return merged

    def token_usage(self) -> Dict[str, Any] | None:
        return usage_payload(self.usage, self.usage_chunks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_status": self.overall_status.value,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "usage": self.usage.to_dict(),
            "invocations": self.invocations,
            "meta": dict(self.meta),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AggregateResult":
        chunks = tuple(ChunkResult.from_dict(item) for item in data.get("chunks", []))
        return cls(
            chunks=chunks,
            usage=TokenUsage.from_dict(data.get("usage") or {"availability": "unavailable"}),
            usage_chunks=tuple(chunk.usage for chunk in chunks),
            overall_status=OverallStatus(data["overall_status"]),
            invocations=int(data.get("invocations", 0)),
            meta=dict(data.get("meta") or {}),
        )


__all__ = [
    "AggregateResult",
    "ChunkResult",
    "ChunkStatus",
    "ExtractionTask",
    "OverallStatus",
    "overall_status_for",
]
