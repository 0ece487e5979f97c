"""Chunked extraction pipeline: caller, orchestrator and result models."""

from .caller import CallOutcome, ExtractionCaller, ProviderConfig
from .models import (
    AggregateResult,
    ChunkResult,
    ChunkStatus,
    ExtractionTask,
    OverallStatus,
)
from .orchestrator import ExtractionOrchestrator, OrchestratorConfig, extract_document

__all__ = [
    "AggregateResult",
    "CallOutcome",
    "ChunkResult",
    "ChunkStatus",
    "ExtractionCaller",
    "ExtractionOrchestrator",
    "ExtractionTask",
    "OrchestratorConfig",
    "OverallStatus",
    "ProviderConfig",
    "extract_document",
]
