"""Exception taxonomy shared by the extraction pipeline, job store and webhooks."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .extraction.models import ChunkResult
    from .usage import TokenUsage


class ErrorKind(str, Enum):
    """Classified failure of a single provider call."""

    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"
    AUTH_ERROR = "auth_error"
    MALFORMED_RESPONSE = "malformed_response"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE_KINDS


_RETRYABLE_KINDS = frozenset(
    {ErrorKind.RATE_LIMITED, ErrorKind.TIMEOUT, ErrorKind.PROVIDER_ERROR}
)


class ExtractionError(RuntimeError):
    """Base class for errors raised by the extraction pipeline."""


class ChunkingError(ExtractionError):
    """Raised when input content cannot be split into chunks."""


class ExtractionCancelled(ExtractionError):
    """Raised once a cancelled extraction has drained its in-flight calls."""

    def __init__(self, completed: Sequence["ChunkResult"] = ()) -> None:
        super().__init__("Extraction cancelled")
        self.completed = tuple(completed)


class ProviderCallError(ExtractionError):
    """A provider call failed; ``kind`` drives the retry policy.

    ``usage`` is set when the provider answered and billed the call before
    the reply was rejected.
    """

    kind: ErrorKind = ErrorKind.PROVIDER_ERROR

    def __init__(
        self,
        message: str = "",
        *,
        status_code: int | None = None,
        usage: TokenUsage | None = None,
    ) -> None:
        super().__init__(message or self.kind.value)
        self.status_code = status_code
        self.usage = usage

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class RateLimited(ProviderCallError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        message: str = "",
        *,
        status_code: int | None = 429,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class ProviderTimeout(ProviderCallError):
    kind = ErrorKind.TIMEOUT


class ProviderError(ProviderCallError):
    kind = ErrorKind.PROVIDER_ERROR


class AuthError(ProviderCallError):
    kind = ErrorKind.AUTH_ERROR


class MalformedResponse(ProviderCallError):
    kind = ErrorKind.MALFORMED_RESPONSE


class JobStoreError(RuntimeError):
    """Base class for job store contract violations."""


class JobNotFound(JobStoreError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class InvalidTransition(JobStoreError):
    def __init__(self, job_id: str, current: str, requested: str) -> None:
        super().__init__(f"Job {job_id} cannot move from {current} to {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested


class AlreadyTerminal(InvalidTransition):
    """Raised when cancelling a job that already finished."""


class WebhookDeliveryError(RuntimeError):
    """A webhook could not be delivered after exhausting retries."""


__all__ = [
    "AlreadyTerminal",
    "AuthError",
    "ChunkingError",
    "ErrorKind",
    "ExtractionCancelled",
    "ExtractionError",
    "InvalidTransition",
    "JobNotFound",
    "JobStoreError",
    "MalformedResponse",
    "ProviderCallError",
    "ProviderError",
    "ProviderTimeout",
    "RateLimited",
    "WebhookDeliveryError",
]
