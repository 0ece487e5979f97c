"""Token usage records and the per-extraction usage accumulator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

LOGGER = logging.getLogger(__name__)


class UsageAvailability(str, Enum):
    """Whether a usage record reflects provider-reported counters."""

    AVAILABLE = "available"
    PARTIAL = "partial"
    UNAVAILABLE = "unavailable"


def _coerce_count(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        count = int(value)
    except (TypeError, ValueError):
        return None
    if count < 0:
        return None
    return count


def _coerce_details(value: Any) -> Dict[str, float]:
    if not isinstance(value, Mapping):
        return {}
    details: Dict[str, float] = {}
    for key, raw in value.items():
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            continue
        details[str(key)] = raw
    return details


def _sum_details(target: Dict[str, float], source: Mapping[str, float]) -> None:
    for key, value in source.items():
        target[key] = target.get(key, 0) + value


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Provider-reported token counts for one or more calls."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    prompt_tokens_details: Dict[str, float] = field(default_factory=dict)
    completion_tokens_details: Dict[str, float] = field(default_factory=dict)
    availability: UsageAvailability = UsageAvailability.AVAILABLE

    @classmethod
    def unavailable(cls) -> "TokenUsage":
        """Return the zero record used when a provider reports no usage."""

        return cls(availability=UsageAvailability.UNAVAILABLE)

    @classmethod
    def from_provider(cls, raw: Mapping[str, Any] | None) -> "TokenUsage":
        """Normalise a provider ``usage`` mapping.

        Missing counters count as zero and mark the record ``partial``;
        a wholly missing mapping yields :meth:`unavailable`.
        """

        if not isinstance(raw, Mapping):
            return cls.unavailable()

        prompt = _coerce_count(raw.get("prompt_tokens"))
        completion = _coerce_count(raw.get("completion_tokens"))
        total = _coerce_count(raw.get("total_tokens"))
        prompt_details = _coerce_details(raw.get("prompt_tokens_details"))
        completion_details = _coerce_details(raw.get("completion_tokens_details"))

        if prompt is None and completion is None and total is None:
            return cls.unavailable()

        if prompt is not None and completion is not None:
            derived = prompt + completion
            if total is not None and total != derived:
                LOGGER.warning(
                    "[usage] provider total_tokens=%s disagrees with prompt+completion=%s",
                    total,
                    derived,
                )
            return cls(
                prompt_tokens=prompt,
                completion_tokens=completion,
                total_tokens=derived,
                prompt_tokens_details=prompt_details,
                completion_tokens_details=completion_details,
            )

        prompt = prompt or 0
        completion = completion or 0
        return cls(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=total if total is not None else prompt + completion,
            prompt_tokens_details=prompt_details,
            completion_tokens_details=completion_details,
            availability=UsageAvailability.PARTIAL,
        )

    @property
    def is_available(self) -> bool:
        return self.availability is not UsageAvailability.UNAVAILABLE

    def counters(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = self.counters()
        if self.prompt_tokens_details:
            payload["prompt_tokens_details"] = dict(self.prompt_tokens_details)
        if self.completion_tokens_details:
            payload["completion_tokens_details"] = dict(self.completion_tokens_details)
        payload["availability"] = self.availability.value
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TokenUsage":
        return cls(
            prompt_tokens=int(data.get("prompt_tokens", 0)),
            completion_tokens=int(data.get("completion_tokens", 0)),
            total_tokens=int(data.get("total_tokens", 0)),
            prompt_tokens_details=_coerce_details(data.get("prompt_tokens_details")),
            completion_tokens_details=_coerce_details(data.get("completion_tokens_details")),
            availability=UsageAvailability(data.get("availability", "available")),
        )


@dataclass(frozen=True, slots=True)
class UsageSummary:
    """Aggregate usage plus the ordered per-chunk records it was built from."""

    total: TokenUsage
    chunks: Tuple[Optional[TokenUsage], ...]


def accumulate_usage(records: Iterable[Optional[TokenUsage]]) -> UsageSummary:
    """Sum ``records`` field-wise, skipping absent and unavailable entries.

    The returned ``chunks`` tuple preserves the input order untouched.
    """

    ordered: Tuple[Optional[TokenUsage], ...] = tuple(records)
    present = [record for record in ordered if record is not None and record.is_available]

    if not present:
        return UsageSummary(total=TokenUsage.unavailable(), chunks=ordered)

    prompt = completion = total = 0
    prompt_details: Dict[str, float] = {}
    completion_details: Dict[str, float] = {}
    for record in present:
        prompt += record.prompt_tokens
        completion += record.completion_tokens
        total += record.total_tokens
        _sum_details(prompt_details, record.prompt_tokens_details)
        _sum_details(completion_details, record.completion_tokens_details)

    degraded = len(present) != len(ordered) or any(
        record.availability is UsageAvailability.PARTIAL for record in present
    )
    availability = UsageAvailability.PARTIAL if degraded else UsageAvailability.AVAILABLE
    aggregate = TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=total,
        prompt_tokens_details=dict(sorted(prompt_details.items())),
        completion_tokens_details=dict(sorted(completion_details.items())),
        availability=availability,
    )
    return UsageSummary(total=aggregate, chunks=ordered)


def usage_payload(
    total: TokenUsage, chunks: Sequence[Optional[TokenUsage]]
) -> Dict[str, Any] | None:
    """Return the public ``token_usage`` shape, or ``None`` when unavailable."""

    if not total.is_available:
        return None
    payload: Dict[str, Any] = total.counters()
    if total.availability is UsageAvailability.PARTIAL:
        payload["partial"] = True
    payload["chunks"] = [
        record.counters() if record is not None and record.is_available else None
        for record in chunks
    ]
    return payload


__all__ = [
    "TokenUsage",
    "UsageAvailability",
    "UsageSummary",
    "accumulate_usage",
    "usage_payload",
]
