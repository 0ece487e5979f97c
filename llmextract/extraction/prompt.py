"""Prompt construction and response parsing for chunk extraction."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

FENCE_RE = re.compile(r"```(?:json)?\s*(?P<payload>.*?)```", re.DOTALL | re.IGNORECASE)

_SYSTEM_LINES = (
    "You are a precise information extraction assistant.",
    "Work strictly within the supplied document fragment; do not add outside facts.",
    "The fragment may start or end mid-topic because the document was split into chunks.",
    "Reply with a single ```json fenced code block containing valid JSON and nothing else.",
    "If the fragment holds nothing relevant, reply with an empty JSON array.",
)


def build_messages(
    *,
    instruction: str,
    chunk_text: str,
    chunk_index: int,
    chunk_total: int,
    schema: Mapping[str, Any] | None = None,
) -> list[dict[str, str]]:
    """Return system/user messages asking the model to extract from one chunk."""

    system_lines = list(_SYSTEM_LINES)
    if schema:
        system_lines.append(
            "The JSON must conform to this JSON schema:\n"
            + json.dumps(schema, indent=2, sort_keys=True)
        )

    user_lines = [
        f"Instruction: {instruction.strip() or 'Extract the key information.'}",
        f"Fragment {chunk_index + 1} of {chunk_total}.",
        "Source text:",
        chunk_text.strip(),
    ]
    return [
        {"role": "system", "content": "\n".join(system_lines)},
        {"role": "user", "content": "\n\n".join(user_lines)},
    ]


def extract_payload(raw: str) -> str:
    """Return the text inside the first JSON fence, or the whole reply."""

    stripped = raw.strip()
    match = FENCE_RE.search(stripped)
    if match:
        return match.group("payload").strip()
    return stripped


def parse_payload(raw: str) -> Any:
    """Parse ``raw`` as JSON or raise ``ValueError``."""

    text = extract_payload(raw)
    if not text:
        raise ValueError("Empty response")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON payload: {exc}") from exc


def check_schema(payload: Any, schema: Mapping[str, Any]) -> None:
    """Shallow conformance check of ``payload`` against a JSON schema.

    Validates the top-level type and, for objects, required keys. Arrays of
    objects have each item checked against ``items``.
    """

    expected = schema.get("type")
    if expected == "object":
        if not isinstance(payload, Mapping):
            raise ValueError("Payload must be a JSON object")
        missing = [key for key in schema.get("required", []) if key not in payload]
        if missing:
            raise ValueError(f"Payload is missing required keys: {', '.join(missing)}")
    elif expected == "array":
        if not isinstance(payload, list):
            raise ValueError("Payload must be a JSON array")
        items = schema.get("items")
        if isinstance(items, Mapping):
            for item in payload:
                check_schema(item, items)
    elif expected is None and not isinstance(payload, (Mapping, list)):
        raise ValueError("Payload must be a JSON object or array")


__all__ = ["build_messages", "check_schema", "extract_payload", "parse_payload"]
