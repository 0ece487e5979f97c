"""Helpers for slicing long documents into LLM-sized text chunks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from .errors import ChunkingError

CHARS_PER_TOKEN = 4
BOUNDARY_TOLERANCE = 0.25

# Ordered by preference: paragraph, line, sentence, word.
_SEPARATORS = ("\n\n", "\n", ". ", "! ", "? ", "; ", " ", "\t")


@dataclass(slots=True)
class TextChunk:
    """Simple container describing a single chunk of document text."""

    index: int
    total: int
    text: str
    start: int
    end: int


def approximate_token_count(text: str) -> int:
    """Return a coarse token estimate assuming ~4 characters per token."""

    if not text:
        return 0
    length = len(text)
    return max(1, length // CHARS_PER_TOKEN)


def _find_cut(text: str, lower: int, limit: int) -> int:
    """Return the best split offset in ``(lower, limit]``, preferring boundaries."""

    if limit >= len(text):
        return len(text)
    for separator in _SEPARATORS:
        position = text.rfind(separator, lower, limit)
        if position == -1:
            continue
        cut = position + len(separator)
        if lower < cut <= limit:
            return cut
    return limit


def chunk_text_for_llm(
    full_text: str,
    max_context_tokens: int,
    overlap_tokens: int = 0,
) -> List[TextChunk]:
    """Split ``full_text`` into ordered pieces of at most ``max_context_tokens``.

    Chunks cover the input without gaps. Each cut lands on the nearest
    paragraph, line, sentence or word boundary within the last quarter of
    the budget, falling back to a hard cut. With ``overlap_tokens`` the tail
    of chunk *i* is repeated at the head of chunk *i + 1*.
    """

    if max_context_tokens <= 0:
        raise ValueError("max_context_tokens must be positive")
    if overlap_tokens < 0:
        raise ValueError("overlap_tokens must not be negative")

    if not full_text or not full_text.strip():
        raise ChunkingError("Content is empty; nothing to extract")

    max_chars = max_context_tokens * CHARS_PER_TOKEN
    overlap = min(overlap_tokens * CHARS_PER_TOKEN, max_chars // 2)
    tolerance = max(1, int(max_chars * BOUNDARY_TOLERANCE))

    chunks: list[TextChunk] = []
    total_length = len(full_text)
    covered = 0

    while covered < total_length:
        head = max(0, covered - overlap) if chunks else 0
        limit = min(head + max_chars, total_length)
        lower = max(limit - tolerance, covered)
        cut = _find_cut(full_text, lower, limit)
        chunks.append(
            TextChunk(
                index=len(chunks),
                total=0,
                text=full_text[head:cut],
                start=head,
                end=cut,
            )
        )
        covered = cut

    total_chunks = len(chunks)
    for chunk in chunks:
        chunk.total = total_chunks

    return chunks


__all__ = [
    "CHARS_PER_TOKEN",
    "TextChunk",
    "approximate_token_count",
    "chunk_text_for_llm",
]
