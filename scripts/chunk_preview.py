"""CLI helper to preview how a local text file will be chunked."""

from __future__ import annotations

import argparse
from pathlib import Path

from llmextract.chunking import approximate_token_count, chunk_text_for_llm
from llmextract.config import get_settings


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("path", type=Path, help="Path to a UTF-8 text file")
    parser.add_argument("--tokens", type=int, default=settings.extract_chunk_tokens)
    parser.add_argument("--overlap", type=int, default=settings.extract_chunk_overlap_tokens)
    args = parser.parse_args()

    text = args.path.read_text(encoding="utf-8")
    chunks = chunk_text_for_llm(text, args.tokens, args.overlap)
    print(f"{len(chunks)} chunks (budget={args.tokens} tokens, overlap={args.overlap})")
    for chunk in chunks:
        preview = chunk.text[:60].replace("\n", " ")
        print(
            f"  [{chunk.index}] chars={chunk.start}-{chunk.end} "
            f"~tokens={approximate_token_count(chunk.text)}  {preview!r}"
        )


if __name__ == "__main__":  # pragma: no cover - manual tool
    main()
