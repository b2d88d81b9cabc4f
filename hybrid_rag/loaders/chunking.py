from __future__ import annotations

"""Whitespace normalization and fixed-window chunking for ingested text."""

import re

_RUNS_OF_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Collapse every whitespace run to one space and trim the ends."""
    return _RUNS_OF_WHITESPACE.sub(" ", text).strip()


def chunk_text(text: str, max_chars: int = 1000, overlap: int = 0) -> list[str]:
    """Cut normalized text into windows of at most ``max_chars`` characters.

    Consecutive windows share ``overlap`` characters; an overlap that would
    stall the window falls back to a quarter of the window size.
    """
    cleaned = normalize_text(text)
    if not cleaned:
        return []
    if max_chars <= 0 or len(cleaned) <= max_chars:
        return [cleaned]
    if not 0 <= overlap < max_chars:
        overlap = max_chars // 4
    step = max_chars - overlap
    chunks: list[str] = []
    for start in range(0, len(cleaned), step):
        window = cleaned[start : start + max_chars].strip()
        if window:
            chunks.append(window)
        if start + max_chars >= len(cleaned):
            break
    return chunks
