from __future__ import annotations

import re
from typing import Any, List, Mapping, Optional

from clauseiq.ingest.models import Chunk

_SENTENCE_END_RE = re.compile(r"[.!?]\s")
_BOUNDARY_RADIUS = 100


def _snap_to_boundary(text: str, start: int, end: int) -> int:
    """Move ``end`` back onto a nearby sentence or paragraph boundary.

    Only the region behind the naive cut is eligible, so a snapped window is
    never longer than ``chunk_size``.
    """

    region_start = max(end - _BOUNDARY_RADIUS, 0)
    region = text[region_start : end + _BOUNDARY_RADIUS]
    lookbehind = end - region_start

    candidate = end
    sentence = _SENTENCE_END_RE.search(region)
    if sentence is not None and sentence.start() < lookbehind:
        candidate = region_start + sentence.start() + 1
    else:
        paragraph = region.find("\n\n")
        if 0 <= paragraph < lookbehind:
            candidate = region_start + paragraph

    return candidate if candidate > start else end


def chunk_text(
    text: str,
    base_metadata: Optional[Mapping[str, Any]] = None,
    document_id: str = "",
    chunk_size: int = 1000,
    overlap: int = 200,
) -> List[Chunk]:
    """Split *text* into overlapping, boundary-aware chunks.

    Windows of ``chunk_size`` characters are cut at a sentence terminator or
    paragraph break when one lies within 100 characters before the naive cut.
    Each window is trimmed; ``start_char`` points at the first character kept.
    The next window starts ``overlap`` characters before the previous end and
    always strictly after the previous start.
    """

    if chunk_size <= 0:
        raise ValueError("chunk_size must be a positive integer")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must satisfy 0 <= overlap < chunk_size")
    if not text:
        return []

    metadata = dict(base_metadata or {})
    text_length = len(text)
    chunks: List[Chunk] = []
    start = 0

    while start < text_length:
        end = min(start + chunk_size, text_length)
        if end < text_length:
            end = _snap_to_boundary(text, start, end)

        window = text[start:end]
        content = window.strip()
        if not content:
            break

        leading = len(window) - len(window.lstrip())
        chunks.append(
            Chunk(
                document_id=document_id,
                index=len(chunks),
                content=content,
                start_char=start + leading,
                metadata=dict(metadata),
            )
        )

        if end >= text_length:
            break

        # Clamp against the kept start so start_char stays strictly increasing
        # even when trimming skipped leading whitespace.
        floor = chunks[-1].start_char
        next_start = end - overlap
        if next_start <= floor:
            next_start = floor + 1
        start = next_start

    return chunks


__all__ = ["chunk_text"]
