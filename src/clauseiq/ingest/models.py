"""Data models used by the ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class Chunk:
    """A contiguous, trimmed slice of a document's extracted text."""

    document_id: str
    index: int
    content: str
    start_char: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def end_char(self) -> int:
        return self.start_char + len(self.content)

    @property
    def vector_id(self) -> str:
        return f"{self.document_id}#chunk-{self.index}"


@dataclass(slots=True)
class Document:
    """Metadata record persisted once a document is fully indexed."""

    doc_id: str
    file_name: str
    file_type: str
    file_url: str
    uploaded_by: str
    uploaded_at: str
    total_chunks: int
    total_characters: int
    namespace: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    labels: List[str] = field(default_factory=list)
    language: Optional[str] = None


@dataclass(slots=True)
class IngestionResult:
    """Outcome returned to the caller of a successful ingestion."""

    doc_id: str
    file_name: str
    namespace: str
    chunk_count: int
    character_count: int
    file_url: str
    ocr_used: bool
    processing_time_ms: float


__all__ = ["Chunk", "Document", "IngestionResult"]
