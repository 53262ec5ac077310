"""Document ingestion: type detection, extraction, OCR and the upload pipeline."""

from .format_detection import DocumentKind, DocumentKindDetector
from .models import Chunk, Document, IngestionResult

__all__ = [
    "Chunk",
    "Document",
    "DocumentKind",
    "DocumentKindDetector",
    "IngestionResult",
]
