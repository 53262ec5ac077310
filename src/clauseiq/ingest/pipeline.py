"""Upload-to-index ingestion pipeline."""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from clauseiq.chunker import chunk_text
from clauseiq.config import DEFAULT_CASE_NAME
from clauseiq.documents import SQLiteDocumentRepository
from clauseiq.embeddings import EmbeddingGenerator
from clauseiq.errors import ClauseIQError, ExtractionError, ProcessingError, ValidationError
from clauseiq.fallback import TRY_NEXT, FallbackExhaustedError, Strategy, run_fallback_chain
from clauseiq.logging_config import AUDIT_LOGGER_NAME
from clauseiq.storage import BlobStore, sanitize_filename, temporary_copy
from clauseiq.telemetry import emit_exception, emit_extraction_event, emit_ingest_event
from clauseiq.vectorstore import VectorRecord, VectorStoreGateway, normalize_namespace, sanitize_metadata

from .extractors import TextExtractor
from .format_detection import DocumentKind, DocumentKindDetector
from .language import detect_language
from .models import Chunk, Document, IngestionResult
from .ocr import GeminiOCR

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

ALLOWED_KINDS = frozenset(
    {DocumentKind.PLAIN_TEXT, DocumentKind.WORD_PROCESSOR, DocumentKind.PDF, DocumentKind.IMAGE}
)


@dataclass(slots=True)
class IngestionConfig:
    max_upload_bytes: int = 50 * 1024 * 1024
    chunk_size: int = 1000
    chunk_overlap: int = 200
    min_extracted_chars: int = 100
    default_case_name: str = DEFAULT_CASE_NAME
    temp_dir: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Any) -> "IngestionConfig":
        return cls(
            max_upload_bytes=settings.max_upload_bytes,
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            min_extracted_chars=settings.min_extracted_chars,
            default_case_name=settings.default_case_name,
        )


def resolve_case_name(metadata: Mapping[str, Any], default: str = DEFAULT_CASE_NAME) -> str:
    """Pick the case name out of upload metadata, honouring the accepted aliases."""

    for key in ("caseName", "case_name", "collectionName"):
        value = metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return default


class IngestionPipeline:
    """Orchestrates blob upload, extraction, chunking, embedding and indexing.

    Stages run strictly in order. The document row is written last, so a
    failure at any earlier stage leaves no :class:`Document` behind.
    """

    def __init__(
        self,
        *,
        blob_store: BlobStore,
        extractor: TextExtractor,
        embeddings: EmbeddingGenerator,
        vector_store: VectorStoreGateway,
        repository: SQLiteDocumentRepository,
        ocr: Optional[GeminiOCR] = None,
        config: Optional[IngestionConfig] = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.config = config or IngestionConfig()
        self.blob_store = blob_store
        self.extractor = extractor
        self.embeddings = embeddings
        self.vector_store = vector_store
        self.repository = repository
        self.ocr = ocr
        self._id_factory = id_factory

    def check_size(self, size: int) -> None:
        if size > self.config.max_upload_bytes:
            limit_mb = self.config.max_upload_bytes / (1024 * 1024)
            raise ValidationError(f"File too large. Maximum size is {limit_mb:g}MB")

    def validate_upload(self, data: bytes, file_name: str, mime_type: Optional[str]) -> DocumentKind:
        if not data:
            raise ValidationError("No file provided")
        self.check_size(len(data))
        kind = DocumentKindDetector.detect(file_name, mime_type)
        if kind not in ALLOWED_KINDS:
            raise ValidationError(
                "Invalid file type. Only PDF, DOCX, TXT and image files (PNG, JPEG, WEBP, TIFF) are allowed."
            )
        return kind

    async def ingest(
        self,
        data: bytes,
        *,
        file_name: str,
        mime_type: Optional[str],
        owner_id: str,
        metadata: Optional[Mapping[str, Any]] = None,
        req_id: Optional[str] = None,
    ) -> IngestionResult:
        started = time.perf_counter()
        user_metadata: Dict[str, Any] = dict(metadata or {})
        file_name = Path(file_name or "upload").name
        kind = self.validate_upload(data, file_name, mime_type)
        file_type = DocumentKindDetector.mime_for(kind, file_name, mime_type)
        namespace = normalize_namespace(resolve_case_name(user_metadata, self.config.default_case_name))
        if not namespace:
            namespace = normalize_namespace(self.config.default_case_name)

        emit_ingest_event(
            "ingest.file.start",
            file_name=file_name,
            req_id=req_id,
            owner_id=owner_id,
            namespace=namespace,
            size_bytes=len(data),
        )

        try:
            doc_id = self._id_factory()
            file_url = await self.blob_store.put(data, f"documents/{doc_id}/{sanitize_filename(file_name)}")

            strategy, text = await self._extract_text(data, file_name, mime_type, kind)
            ocr_used = strategy == "ocr"
            language = detect_language(text)

            uploaded_at = datetime.now(timezone.utc).isoformat()
            base_metadata = {
                **sanitize_metadata(user_metadata),
                "doc_id": doc_id,
                "file_name": file_name,
                "file_type": file_type,
                "file_url": file_url,
                "uploaded_by": owner_id,
                "uploaded_at": uploaded_at,
                "namespace": namespace,
            }
            chunks = chunk_text(
                text,
                base_metadata,
                doc_id,
                chunk_size=self.config.chunk_size,
                overlap=self.config.chunk_overlap,
            )
            if not chunks:
                raise ProcessingError(f"No text chunks could be produced from {file_name}")

            vectors = await self.embeddings.embed_batch([chunk.content for chunk in chunks])
            await self.vector_store.ensure_index()
            upserted = await self.vector_store.upsert(namespace, self._records(chunks, vectors))
            LOGGER.info("Indexed %s vectors for %s in namespace %s", upserted, doc_id, namespace)

            document = Document(
                doc_id=doc_id,
                file_name=file_name,
                file_type=file_type,
                file_url=file_url,
                uploaded_by=owner_id,
                uploaded_at=uploaded_at,
                total_chunks=len(chunks),
                total_characters=len(text),
                namespace=namespace,
                metadata=user_metadata,
                language=language,
            )
            await asyncio.to_thread(self.repository.insert_document, document, chunks)
        except ClauseIQError as error:
            emit_ingest_event(
                "ingest.file.error",
                file_name=file_name,
                req_id=req_id,
                owner_id=owner_id,
                namespace=namespace,
                duration_ms=(time.perf_counter() - started) * 1000.0,
                error=error,
            )
            raise
        except Exception as error:
            emit_exception(module=f"{__name__}.ingest", error=error, req_id=req_id, owner_id=owner_id, namespace=namespace)
            raise ProcessingError(f"Failed to process {file_name}", cause=error) from error

        duration_ms = (time.perf_counter() - started) * 1000.0
        emit_ingest_event(
            "ingest.file.complete",
            file_name=file_name,
            req_id=req_id,
            owner_id=owner_id,
            namespace=namespace,
            size_bytes=len(data),
            duration_ms=duration_ms,
            language=language,
            ocr=ocr_used,
            chunks=len(chunks),
            characters=len(text),
        )
        AUDIT_LOGGER.info(
            {
                "event": "ingest",
                "doc_id": doc_id,
                "owner_id": owner_id,
                "namespace": namespace,
                "file_name": file_name,
                "chunk_count": len(chunks),
                "ocr": ocr_used,
            }
        )
        return IngestionResult(
            doc_id=doc_id,
            file_name=file_name,
            namespace=namespace,
            chunk_count=len(chunks),
            character_count=len(text),
            file_url=file_url,
            ocr_used=ocr_used,
            processing_time_ms=duration_ms,
        )

    async def _extract_text(
        self, data: bytes, file_name: str, mime_type: Optional[str], kind: DocumentKind
    ) -> Tuple[str, str]:
        """Return ``(strategy, text)`` from the direct, OCR, short-direct chain."""

        started = time.perf_counter()
        direct_text = ""

        async def _direct() -> Any:
            nonlocal direct_text
            try:
                direct_text = await self.extractor.extract(data, mime_type, file_name, kind)
            except ExtractionError as error:
                LOGGER.warning("Direct extraction failed for %s: %s", file_name, error)
                direct_text = ""
            if len(direct_text.strip()) >= self.config.min_extracted_chars:
                return direct_text
            return TRY_NEXT

        async def _ocr() -> Any:
            if self.ocr is None:
                LOGGER.info("OCR is not configured; skipping for %s", file_name)
                return TRY_NEXT
            ocr_mime = DocumentKindDetector.mime_for(kind, file_name, mime_type)
            async with temporary_copy(data, file_name, directory=self.config.temp_dir) as local_path:
                text = await self.ocr.ocr(local_path, ocr_mime)
            return text if text.strip() else TRY_NEXT

        async def _short_direct() -> Any:
            return direct_text if direct_text.strip() else TRY_NEXT

        try:
            strategy, text = await run_fallback_chain(
                [
                    Strategy("direct", _direct),
                    Strategy("ocr", _ocr),
                    Strategy("short_direct", _short_direct),
                ]
            )
        except FallbackExhaustedError as error:
            raise ExtractionError(f"No text could be extracted from {file_name}", cause=error) from error

        emit_extraction_event(
            file_name=file_name,
            kind=kind.value,
            strategy=strategy,
            characters=len(text),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return strategy, text

    @staticmethod
    def _records(chunks: List[Chunk], vectors: List[List[float]]) -> List[VectorRecord]:
        records: List[VectorRecord] = []
        for chunk, values in zip(chunks, vectors):
            metadata = {
                **chunk.metadata,
                "content": chunk.content,
                "doc_id": chunk.document_id,
                "chunk_index": chunk.index,
                "start_char": chunk.start_char,
                "end_char": chunk.end_char,
            }
            records.append(VectorRecord(id=chunk.vector_id, values=values, metadata=metadata))
        return records


__all__ = ["ALLOWED_KINDS", "IngestionConfig", "IngestionPipeline", "resolve_case_name"]
