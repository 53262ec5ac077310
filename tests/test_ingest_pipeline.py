"""Tests for the ingestion pipeline using in-memory collaborators."""
from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, List, Optional, Sequence

import pytest

from clauseiq.documents import SQLiteDocumentRepository
from clauseiq.embeddings import DeterministicEmbeddingBackend, EmbeddingGenerator
from clauseiq.errors import ExtractionError, OCRError, ProcessingError, ValidationError
from clauseiq.ingest.extractors import TextExtractor
from clauseiq.ingest.pipeline import IngestionConfig, IngestionPipeline, resolve_case_name
from clauseiq.logging_config import configure_logging
from clauseiq.storage import LocalBlobStore
from clauseiq.vectorstore import VectorRecord
from clauseiq.vectorstore.memory_store import InMemoryVectorStore

DIMENSION = 32
LEASE_TEXT = (
    "This lease agreement is made between the landlord and the tenant. "
    "The tenant shall give 30 days written notice before terminating the lease. "
    "Rent is payable monthly in advance on the first day of each month."
)


class FakeOCR:
    def __init__(self, text: str = "", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.calls: List[tuple[Path, str]] = []

    async def ocr(self, local_path: Path, mime_type: str) -> str:
        assert Path(local_path).exists()
        self.calls.append((Path(local_path), mime_type))
        if self.error is not None:
            raise self.error
        return self.text


class BrokenVectorStore(InMemoryVectorStore):
    async def upsert(self, namespace: str, records: Sequence[VectorRecord]) -> int:
        raise ConnectionError("index unreachable")


class Harness:
    def __init__(self, tmp_path: Path, *, ocr: Any = None, vector_store: Any = None) -> None:
        self.temp_dir = tmp_path / "tmp"
        self.temp_dir.mkdir()
        self.repository = SQLiteDocumentRepository(":memory:")
        self.vector_store = vector_store or InMemoryVectorStore(dimension=DIMENSION)
        ids = iter(f"doc-{index}" for index in range(1, 100))
        self.pipeline = IngestionPipeline(
            blob_store=LocalBlobStore(tmp_path / "blobs"),
            extractor=TextExtractor(),
            embeddings=EmbeddingGenerator(DeterministicEmbeddingBackend(DIMENSION), dimension=DIMENSION),
            vector_store=self.vector_store,
            repository=self.repository,
            ocr=ocr,
            config=IngestionConfig(chunk_size=120, chunk_overlap=20, temp_dir=str(self.temp_dir)),
            id_factory=lambda: next(ids),
        )

    def ingest(self, data: bytes, file_name: str, mime_type: Optional[str], **kwargs: Any):
        kwargs.setdefault("owner_id", "alice")
        return asyncio.run(self.pipeline.ingest(data, file_name=file_name, mime_type=mime_type, **kwargs))


def test_text_upload_is_chunked_indexed_and_recorded(tmp_path: Path) -> None:
    harness = Harness(tmp_path)

    result = harness.ingest(
        LEASE_TEXT.encode("utf-8"),
        "lease.txt",
        "text/plain",
        metadata={"caseName": "Case A", "client": "ACME"},
    )

    assert result.doc_id == "doc-1"
    assert result.namespace == "case-a"
    assert result.ocr_used is False
    assert result.character_count == len(LEASE_TEXT)
    assert result.chunk_count > 1
    assert result.file_url.endswith("documents/doc-1/lease.txt")
    assert (tmp_path / "blobs" / "documents" / "doc-1" / "lease.txt").read_bytes() == LEASE_TEXT.encode("utf-8")

    stats = asyncio.run(harness.vector_store.describe())
    assert stats.namespaces == {"case-a": result.chunk_count}

    document = harness.repository.get_document("doc-1", "alice")
    assert document.total_chunks == result.chunk_count
    assert document.metadata == {"caseName": "Case A", "client": "ACME"}
    assert document.language == "en"
    assert [chunk.index for chunk in harness.repository.get_chunks("doc-1")] == list(range(result.chunk_count))


def test_vector_metadata_carries_chunk_and_owner_fields(tmp_path: Path) -> None:
    harness = Harness(tmp_path)
    harness.ingest(LEASE_TEXT.encode("utf-8"), "lease.txt", "text/plain", metadata={"caseName": "Case A"})

    vector = asyncio.run(harness.pipeline.embeddings.embed_query("30 days notice"))
    matches = asyncio.run(harness.vector_store.query("case-a", vector, 50))

    assert matches
    ids = {match.id for match in matches}
    assert "doc-1#chunk-0" in ids
    first = next(match for match in matches if match.id == "doc-1#chunk-0")
    assert first.metadata["uploaded_by"] == "alice"
    assert first.metadata["doc_id"] == "doc-1"
    assert first.metadata["chunk_index"] == 0
    assert first.metadata["start_char"] == 0
    assert first.metadata["end_char"] == len(first.content)
    assert first.metadata["file_type"] == "text/plain"


def test_missing_case_name_uses_default_namespace(tmp_path: Path) -> None:
    harness = Harness(tmp_path)

    result = harness.ingest(LEASE_TEXT.encode("utf-8"), "lease.txt", None)

    assert result.namespace == "default-case"


@pytest.mark.parametrize(
    "metadata, expected",
    [
        ({"caseName": " Smith v Jones "}, "Smith v Jones"),
        ({"case_name": "B"}, "B"),
        ({"collectionName": "C"}, "C"),
        ({"caseName": "   "}, "default-case"),
        ({}, "default-case"),
    ],
)
def test_resolve_case_name_aliases(metadata: dict, expected: str) -> None:
    assert resolve_case_name(metadata, "default-case") == expected


@pytest.mark.parametrize(
    "data, file_name, mime_type, message",
    [
        (b"", "empty.txt", "text/plain", "No file provided"),
        (b"MZ\x90\x00", "setup.exe", "application/octet-stream", "Invalid file type"),
    ],
)
def test_invalid_uploads_are_rejected_before_any_side_effect(
    tmp_path: Path, data: bytes, file_name: str, mime_type: str, message: str
) -> None:
    harness = Harness(tmp_path)

    with pytest.raises(ValidationError, match=message):
        harness.ingest(data, file_name, mime_type)

    assert not (tmp_path / "blobs").exists() or not any((tmp_path / "blobs").rglob("*.*"))
    assert harness.repository.count_documents() == 0


def test_oversized_upload_reports_limit(tmp_path: Path) -> None:
    harness = Harness(tmp_path)
    harness.pipeline.config.max_upload_bytes = 1024 * 1024

    with pytest.raises(ValidationError, match="Maximum size is 1MB"):
        harness.ingest(b"x" * (1024 * 1024 + 1), "big.txt", "text/plain")


def test_scanned_pdf_goes_through_ocr_and_temp_file_is_removed(tmp_path: Path) -> None:
    ocr = FakeOCR(text=LEASE_TEXT)
    harness = Harness(tmp_path, ocr=ocr)

    result = harness.ingest(b"%PDF-1.4 scanned image", "scan.pdf", "application/pdf")

    assert result.ocr_used is True
    assert result.character_count == len(LEASE_TEXT)
    (temp_path, mime_type), = ocr.calls
    assert mime_type == "application/pdf"
    assert temp_path.parent == harness.temp_dir
    assert not temp_path.exists()
    assert list(harness.temp_dir.iterdir()) == []


def test_ocr_failure_leaves_no_document_and_no_temp_file(tmp_path: Path) -> None:
    ocr = FakeOCR(error=OCRError("quota exhausted"))
    harness = Harness(tmp_path, ocr=ocr)

    with pytest.raises(OCRError):
        harness.ingest(b"\x89PNG\r\n\x1a\n", "photo.png", "image/png")

    assert harness.repository.count_documents() == 0
    assert list(harness.temp_dir.iterdir()) == []


def test_short_text_is_used_when_ocr_is_unavailable(tmp_path: Path) -> None:
    harness = Harness(tmp_path)

    result = harness.ingest(b"Clause 1. Notice is 30 days.", "short.txt", "text/plain")

    assert result.ocr_used is False
    assert result.chunk_count == 1


def test_image_without_ocr_fails_extraction(tmp_path: Path) -> None:
    harness = Harness(tmp_path)

    with pytest.raises(ExtractionError, match="No text could be extracted from photo.png"):
        harness.ingest(b"\x89PNG\r\n\x1a\n", "photo.png", "image/png")

    assert harness.repository.count_documents() == 0


def test_vector_store_failure_is_wrapped_and_no_document_is_recorded(tmp_path: Path) -> None:
    harness = Harness(tmp_path, vector_store=BrokenVectorStore(dimension=DIMENSION))

    with pytest.raises(ProcessingError, match="Failed to process lease.txt") as excinfo:
        harness.ingest(LEASE_TEXT.encode("utf-8"), "lease.txt", "text/plain")

    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert harness.repository.count_documents() == 0


def test_successful_ingest_is_written_to_audit_log(tmp_path: Path) -> None:
    log_dir = tmp_path / "logs"
    configure_logging(log_dir)
    harness = Harness(tmp_path)

    harness.ingest(LEASE_TEXT.encode("utf-8"), "lease.txt", "text/plain", metadata={"caseName": "Case A"})

    lines = (log_dir / "ingest_audit.log").read_text(encoding="utf-8").strip().splitlines()
    record = json.loads(lines[-1])
    assert record["event"] == "ingest"
    assert record["doc_id"] == "doc-1"
    assert record["owner_id"] == "alice"
    assert record["namespace"] == "case-a"
    assert record["ocr"] is False
