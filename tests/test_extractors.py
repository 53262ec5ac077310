import asyncio
import io
from typing import List

import pytest
from docx import Document as DocxDocument

from clauseiq.errors import ExtractionError
from clauseiq.ingest.extractors import TextExtractor
from clauseiq.ingest.format_detection import DOCX_MIME, DocumentKind, DocumentKindDetector


async def _no_sleep(delay: float) -> None:
    return None


def _docx_bytes() -> bytes:
    document = DocxDocument()
    document.add_paragraph("Lease Agreement")
    document.add_paragraph("The tenant shall give 30 days notice.")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Rent"
    table.rows[0].cells[1].text = "1200 EUR"
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


@pytest.mark.parametrize(
    ("file_name", "mime_type", "expected"),
    [
        ("brief.pdf", "application/pdf", DocumentKind.PDF),
        ("brief.bin", "application/pdf", DocumentKind.PDF),
        ("contract.docx", None, DocumentKind.WORD_PROCESSOR),
        ("contract.DOCX", "application/octet-stream", DocumentKind.WORD_PROCESSOR),
        ("notes.txt", "text/plain; charset=utf-8", DocumentKind.PLAIN_TEXT),
        ("scan.jpeg", "", DocumentKind.IMAGE),
        ("scan.tif", None, DocumentKind.IMAGE),
        ("archive.zip", "application/zip", DocumentKind.UNKNOWN),
        ("", None, DocumentKind.UNKNOWN),
    ],
)
def test_document_kind_detection(file_name: str, mime_type: str, expected: DocumentKind) -> None:
    assert DocumentKindDetector.detect(file_name, mime_type) is expected


def test_mime_for_prefers_declared_type() -> None:
    assert DocumentKindDetector.mime_for(DocumentKind.PDF, "a.pdf", "application/pdf") == "application/pdf"
    assert DocumentKindDetector.mime_for(DocumentKind.WORD_PROCESSOR, "x", None) == DOCX_MIME
    assert DocumentKindDetector.mime_for(DocumentKind.IMAGE, "scan.png", "application/octet-stream") == "image/png"


def test_plain_text_is_decoded_as_utf8() -> None:
    extractor = TextExtractor()

    text = asyncio.run(extractor.extract("Договор за наем".encode("utf-8"), "text/plain", "bg.txt"))

    assert text == "Договор за наем"


def test_word_processor_paragraphs_and_tables() -> None:
    extractor = TextExtractor()

    text = asyncio.run(extractor.extract(_docx_bytes(), DOCX_MIME, "lease.docx"))

    assert "Lease Agreement" in text
    assert "The tenant shall give 30 days notice." in text
    assert "Rent | 1200 EUR" in text


def test_pdf_and_images_defer_to_ocr() -> None:
    extractor = TextExtractor()

    assert asyncio.run(extractor.extract(b"%PDF-1.4 not parsed", "application/pdf", "scan.pdf")) == ""
    assert asyncio.run(extractor.extract(b"\x89PNG", "image/png", "page.png")) == ""


def test_transient_errors_are_retried() -> None:
    calls: List[int] = []

    def flaky(data: bytes) -> str:
        calls.append(1)
        if len(calls) < 3:
            raise OSError("temporarily unavailable")
        return data.decode("utf-8")

    extractor = TextExtractor(sleep=_no_sleep)
    extractor._handlers[DocumentKind.PLAIN_TEXT] = flaky

    assert asyncio.run(extractor.extract(b"hello", "text/plain", "a.txt")) == "hello"
    assert len(calls) == 3


def test_parse_errors_fail_without_retry() -> None:
    calls: List[int] = []

    def broken(data: bytes) -> str:
        calls.append(1)
        raise ValueError("not a zip file")

    extractor = TextExtractor(sleep=_no_sleep)
    extractor._handlers[DocumentKind.WORD_PROCESSOR] = broken

    with pytest.raises(ExtractionError):
        asyncio.run(extractor.extract(b"garbage", DOCX_MIME, "broken.docx"))
    assert len(calls) == 1


def test_corrupt_docx_raises_extraction_error() -> None:
    extractor = TextExtractor(sleep=_no_sleep)

    with pytest.raises(ExtractionError):
        asyncio.run(extractor.extract(b"definitely not a docx", DOCX_MIME, "broken.docx"))
