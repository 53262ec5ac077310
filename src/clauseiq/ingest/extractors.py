"""Direct text extraction for supported document kinds."""
from __future__ import annotations

import asyncio
import io
import logging
from typing import Callable, Dict, Optional

from docx import Document as load_docx

from clauseiq.errors import ExtractionError
from clauseiq.retry import RetryPolicy, Sleeper, retry_async

from .format_detection import DocumentKind, DocumentKindDetector

LOGGER = logging.getLogger(__name__)


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, (OSError, TimeoutError))


DEFAULT_EXTRACTION_RETRY = RetryPolicy(
    max_attempts=3,
    base_delay=0.2,
    multiplier=2.0,
    retryable=_is_transient,
)


def _extract_plain_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _extract_word_processor(data: bytes) -> str:
    document = load_docx(io.BytesIO(data))
    parts = [paragraph.text for paragraph in document.paragraphs if paragraph.text]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return "\n\n".join(parts)


def _extract_pdf_text(data: bytes) -> str:
    from pdfminer.high_level import extract_text

    return extract_text(io.BytesIO(data)) or ""


class TextExtractor:
    """Produce plain text from a raw upload, returning ``""`` when OCR is needed.

    PDFs go through OCR unless ``extract_pdf_text`` is enabled.
    """

    def __init__(
        self,
        *,
        extract_pdf_text: bool = False,
        retry_policy: RetryPolicy = DEFAULT_EXTRACTION_RETRY,
        sleep: Optional[Sleeper] = None,
    ) -> None:
        self.extract_pdf_text = extract_pdf_text
        self.retry_policy = retry_policy
        self._sleep = sleep
        self._handlers: Dict[DocumentKind, Optional[Callable[[bytes], str]]] = {
            DocumentKind.PLAIN_TEXT: _extract_plain_text,
            DocumentKind.WORD_PROCESSOR: _extract_word_processor,
            DocumentKind.PDF: _extract_pdf_text if extract_pdf_text else None,
            DocumentKind.IMAGE: None,
            DocumentKind.UNKNOWN: None,
        }

    async def extract(
        self,
        data: bytes,
        mime_type: Optional[str],
        file_name: str,
        kind: Optional[DocumentKind] = None,
    ) -> str:
        """Return the extracted text for ``data``.

        Raises :class:`ExtractionError` once the retry policy is exhausted.
        """

        kind = kind or DocumentKindDetector.detect(file_name, mime_type)
        handler = self._handlers[kind]
        if handler is None:
            LOGGER.info("No direct extractor for %s (%s); deferring to OCR", file_name, kind.value)
            return ""

        async def _run() -> str:
            return await asyncio.to_thread(handler, data)

        try:
            return await retry_async(
                _run,
                self.retry_policy,
                description=f"extract {file_name}",
                sleep=self._sleep,
            )
        except Exception as error:
            raise ExtractionError(f"Failed to extract text from {file_name}", cause=error) from error


__all__ = ["DEFAULT_EXTRACTION_RETRY", "TextExtractor"]
