"""Utilities for detecting the kind of uploaded documents."""
from __future__ import annotations

import mimetypes
from enum import Enum
from pathlib import Path
from typing import Optional


class DocumentKind(str, Enum):
    """Closed set of document variants the extractor knows how to handle."""

    PLAIN_TEXT = "plain_text"
    WORD_PROCESSOR = "word_processor"
    PDF = "pdf"
    IMAGE = "image"
    UNKNOWN = "unknown"


DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class DocumentKindDetector:
    """Resolve a :class:`DocumentKind` from a declared MIME type and file name."""

    _MIME_MAP = {
        "application/pdf": DocumentKind.PDF,
        DOCX_MIME: DocumentKind.WORD_PROCESSOR,
        "text/plain": DocumentKind.PLAIN_TEXT,
        "text/markdown": DocumentKind.PLAIN_TEXT,
        "image/png": DocumentKind.IMAGE,
        "image/jpeg": DocumentKind.IMAGE,
        "image/webp": DocumentKind.IMAGE,
        "image/tiff": DocumentKind.IMAGE,
    }

    _SUFFIX_MAP = {
        "pdf": DocumentKind.PDF,
        "docx": DocumentKind.WORD_PROCESSOR,
        "txt": DocumentKind.PLAIN_TEXT,
        "md": DocumentKind.PLAIN_TEXT,
        "png": DocumentKind.IMAGE,
        "jpg": DocumentKind.IMAGE,
        "jpeg": DocumentKind.IMAGE,
        "webp": DocumentKind.IMAGE,
        "tif": DocumentKind.IMAGE,
        "tiff": DocumentKind.IMAGE,
    }

    @classmethod
    def detect(cls, file_name: str, mime_type: Optional[str] = None) -> DocumentKind:
        """Return the detected document kind.

        The detector first considers the declared MIME type, then the file
        suffix, then `mimetypes.guess_type`. Anything unrecognised is
        ``UNKNOWN`` rather than an error so the caller can decide.
        """

        declared = (mime_type or "").split(";", 1)[0].strip().lower()
        if declared in cls._MIME_MAP:
            return cls._MIME_MAP[declared]

        suffix = Path(file_name or "").suffix.lower().lstrip(".")
        if suffix in cls._SUFFIX_MAP:
            return cls._SUFFIX_MAP[suffix]

        guessed_type, _ = mimetypes.guess_type(file_name or "")
        if guessed_type and guessed_type in cls._MIME_MAP:
            return cls._MIME_MAP[guessed_type]
        return DocumentKind.UNKNOWN

    @staticmethod
    def mime_for(kind: DocumentKind, file_name: str, declared: Optional[str] = None) -> str:
        """Best MIME type to hand to the OCR service for ``kind``."""

        if declared and declared != "application/octet-stream":
            return declared
        guessed, _ = mimetypes.guess_type(file_name or "")
        if guessed:
            return guessed
        if kind is DocumentKind.PDF:
            return "application/pdf"
        if kind is DocumentKind.WORD_PROCESSOR:
            return DOCX_MIME
        if kind is DocumentKind.PLAIN_TEXT:
            return "text/plain"
        return "application/octet-stream"


__all__ = ["DOCX_MIME", "DocumentKind", "DocumentKindDetector"]
