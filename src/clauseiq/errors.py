"""Domain exceptions shared by the ingestion and retrieval pipelines."""
from __future__ import annotations


class ClauseIQError(Exception):
    """Base class for errors that are reported to API callers.

    Every subclass carries a stable ``kind`` string and the HTTP status code
    the API layer should use when rendering it.
    """

    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        if cause is not None:
            self.__cause__ = cause


class ValidationError(ClauseIQError):
    """Raised when a request is rejected before any external call."""

    kind = "validation_error"
    status_code = 400


class AuthenticationError(ClauseIQError):
    """Raised for missing, malformed or expired bearer credentials."""

    kind = "unauthorized"
    status_code = 401


class RateLimitExceededError(ClauseIQError):
    kind = "rate_limited"
    status_code = 429

    def __init__(self, message: str, *, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class NotFoundError(ClauseIQError):
    kind = "not_found"
    status_code = 404


class NamespaceNotFoundError(NotFoundError):
    """Raised when the vector index reports a namespace as unknown."""

    kind = "case_not_found"

    def __init__(self, namespace: str, *, cause: BaseException | None = None) -> None:
        super().__init__(
            f"Case not found. Please check the case name or upload documents first. ({namespace})",
            cause=cause,
        )
        self.namespace = namespace


class DocumentNotFoundError(NotFoundError):
    kind = "document_not_found"

    def __init__(self, doc_id: str) -> None:
        super().__init__("Document not found or access denied")
        self.doc_id = doc_id


class ExtractionError(ClauseIQError):
    """Raised when neither direct extraction nor OCR produced any text."""

    kind = "extraction_failed"


class OCRError(ClauseIQError):
    kind = "ocr_failed"


class OCRTimeoutError(OCRError):
    """Raised when the uploaded file never reached the ready state."""

    kind = "ocr_timeout"


class QueryEmbeddingError(ClauseIQError):
    kind = "query_embedding_failed"


class ProcessingError(ClauseIQError):
    """Generic failure inside a pipeline stage."""

    kind = "processing_failed"


__all__ = [
    "AuthenticationError",
    "ClauseIQError",
    "DocumentNotFoundError",
    "ExtractionError",
    "NamespaceNotFoundError",
    "NotFoundError",
    "OCRError",
    "OCRTimeoutError",
    "ProcessingError",
    "QueryEmbeddingError",
    "RateLimitExceededError",
    "ValidationError",
]
