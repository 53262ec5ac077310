"""Common exceptions for vector store integrations."""
from __future__ import annotations

from clauseiq.errors import ClauseIQError


class VectorStoreUnavailableError(ClauseIQError):
    """Raised when the vector store backend cannot be initialised or queried."""

    kind = "vector_store_unavailable"
    status_code = 503


class IndexNotReadyError(ClauseIQError):
    """Raised when a freshly created index never answered a status call."""

    kind = "index_not_ready"
    status_code = 500


__all__ = ["IndexNotReadyError", "VectorStoreUnavailableError"]
