"""Request-level services composed from the ingestion and retrieval building blocks."""

from .labels import LabelService, LabelUpdate
from .rag import AnswerResult, RetrievalService, SearchResult

__all__ = ["AnswerResult", "LabelService", "LabelUpdate", "RetrievalService", "SearchResult"]
