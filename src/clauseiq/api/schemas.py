"""Request and response bodies exposed over HTTP (camelCase on the wire)."""
from __future__ import annotations

from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CASE_NAME_ALIASES = AliasChoices("caseName", "case_name", "collectionName")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadResponse(CamelModel):
    success: bool = True
    doc_id: str
    file_name: str
    used_case: str
    chunks: int
    characters: int
    file_url: str
    ocr_used: bool
    message: str
    processing_time_ms: float


class SearchRequest(CamelModel):
    query: Optional[str] = None
    case_name: Optional[str] = Field(None, validation_alias=CASE_NAME_ALIASES)
    page: int = 1
    page_size: int = Field(10, validation_alias=AliasChoices("pageSize", "page_size"))


class SearchDocument(CamelModel):
    doc_id: str
    file_name: str
    file_type: str
    file_url: str
    uploaded_at: str
    total_chunks: int
    total_characters: int
    metadata: dict[str, Any]
    relevance_score: float
    chunk_count: int
    preview_text: str
    labels: List[str]
    language: Optional[str] = None


class SearchResponse(CamelModel):
    documents: List[SearchDocument]
    total_results: int
    page: int
    page_size: int
    used_case: str
    processing_time_ms: float


class QARequest(CamelModel):
    question: Optional[str] = None
    case_name: Optional[str] = Field(None, validation_alias=CASE_NAME_ALIASES)


class QASource(CamelModel):
    doc_id: str
    chunk_id: str
    relevance_score: float
    preview: str


class QAResponse(CamelModel):
    answer: str
    used_case: str
    sources: List[QASource]
    processing_time_ms: float


class LabelListResponse(CamelModel):
    labels: List[str]
    processing_time_ms: float


class LabelUpdateRequest(CamelModel):
    doc_id: Optional[str] = Field(None, validation_alias=AliasChoices("docId", "doc_id"))
    labels: Optional[List[str]] = None
    action: Optional[str] = None


class LabelUpdateResponse(CamelModel):
    success: bool = True
    doc_id: str
    file_name: str
    labels: List[str]
    processing_time_ms: float


class NamespaceStats(CamelModel):
    namespace: str
    vector_count: int


class InspectResponse(CamelModel):
    success: bool = True
    backend: str
    index_name: str
    dimension: Optional[int]
    total_vectors: int
    namespaces: List[NamespaceStats]
    processing_time_ms: float


class ErrorResponse(CamelModel):
    error: str
    message: str
    processing_time_ms: float
