"""Search and grounded question answering over indexed case documents."""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from clauseiq.documents import SQLiteDocumentRepository
from clauseiq.embeddings import EmbeddingGenerator
from clauseiq.errors import ValidationError
from clauseiq.ingest.models import Document
from clauseiq.llm_provider import LLM, LLMError
from clauseiq.logging_config import AUDIT_LOGGER_NAME
from clauseiq.prompt_builder import build_answer_prompt, build_context
from clauseiq.telemetry import emit_exception, emit_inference_result, emit_prompt_event, emit_retriever_event
from clauseiq.vectorstore import VectorMatch, VectorStoreGateway, normalize_namespace

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

NO_RESULTS_ANSWER = (
    "I couldn't find any relevant information in your documents to answer this question. "
    "Please try rephrasing your question or check if you've uploaded the relevant documents."
)
GENERATION_ERROR_ANSWER = "I encountered an error while generating the answer. Please try again."

MAX_QUERY_CHARS = 1000
MAX_CASE_NAME_CHARS = 100
SEARCH_PREVIEW_CHARS = 300
SOURCE_PREVIEW_CHARS = 200


def truncate_preview(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, marking the cut with an ellipsis."""

    return text[:limit] + "..." if len(text) > limit else text


@dataclass(slots=True)
class RetrievalConfig:
    search_top_k: int = 20
    search_max_documents: int = 10
    qa_top_k: int = 15
    qa_context_chunks: int = 10
    qa_owner_filter: bool = True

    @classmethod
    def from_settings(cls, settings: Any) -> "RetrievalConfig":
        return cls(
            search_top_k=settings.search_top_k,
            search_max_documents=settings.search_max_documents,
            qa_top_k=settings.qa_top_k,
            qa_context_chunks=settings.qa_context_chunks,
            qa_owner_filter=settings.qa_owner_filter,
        )


@dataclass(slots=True)
class DocumentHit:
    """A document ranked by the average score of its matching chunks."""

    document: Document
    relevance_score: float
    chunk_count: int
    preview: str


@dataclass(slots=True)
class SearchResult:
    documents: List[DocumentHit]
    total_results: int
    page: int
    page_size: int
    namespace: str
    processing_time_ms: float


@dataclass(slots=True)
class AnswerSource:
    doc_id: str
    chunk_id: str
    relevance_score: float
    preview: str


@dataclass(slots=True)
class AnswerResult:
    question: str
    answer: str
    namespace: str
    processing_time_ms: float
    sources: List[AnswerSource] = field(default_factory=list)


@dataclass(slots=True)
class _DocumentScore:
    total: float = 0.0
    count: int = 0
    best: Optional[VectorMatch] = None

    @property
    def average(self) -> float:
        return self.total / self.count if self.count else 0.0


def validate_query(query: Optional[str], case_name: Optional[str], *, field_name: str = "query") -> None:
    if not isinstance(query, str) or not query.strip():
        raise ValidationError(f"{field_name.capitalize()} is required and must be a non-empty string")
    if len(query) > MAX_QUERY_CHARS:
        raise ValidationError(f"{field_name.capitalize()} too long (max {MAX_QUERY_CHARS} characters)")
    if not isinstance(case_name, str) or not case_name.strip():
        raise ValidationError("Case name is required and must be a non-empty string")
    if len(case_name) > MAX_CASE_NAME_CHARS:
        raise ValidationError(f"Case name too long (max {MAX_CASE_NAME_CHARS} characters)")


def aggregate_by_document(matches: List[VectorMatch]) -> List[tuple[str, _DocumentScore]]:
    """Group chunk matches by document and rank by average score, stable on ties."""

    scores: Dict[str, _DocumentScore] = {}
    for match in matches:
        doc_id = match.doc_id
        if not doc_id:
            continue
        entry = scores.setdefault(doc_id, _DocumentScore())
        entry.total += match.score
        entry.count += 1
        if entry.best is None or match.score > entry.best.score:
            entry.best = match
    return sorted(scores.items(), key=lambda item: item[1].average, reverse=True)


class RetrievalService:
    """Embeds queries, searches one namespace and builds grounded answers."""

    def __init__(
        self,
        *,
        embeddings: EmbeddingGenerator,
        vector_store: VectorStoreGateway,
        repository: SQLiteDocumentRepository,
        llm: LLM,
        config: Optional[RetrievalConfig] = None,
    ) -> None:
        self.embeddings = embeddings
        self.vector_store = vector_store
        self.repository = repository
        self.llm = llm
        self.config = config or RetrievalConfig()

    async def search(
        self,
        query: str,
        case_name: str,
        *,
        owner_id: str,
        page: int = 1,
        page_size: int = 10,
        req_id: Optional[str] = None,
    ) -> SearchResult:
        started = time.perf_counter()
        validate_query(query, case_name)
        if page < 1 or page_size < 1:
            raise ValidationError("page and pageSize must be positive integers")
        namespace = normalize_namespace(case_name)

        await self.vector_store.ensure_index()
        vector = await self.embeddings.embed_query(query)
        matches = await self.vector_store.query(namespace, vector, self.config.search_top_k)

        ranked = aggregate_by_document(matches)[: self.config.search_max_documents]
        owned = await asyncio.to_thread(
            self.repository.get_documents, [doc_id for doc_id, _ in ranked], owner_id
        )
        hits: List[DocumentHit] = []
        for doc_id, entry in ranked:
            document = owned.get(doc_id)
            if document is None:
                continue
            best_content = entry.best.content if entry.best else ""
            hits.append(
                DocumentHit(
                    document=document,
                    relevance_score=entry.average,
                    chunk_count=entry.count,
                    preview=truncate_preview(best_content, SEARCH_PREVIEW_CHARS),
                )
            )

        offset = (page - 1) * page_size
        duration_ms = (time.perf_counter() - started) * 1000.0
        emit_retriever_event(
            mode="search",
            query=query,
            namespace=namespace,
            top_k=self.config.search_top_k,
            results=[{"doc_id": hit.document.doc_id, "score": round(hit.relevance_score, 4)} for hit in hits],
            duration_ms=duration_ms,
            req_id=req_id,
            owner_id=owner_id,
        )
        return SearchResult(
            documents=hits[offset : offset + page_size],
            total_results=len(hits),
            page=page,
            page_size=page_size,
            namespace=namespace,
            processing_time_ms=duration_ms,
        )

    async def answer(
        self,
        question: str,
        case_name: str,
        *,
        owner_id: str,
        req_id: Optional[str] = None,
    ) -> AnswerResult:
        started = time.perf_counter()
        validate_query(question, case_name, field_name="question")
        namespace = normalize_namespace(case_name)
        req_id = req_id or uuid.uuid4().hex

        await self.vector_store.ensure_index()
        vector = await self.embeddings.embed_query(question)
        metadata_filter = {"uploaded_by": owner_id} if self.config.qa_owner_filter else None
        matches = await self.vector_store.query(
            namespace, vector, self.config.qa_top_k, metadata_filter=metadata_filter
        )
        emit_retriever_event(
            mode="qa",
            query=question,
            namespace=namespace,
            top_k=self.config.qa_top_k,
            results=[{"id": match.id, "score": round(match.score, 4)} for match in matches],
            duration_ms=(time.perf_counter() - started) * 1000.0,
            req_id=req_id,
            owner_id=owner_id,
        )

        selected = self._select_context(matches)
        if not selected:
            emit_inference_result(
                req_id=req_id,
                duration_ms=0.0,
                model_used="none",
                answer_preview=NO_RESULTS_ANSWER,
                fallback=True,
            )
            return AnswerResult(
                question=question,
                answer=NO_RESULTS_ANSWER,
                namespace=namespace,
                processing_time_ms=(time.perf_counter() - started) * 1000.0,
            )

        context = build_context({"doc_id": match.doc_id, "content": match.content} for match in selected)
        prompt = build_answer_prompt(question, context)
        emit_prompt_event(
            sources=[match.id for match in selected],
            context_chars=len(context),
            prompt_len=len(prompt),
        )

        inference_started = time.perf_counter()
        try:
            answer_text = await self.llm.generate(prompt)
        except LLMError as error:
            LOGGER.warning("LLM generation failed for request %s: %s", req_id, error)
            emit_exception(module=f"{__name__}.llm", error=error, req_id=req_id, owner_id=owner_id, namespace=namespace)
            answer_text = GENERATION_ERROR_ANSWER
            fallback = True
        else:
            fallback = False
        emit_inference_result(
            req_id=req_id,
            duration_ms=(time.perf_counter() - inference_started) * 1000.0,
            model_used=self.llm.model_name,
            answer_preview=answer_text,
            fallback=fallback,
        )

        sources = [
            AnswerSource(
                doc_id=match.doc_id,
                chunk_id=match.id,
                relevance_score=match.score,
                preview=truncate_preview(match.content, SOURCE_PREVIEW_CHARS),
            )
            for match in selected
        ]
        AUDIT_LOGGER.info(
            {
                "event": "qa",
                "req_id": req_id,
                "owner_id": owner_id,
                "namespace": namespace,
                "question": question,
                "sources": [source.chunk_id for source in sources],
            }
        )
        return AnswerResult(
            question=question,
            answer=answer_text,
            namespace=namespace,
            processing_time_ms=(time.perf_counter() - started) * 1000.0,
            sources=sources,
        )

    def _select_context(self, matches: List[VectorMatch]) -> List[VectorMatch]:
        """Top chunks by score with content, one entry per chunk id."""

        ranked = sorted((match for match in matches if match.content), key=lambda match: match.score, reverse=True)
        selected: List[VectorMatch] = []
        seen: set[str] = set()
        for match in ranked:
            if match.id in seen:
                continue
            seen.add(match.id)
            selected.append(match)
            if len(selected) >= self.config.qa_context_chunks:
                break
        return selected


__all__ = [
    "AnswerResult",
    "AnswerSource",
    "DocumentHit",
    "GENERATION_ERROR_ANSWER",
    "NO_RESULTS_ANSWER",
    "RetrievalConfig",
    "RetrievalService",
    "SearchResult",
    "aggregate_by_document",
    "truncate_preview",
    "validate_query",
]
