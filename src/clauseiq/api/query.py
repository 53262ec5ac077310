"""Search, question answering and index inspection endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from clauseiq.auth import Principal
from clauseiq.context import AppContext

from .deps import elapsed_ms, get_context, qa_principal, request_id, require_principal, search_principal
from .schemas import (
    InspectResponse,
    NamespaceStats,
    QARequest,
    QAResponse,
    QASource,
    SearchDocument,
    SearchRequest,
    SearchResponse,
)

router = APIRouter(tags=["query"])


@router.post("/search", response_model=SearchResponse)
async def search_documents(
    request: Request,
    body: SearchRequest,
    principal: Principal = Depends(search_principal),
    context: AppContext = Depends(get_context),
) -> SearchResponse:
    """Rank the caller's documents in one case by relevance to ``query``."""

    result = await context.retrieval.search(
        body.query,
        body.case_name,
        owner_id=principal.user_id,
        page=body.page,
        page_size=body.page_size,
        req_id=request_id(request),
    )
    documents = [
        SearchDocument(
            doc_id=hit.document.doc_id,
            file_name=hit.document.file_name,
            file_type=hit.document.file_type,
            file_url=hit.document.file_url,
            uploaded_at=hit.document.uploaded_at,
            total_chunks=hit.document.total_chunks,
            total_characters=hit.document.total_characters,
            metadata=hit.document.metadata,
            relevance_score=hit.relevance_score,
            chunk_count=hit.chunk_count,
            preview_text=hit.preview,
            labels=hit.document.labels,
            language=hit.document.language,
        )
        for hit in result.documents
    ]
    return SearchResponse(
        documents=documents,
        total_results=result.total_results,
        page=result.page,
        page_size=result.page_size,
        used_case=result.namespace,
        processing_time_ms=elapsed_ms(request),
    )


@router.post("/qa", response_model=QAResponse)
async def answer_question(
    request: Request,
    body: QARequest,
    principal: Principal = Depends(qa_principal),
    context: AppContext = Depends(get_context),
) -> QAResponse:
    """Answer ``question`` strictly from the caller's documents in one case."""

    result = await context.retrieval.answer(
        body.question,
        body.case_name,
        owner_id=principal.user_id,
        req_id=request_id(request),
    )
    return QAResponse(
        answer=result.answer,
        used_case=result.namespace,
        sources=[
            QASource(
                doc_id=source.doc_id,
                chunk_id=source.chunk_id,
                relevance_score=source.relevance_score,
                preview=source.preview,
            )
            for source in result.sources
        ],
        processing_time_ms=elapsed_ms(request),
    )


@router.get("/inspect", response_model=InspectResponse)
async def inspect_index(
    request: Request,
    principal: Principal = Depends(require_principal),
    context: AppContext = Depends(get_context),
) -> InspectResponse:
    stats = await context.vector_store.describe()
    return InspectResponse(
        backend=context.vector_store.backend_name,
        index_name=stats.name,
        dimension=stats.dimension,
        total_vectors=stats.total_vector_count,
        namespaces=[
            NamespaceStats(namespace=name, vector_count=count)
            for name, count in sorted(stats.namespaces.items())
        ],
        processing_time_ms=elapsed_ms(request),
    )
