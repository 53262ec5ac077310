"""Document upload and label management endpoints."""
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from clauseiq.auth import Principal
from clauseiq.context import AppContext
from clauseiq.errors import ValidationError

from .deps import elapsed_ms, get_context, request_id, require_principal, upload_principal
from .schemas import LabelListResponse, LabelUpdateRequest, LabelUpdateResponse, UploadResponse

router = APIRouter(prefix="/documents", tags=["documents"])


def _parse_metadata(raw: Optional[str]) -> Dict[str, Any]:
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError("metadata must be a JSON object", cause=exc) from exc
    if not isinstance(parsed, dict):
        raise ValidationError("metadata must be a JSON object")
    return parsed


@router.post("", response_model=UploadResponse)
async def upload_document(
    request: Request,
    file: Optional[UploadFile] = File(None),
    metadata: Optional[str] = Form(None),
    principal: Principal = Depends(upload_principal),
    context: AppContext = Depends(get_context),
) -> UploadResponse:
    """Ingest one document into the case named in ``metadata``."""

    if file is None:
        raise ValidationError("No file provided")
    parsed_metadata = _parse_metadata(metadata)
    if file.size is not None:
        context.pipeline.check_size(file.size)
    # one byte past the limit is enough for validate_upload to reject it
    data = await file.read(context.pipeline.config.max_upload_bytes + 1)

    result = await context.pipeline.ingest(
        data,
        file_name=file.filename or "upload",
        mime_type=file.content_type,
        owner_id=principal.user_id,
        metadata=parsed_metadata,
        req_id=request_id(request),
    )
    return UploadResponse(
        doc_id=result.doc_id,
        file_name=result.file_name,
        used_case=result.namespace,
        chunks=result.chunk_count,
        characters=result.character_count,
        file_url=result.file_url,
        ocr_used=result.ocr_used,
        message=f"Document processed: {result.chunk_count} chunks indexed in case '{result.namespace}'",
        processing_time_ms=elapsed_ms(request),
    )


@router.get("/labels", response_model=LabelListResponse)
async def list_labels(
    request: Request,
    principal: Principal = Depends(require_principal),
    context: AppContext = Depends(get_context),
) -> LabelListResponse:
    labels = await context.labels.list_labels(principal.user_id)
    return LabelListResponse(labels=labels, processing_time_ms=elapsed_ms(request))


@router.post("/labels", response_model=LabelUpdateResponse)
async def update_labels(
    request: Request,
    body: LabelUpdateRequest,
    principal: Principal = Depends(require_principal),
    context: AppContext = Depends(get_context),
) -> LabelUpdateResponse:
    """Add, remove or replace the labels of one of the caller's documents."""

    if not body.doc_id or body.labels is None:
        raise ValidationError("docId and labels array are required")
    update = await context.labels.update_labels(body.doc_id, principal.user_id, body.action or "", body.labels)
    return LabelUpdateResponse(
        doc_id=update.doc_id,
        file_name=update.file_name,
        labels=update.labels,
        processing_time_ms=elapsed_ms(request),
    )
