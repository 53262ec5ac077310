"""Centralised observability helpers for structured lifecycle logging."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
import traceback
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional


LOGGER = logging.getLogger("clauseiq.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "VECTOR_STORE",
    "PINECONE_INDEX",
    "EMBEDDING_PROVIDER",
    "EMBEDDING_MODEL",
    "EMBEDDING_DIMENSION",
    "LLM_PROVIDER",
    "LLM_MODEL",
    "DATABASE_PATH",
    "BLOB_DIR",
    "EXTRACT_PDF_TEXT",
    "QA_OWNER_FILTER",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    owner_id: str | None = None,
    namespace: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if owner_id:
        event["owner_id"] = owner_id
    if namespace:
        event["namespace"] = namespace
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    if extra:
        event.update(extra)
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event(*, vector_store: str, embedding_model: str, llm_model: str) -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
        "vector_store": vector_store,
        "embedding_model": embedding_model,
        "llm_model": llm_model,
    }
    payload = {
        "pid": os.getpid(),
        "hostname": socket.gethostname(),
        "cwd": str(Path.cwd()),
    }
    log_event(LOGGER, "app.startup", details=details, extra=payload)


def emit_ingest_event(
    step: str,
    *,
    file_name: str,
    req_id: str | None = None,
    owner_id: str | None = None,
    namespace: str | None = None,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    language: str | None = None,
    ocr: bool | None = None,
    chunks: int | None = None,
    characters: int | None = None,
    error: BaseException | None = None,
) -> None:
    details = {
        "file": file_name,
        "size_bytes": size_bytes,
        "language": language,
        "ocr": ocr,
        "chunks": chunks,
        "characters": characters,
    }
    level = "error" if error else "info"
    log_event(
        LOGGER,
        step,
        level=level,
        req_id=req_id,
        owner_id=owner_id,
        namespace=namespace,
        duration_ms=duration_ms,
        details=details,
        exc=error,
    )


def emit_extraction_event(
    *, file_name: str, kind: str, strategy: str, characters: int, duration_ms: float
) -> None:
    details = {
        "file": file_name,
        "kind": kind,
        "strategy": strategy,
        "characters": characters,
    }
    log_event(LOGGER, "extraction.complete", duration_ms=duration_ms, details=details)


def emit_ocr_event(
    step: str,
    *,
    file_name: str,
    attempt: int | None = None,
    remote_name: str | None = None,
    state: str | None = None,
    characters: int | None = None,
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    details = {
        "file": file_name,
        "attempt": attempt,
        "remote_name": remote_name,
        "state": state,
        "characters": characters,
    }
    level = "error" if error else "info"
    log_event(LOGGER, step, level=level, duration_ms=duration_ms, details=details, exc=error)


def emit_embeddings_event(
    *,
    model: str,
    count: int,
    duration_ms: float,
    errors: list[str] | None = None,
    zero_vectors: int = 0,
) -> None:
    details = {
        "model": model,
        "count": count,
        "duration_ms": round(duration_ms, 3),
        "errors": errors or [],
        "zero_vectors": zero_vectors,
        "per_item_ms": round(duration_ms / count, 3) if count else None,
    }
    level = "warning" if errors else "info"
    log_event(LOGGER, "embeddings.compute", level=level, details=details)


def emit_vectorstore_event(
    step: str,
    *,
    backend: str,
    index: str,
    namespace: str | None,
    count: int,
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    details = {
        "backend": backend,
        "index": index,
        "count": count,
    }
    level = "error" if error else "info"
    log_event(
        LOGGER,
        step,
        level=level,
        namespace=namespace,
        duration_ms=duration_ms,
        details=details,
        exc=error,
    )


def emit_retriever_event(
    *,
    mode: str,
    query: str,
    namespace: str,
    top_k: int,
    results: list[dict[str, Any]],
    duration_ms: float,
    req_id: str | None = None,
    owner_id: str | None = None,
) -> None:
    details = {
        "mode": mode,
        "query_preview": query[:120],
        "top_k": top_k,
        "results": results,
    }
    log_event(
        LOGGER,
        "retriever.search",
        req_id=req_id,
        owner_id=owner_id,
        namespace=namespace,
        duration_ms=duration_ms,
        details=details,
    )


def emit_prompt_event(*, sources: Iterable[str], context_chars: int, prompt_len: int) -> None:
    details = {
        "sources": list(sources),
        "context_chars": context_chars,
        "prompt_len": prompt_len,
    }
    log_event(LOGGER, "prompt.compose", details=details)


def emit_inference_result(
    *,
    req_id: str,
    duration_ms: float,
    model_used: str,
    answer_preview: str,
    fallback: bool,
    error: BaseException | None = None,
) -> None:
    details = {
        "model_used": model_used,
        "answer_preview": answer_preview[:120],
        "fallback": fallback,
    }
    level = "error" if error else "info"
    log_event(
        LOGGER,
        "inference.result",
        level=level,
        req_id=req_id,
        duration_ms=duration_ms,
        details=details,
        exc=error,
    )


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    owner_id: str | None = None,
    namespace: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        req_id=req_id,
        owner_id=owner_id,
        namespace=namespace,
        details=details,
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )


__all__ = [
    "emit_app_startup_event",
    "emit_embeddings_event",
    "emit_exception",
    "emit_extraction_event",
    "emit_inference_result",
    "emit_ingest_event",
    "emit_ocr_event",
    "emit_prompt_event",
    "emit_retriever_event",
    "emit_vectorstore_event",
    "log_event",
    "traced_duration",
]
