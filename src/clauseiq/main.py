import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from clauseiq.api.deps import elapsed_ms, get_context
from clauseiq.api.documents import router as documents_router
from clauseiq.api.query import router as query_router
from clauseiq.api.schemas import ErrorResponse
from clauseiq.config import Settings
from clauseiq.context import AppContext
from clauseiq.errors import ClauseIQError, RateLimitExceededError
from clauseiq.logging_config import configure_logging
from clauseiq.telemetry import emit_app_startup_event, emit_exception
from clauseiq.vectorstore import VectorStoreUnavailableError

LOGGER = logging.getLogger(__name__)


def _error_response(request: Request, status_code: int, kind: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=kind, message=message, processing_time_ms=elapsed_ms(request))
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Build the HTTP application.

    A prepared ``context`` is used as-is and left open on shutdown; without
    one, logging is configured and a context is built from the environment
    when the application starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = app.state.context is None
        if owned:
            settings = Settings.from_env()
            configure_logging(settings.log_dir)
            app.state.context = AppContext.build(settings)
        ctx: AppContext = app.state.context
        emit_app_startup_event(
            vector_store=ctx.vector_store.backend_name,
            embedding_model=ctx.embeddings.model_name,
            llm_model=ctx.llm.model_name,
        )
        try:
            yield
        finally:
            if owned:
                ctx.close()
                app.state.context = None

    app = FastAPI(title="ClauseIQ Legal Document QA", lifespan=lifespan)
    app.state.context = context
    app.include_router(documents_router)
    app.include_router(query_router)

    @app.middleware("http")
    async def _track_request(request: Request, call_next):
        request.state.started_at = time.perf_counter()
        request.state.request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response

    @app.exception_handler(ClauseIQError)
    async def _handle_domain_error(request: Request, exc: ClauseIQError) -> JSONResponse:
        if exc.status_code >= 500:
            emit_exception(module="clauseiq.api", error=exc, req_id=getattr(request.state, "request_id", None))
        response = _error_response(request, exc.status_code, exc.kind, exc.message)
        if isinstance(exc, RateLimitExceededError):
            response.headers["Retry-After"] = str(max(1, int(round(exc.retry_after))))
        return response

    @app.exception_handler(RequestValidationError)
    async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request body"
        return _error_response(request, 400, "validation_error", message)

    @app.get("/", response_class=PlainTextResponse)
    def read_root() -> str:
        """Healthcheck endpoint for the service."""
        return "ok"

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthcheck() -> str:
        """Liveness probe used by container orchestrators."""
        return "ok"

    @app.get("/readyz", response_class=PlainTextResponse)
    async def readiness_probe(request: Request) -> str:
        """Readiness probe that ensures the vector store answers."""

        try:
            await get_context(request).vector_store.describe()
        except VectorStoreUnavailableError:
            raise
        except Exception as exc:
            LOGGER.warning("Readiness check failed: %s", exc)
            raise VectorStoreUnavailableError(f"Vector store is not ready: {exc}", cause=exc) from exc
        return "ok"

    return app


app = create_app()
