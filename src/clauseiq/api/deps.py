"""FastAPI dependencies resolving the app context, the caller and rate limits."""
from __future__ import annotations

import time
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from clauseiq.auth import Principal
from clauseiq.context import AppContext
from clauseiq.errors import ProcessingError

_bearer = HTTPBearer(auto_error=False)


def get_context(request: Request) -> AppContext:
    context: Optional[AppContext] = getattr(request.app.state, "context", None)
    if context is None:
        raise ProcessingError("Application context is not initialised")
    return context


def elapsed_ms(request: Request) -> float:
    """Milliseconds since the request entered the application."""

    started = getattr(request.state, "started_at", None)
    if started is None:
        return 0.0
    return round((time.perf_counter() - started) * 1000.0, 3)


def request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def require_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    context: AppContext = Depends(get_context),
) -> Principal:
    token = credentials.credentials if credentials else None
    return context.verifier.verify(token)


def _rate_limited(limiter_name: str) -> Callable[..., Principal]:
    def dependency(
        principal: Principal = Depends(require_principal),
        context: AppContext = Depends(get_context),
    ) -> Principal:
        getattr(context.limiters, limiter_name).hit(principal.user_id)
        return principal

    dependency.__name__ = f"{limiter_name}_rate_limited_principal"
    return dependency


upload_principal = _rate_limited("upload")
search_principal = _rate_limited("search")
qa_principal = _rate_limited("qa")


__all__ = [
    "elapsed_ms",
    "get_context",
    "qa_principal",
    "request_id",
    "require_principal",
    "search_principal",
    "upload_principal",
]
