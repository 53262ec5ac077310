"""Bearer credential verification with a short-lived verification cache."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import jwt
from cachetools import TTLCache

from clauseiq.errors import AuthenticationError

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class Principal:
    """Identity extracted from a verified bearer token."""

    user_id: str
    email: Optional[str] = None
    expires_at: Optional[float] = None
    claims: Dict[str, Any] = field(default_factory=dict)


class CredentialVerifier:
    """Verify HS256 JWTs and cache successful results for ``ttl_seconds``.

    ``clock`` drives cache eviction and ``wall_clock`` is compared with the
    token ``exp`` claim, so a cached principal never outlives its token.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        ttl_seconds: float = 300.0,
        maxsize: int = 4096,
        clock: Clock = time.monotonic,
        wall_clock: Clock = time.time,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._wall_clock = wall_clock
        self._cache: TTLCache[str, Principal] = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=clock)
        self._lock = threading.Lock()
        self.decode_count = 0

    def verify(self, token: Optional[str]) -> Principal:
        if not token:
            raise AuthenticationError("Unauthorized")

        with self._lock:
            cached = self._cache.get(token)
            if cached is not None:
                if cached.expires_at is None or cached.expires_at > self._wall_clock():
                    return cached
                self._cache.pop(token, None)

        self.decode_count += 1
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as error:
            raise AuthenticationError("Token expired", cause=error) from error
        except jwt.InvalidTokenError as error:
            LOGGER.info("Rejected bearer token: %s", error)
            raise AuthenticationError("Invalid token", cause=error) from error

        user_id = claims.get("userId") or claims.get("sub")
        if not user_id:
            raise AuthenticationError("Invalid token")

        exp = claims.get("exp")
        principal = Principal(
            user_id=str(user_id),
            email=claims.get("email"),
            expires_at=float(exp) if exp is not None else None,
            claims=dict(claims),
        )
        with self._lock:
            self._cache[token] = principal
        return principal


def create_access_token(
    user_id: str,
    secret: str,
    *,
    algorithm: str = "HS256",
    expires_in: float = 3600.0,
    email: Optional[str] = None,
    now: Optional[float] = None,
) -> str:
    """Issue a bearer token carrying ``user_id`` (used by local tooling and tests)."""

    issued_at = int(now if now is not None else time.time())
    payload: Dict[str, Any] = {
        "sub": user_id,
        "userId": user_id,
        "iat": issued_at,
        "exp": issued_at + int(expires_in),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm=algorithm)


__all__ = ["CredentialVerifier", "Principal", "create_access_token"]
