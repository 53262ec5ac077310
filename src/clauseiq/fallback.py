"""Ordered fallback chains with an explicit "try next" signal."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Sequence, TypeVar, Union

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class _TryNext:
    """Sentinel returned by a strategy to hand over to the next one."""

    _instance: "_TryNext | None" = None

    def __new__(cls) -> "_TryNext":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "TRY_NEXT"

    def __bool__(self) -> bool:
        return False


TRY_NEXT = _TryNext()


@dataclass(slots=True)
class Strategy(Generic[T]):
    """A named step of a fallback chain."""

    name: str
    run: Callable[[], Awaitable[Union[T, _TryNext]]]


class FallbackExhaustedError(RuntimeError):
    """Raised when every strategy of a chain answered ``TRY_NEXT``."""

    def __init__(self, attempted: Sequence[str]) -> None:
        super().__init__(f"All strategies declined: {', '.join(attempted) or '<none>'}")
        self.attempted = list(attempted)


async def run_fallback_chain(strategies: Sequence[Strategy[T]]) -> tuple[str, T]:
    """Run ``strategies`` in order and return ``(name, value)`` of the first success.

    Exceptions raised by a strategy are not caught here; a strategy that wants
    to degrade gracefully returns ``TRY_NEXT`` instead.
    """

    attempted: list[str] = []
    for strategy in strategies:
        attempted.append(strategy.name)
        result = await strategy.run()
        if result is TRY_NEXT:
            LOGGER.debug("Strategy %s declined; trying next", strategy.name)
            continue
        return strategy.name, result  # type: ignore[return-value]
    raise FallbackExhaustedError(attempted)


__all__ = ["FallbackExhaustedError", "Strategy", "TRY_NEXT", "run_fallback_chain"]
