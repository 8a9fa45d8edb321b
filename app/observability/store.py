from __future__ import annotations

from time import perf_counter
from typing import Awaitable, Callable, TypeVar

import structlog

from app.observability.metrics import get_metrics


T = TypeVar("T")


async def instrument_store_call(*, operation: str, collection: str, fn: Callable[[], Awaitable[T]]) -> T:
    """Time a document-store call, update metrics, and emit a debug log event.

    Failures are re-raised untouched; the request handler owns the error log line.
    """

    start = perf_counter()
    try:
        result = await fn()
    except Exception:
        elapsed_ms = (perf_counter() - start) * 1000.0
        get_metrics().observe_store_call(elapsed_ms=elapsed_ms, failed=True)
        structlog.get_logger("store").debug(
            "store_call",
            operation=operation,
            collection=collection,
            outcome="error",
            elapsed_ms=round(elapsed_ms, 2),
        )
        raise

    elapsed_ms = (perf_counter() - start) * 1000.0
    get_metrics().observe_store_call(elapsed_ms=elapsed_ms)
    structlog.get_logger("store").debug(
        "store_call",
        operation=operation,
        collection=collection,
        outcome="ok",
        elapsed_ms=round(elapsed_ms, 2),
    )
    return result
