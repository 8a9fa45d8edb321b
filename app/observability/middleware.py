from __future__ import annotations

import uuid
from time import perf_counter
from typing import Any, Callable

import structlog
from starlette.datastructures import Headers, MutableHeaders

from app.observability.metrics import get_metrics

REQUEST_ID_HEADER = "X-Request-ID"


def _access_level(status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code >= 400:
        return "warning"
    return "info"


class RequestContextMiddleware:
    """Request id propagation, one access log line per request, and HTTP metrics.

    A caller-supplied X-Request-ID is reused; otherwise a uuid4 is minted. Either way
    it is echoed on the response and bound into structlog contextvars so handler
    log lines carry it.
    """

    def __init__(self, app: Callable[..., Any], excluded_metric_paths: set[str] | None = None) -> None:
        self.app = app
        self._excluded_metric_paths = excluded_metric_paths or {"/api/metrics"}

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = Headers(scope=scope).get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        path = scope.get("path")

        structlog.contextvars.bind_contextvars(request_id=request_id, path=path, method=scope.get("method"))

        start = perf_counter()
        status_code = 500

        async def send_with_request_id(message: dict[str, Any]) -> None:
            nonlocal status_code
            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            elapsed_ms = (perf_counter() - start) * 1000.0
            # Metrics first, so a logging failure cannot lose the observation.
            if path not in self._excluded_metric_paths:
                get_metrics().observe_http_request(elapsed_ms=elapsed_ms, status_code=status_code)

            log = structlog.get_logger("access")
            getattr(log, _access_level(status_code))(
                "http_request",
                status_code=status_code,
                elapsed_ms=round(elapsed_ms, 2),
            )
            structlog.contextvars.clear_contextvars()
