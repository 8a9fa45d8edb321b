"""OpenTelemetry tracing setup and per-operation spans.

Handlers open one span per invocation with `operation_span`, parented on the
inbound request's trace context, and log through a structlog logger bound to
the same trace.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from fastapi import Request
from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, SpanKind, Status, StatusCode, Tracer
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

TRACER_NAME = "users-service"

_tracer: Tracer | None = None
_propagator = TraceContextTextMapPropagator()


def setup_tracing(
    service_name: str,
    service_version: str = "1.0.0",
    otlp_endpoint: str | None = None,
    insecure: bool = True,
    console_export: bool = False,
) -> Callable[[], None]:
    """Install a global TracerProvider and return the matching shutdown action.

    Args:
        service_name: `service.name` resource attribute
        service_version: `service.version` resource attribute
        otlp_endpoint: OTLP gRPC endpoint (e.g. "localhost:4317"); no export when empty
        insecure: Use a plaintext gRPC channel
        console_export: Also print spans to stdout

    Returns:
        Callable that flushes pending spans and shuts the provider down
    """
    resource = Resource.create({SERVICE_NAME: service_name, SERVICE_VERSION: service_version})
    provider = TracerProvider(resource=resource)

    if otlp_endpoint:
        exporter = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=insecure)
        provider.add_span_processor(BatchSpanProcessor(exporter))

    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    set_tracer(provider.get_tracer(TRACER_NAME))

    def shutdown() -> None:
        try:
            provider.shutdown()
        except Exception:
            structlog.get_logger("tracing").exception("tracer_provider_shutdown_failed")
        set_tracer(None)

    return shutdown


def set_tracer(tracer: Tracer | None) -> None:
    global _tracer
    _tracer = tracer


def get_tracer() -> Tracer:
    """The configured tracer, or whatever the global provider hands out (no-op by default)."""
    if _tracer is None:
        return trace.get_tracer(TRACER_NAME)
    return _tracer


def extract_context(headers: dict[str, str]) -> Context:
    """Read W3C Trace Context (traceparent/tracestate) from request headers."""
    return _propagator.extract(carrier=headers)


def request_context(request: Request) -> Context | None:
    # The FastAPI instrumentation has already opened a server span from the
    # propagated headers; nest under it. Without it, extract the headers here.
    if trace.get_current_span().get_span_context().is_valid:
        return None
    return extract_context(dict(request.headers))


def _format_ids(span: Span) -> dict[str, str]:
    ctx = span.get_span_context()
    if not ctx.is_valid:
        return {}
    return {"trace_id": format(ctx.trace_id, "032x"), "span_id": format(ctx.span_id, "016x")}


class OperationContext:
    """Span plus trace-correlated logger for one handler invocation."""

    def __init__(self, span: Span, log: Any) -> None:
        self.span = span
        self.log = log

    def set_user_id(self, user_id: str) -> None:
        self.span.set_attribute("user.id", user_id)
        self.log = self.log.bind(user_id=user_id)

    def fail(self, exc: BaseException) -> None:
        self.span.record_exception(exc)
        self.span.set_status(Status(StatusCode.ERROR, str(exc)))


@contextmanager
def operation_span(request: Request, name: str) -> Iterator[OperationContext]:
    """Open the span for a handler; it ends when the block exits, however it exits."""
    with get_tracer().start_as_current_span(
        name,
        context=request_context(request),
        kind=SpanKind.INTERNAL,
        record_exception=True,
        set_status_on_exception=True,
    ) as span:
        log = structlog.get_logger("users").bind(operation=name, **_format_ids(span))
        yield OperationContext(span, log)
