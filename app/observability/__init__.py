"""Observability helpers.

structlog JSON logging with trace correlation, OpenTelemetry spans per handler,
request IDs via contextvars, and an in-memory metrics snapshot endpoint.
"""
