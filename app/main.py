from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.metrics import router as metrics_router
from app.api.users import router as users_router
from app.config import get_settings
from app.db.session import create_client, get_users_collection
from app.db.users import MongoUserGateway
from app.models.schemas import ErrorResponse
from app.observability.logging import configure_logging, shutdown_logging
from app.observability.middleware import RequestContextMiddleware
from app.observability.tracing import setup_tracing


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(level=settings.log_level, log_file=settings.log_path)
    log = structlog.get_logger("app")

    shutdown_tracing = setup_tracing(
        service_name=settings.service_name,
        service_version=settings.service_version,
        otlp_endpoint=settings.otlp_endpoint if settings.tracing_enabled else None,
        insecure=settings.otlp_insecure,
        console_export=settings.otel_console_export,
    )

    client = create_client(settings)
    app.state.user_gateway = MongoUserGateway(get_users_collection(client, settings))
    log.info(
        "app_started",
        service=settings.service_name,
        database=settings.mongo_database,
        collection=settings.mongo_collection,
    )
    try:
        yield
    finally:
        app.state.user_gateway = None
        await client.close()
        shutdown_tracing()
        log.info("app_stopped")
        shutdown_logging()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Users Service", version=settings.service_version, lifespan=lifespan)
    app.include_router(users_router)
    app.include_router(metrics_router)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=str(exc.detail)).model_dump(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        structlog.get_logger("app").exception("unhandled_error", path=request.url.path)
        return JSONResponse(status_code=500, content=ErrorResponse(error="Internal server error").model_dump())

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    if settings.tracing_enabled:
        FastAPIInstrumentor.instrument_app(app, excluded_urls="health,api/metrics")
    app.add_middleware(RequestContextMiddleware)
    return app


app = create_app()
