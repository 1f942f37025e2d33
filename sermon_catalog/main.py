from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from sermon_catalog.api.routes import router
from sermon_catalog.config import AppSettings
from sermon_catalog.dependencies import (
    get_database,
    get_ingestion_service,
    get_reconciliation_service,
    get_settings,
    get_telemetry,
)
from sermon_catalog.logging_config import configure_application_logging
from sermon_catalog.services.scheduler_service import SchedulerService

LOGGER = logging.getLogger("sermon_catalog.app")


def health_check() -> dict[str, str]:
    return {"status": "ok"}


def build_scheduler(settings: AppSettings) -> SchedulerService:
    scheduler = SchedulerService(
        telemetry=get_telemetry(),
        lock_path=settings.data_dir / "scheduler.lock",
    )
    reconciliation = get_reconciliation_service()
    scheduler.schedule_every(
        settings.reconciliation_interval_seconds,
        reconciliation.run_once,
        name="reconciliation",
    )
    if settings.ingestion_interval_seconds > 0:
        ingestion = get_ingestion_service()
        scheduler.schedule_every(
            settings.ingestion_interval_seconds,
            ingestion.run_for_all_subcategories,
            name="ingestion",
        )
    return scheduler


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_application_logging(settings)
    get_database()
    scheduler: SchedulerService | None = None

    if settings.scheduler_enabled:
        scheduler = build_scheduler(settings)
        scheduler.start()
    else:
        LOGGER.info("scheduler disabled; reconciliation runs only on demand")

    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.stop()


def create_app() -> FastAPI:
    app = FastAPI(title="Sermon Catalog API", version="0.1.0", lifespan=app_lifespan)

    async def request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        telemetry = get_telemetry()
        incoming_request_id = request.headers.get("X-Request-ID")
        request_id = (
            incoming_request_id.strip()
            if isinstance(incoming_request_id, str) and incoming_request_id.strip()
            else str(uuid4())
        )
        context_tokens = bind_contextvars(
            http_request_id=request_id,
            http_method=request.method,
            http_path=request.url.path,
        )
        started_at = perf_counter()
        telemetry.emit(
            "http.request.start",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        try:
            response = await call_next(request)
        except Exception as exc:
            telemetry.emit(
                "http.request.error",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=int((perf_counter() - started_at) * 1000),
                error_type=type(exc).__name__,
            )
            raise
        else:
            response.headers["X-Request-ID"] = request_id
            telemetry.emit(
                "http.request.finish",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=int((perf_counter() - started_at) * 1000),
                status_code=response.status_code,
            )
            return response
        finally:
            reset_contextvars(**context_tokens)

    app.middleware("http")(request_context_middleware)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        tags=["system"],
        operation_id="health_check",
    )

    return app


app = create_app()
