from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from milestone_escrow import db
from milestone_escrow.config import AppInfo, get_settings
from milestone_escrow.core.logging import get_logger, setup_logging
from milestone_escrow.core.runtime_state import set_scheduler_active
import milestone_escrow.models  # noqa: F401  registers the tables
from milestone_escrow.routers import get_api_router
from milestone_escrow.services.cron import report_stalled_work_once
from milestone_escrow.services.locks import ProjectLockRegistry
from milestone_escrow.services.scheduler_lock import (
    refresh_scheduler_lock,
    release_scheduler_lock,
    try_acquire_scheduler_lock,
)
from milestone_escrow.utils.errors import EscrowError, error_response

logger = get_logger(__name__)
scheduler: AsyncIOScheduler | None = None


def _configure_middlewares(fastapi_app: FastAPI) -> None:
    settings = get_settings()
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-API-Key"],
    )

    if settings.PROMETHEUS_ENABLED:
        from starlette_exporter import PrometheusMiddleware, handle_metrics

        fastapi_app.add_middleware(PrometheusMiddleware)
        fastapi_app.add_route("/metrics", handle_metrics)

    if settings.SENTRY_DSN:
        import sentry_sdk

        sentry_sdk.init(dsn=settings.SENTRY_DSN, traces_sample_rate=0.2)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info(
        "Application startup",
        extra={"env": settings.app_env, "independent_release": settings.INDEPENDENT_MILESTONE_RELEASE},
    )
    db.init_engine()

    # Run the stalled-work scan on exactly one runner, elected through the DB lock.
    set_scheduler_active(False)
    lock_acquired = False
    if settings.SCHEDULER_ENABLED:
        lock_acquired = try_acquire_scheduler_lock()
        if lock_acquired:
            global scheduler
            scheduler = AsyncIOScheduler()
            scheduler.start()
            scheduler.add_job(
                report_stalled_work_once,
                "interval",
                minutes=settings.STALLED_WORK_SCAN_MINUTES,
                id="stalled-work-scan",
                replace_existing=True,
            )
            scheduler.add_job(
                refresh_scheduler_lock,
                "interval",
                seconds=60,
                id="scheduler-lock-heartbeat",
                replace_existing=True,
            )
            set_scheduler_active(True)
        else:
            logger.warning(
                "Scheduler disabled because lock is already held by another instance.",
                extra={"env": settings.app_env},
            )
    try:
        yield
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)
        if lock_acquired:
            release_scheduler_lock()
        set_scheduler_active(False)
        db.close_engine()
        logger.info("Application shutdown", extra={"env": settings.app_env})


app_info = AppInfo()

app = FastAPI(title=app_info.name, version=app_info.version, lifespan=lifespan)
app.state.project_locks = ProjectLockRegistry()

_configure_middlewares(app)
app.include_router(get_api_router())


@app.exception_handler(EscrowError)
async def escrow_error_handler(request: Request, exc: EscrowError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Escrow operation failed", extra={"code": exc.code, "details": exc.details})
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", exc_info=exc)
    payload = error_response("INTERNAL_SERVER_ERROR", "An unexpected error occurred.")
    return JSONResponse(status_code=500, content=payload)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content: dict[str, Any] = detail
    else:
        content = error_response("HTTP_ERROR", str(detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


__all__ = ["app"]
