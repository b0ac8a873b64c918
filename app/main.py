from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from app.schemas.dashboard import HealthResponse


def _validate_env() -> None:
    """
    Validate environment variables at startup.

    A missing LMS token is not fatal: every dashboard is then served from
    fallback data, so it is reported as a warning. A database cache backend
    without a database URL cannot start.
    """

    from app.config import get_cache_settings, get_lms_settings

    if not get_lms_settings().token:
        logging.getLogger(__name__).warning(
            "LMS_TOKEN is not set; dashboards will be built from fallback data."
        )

    if get_cache_settings().backend == "database":
        from db.config import resolve_database_url

        resolve_database_url()


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Check the cache medium, start dashboard polling on boot; stop it and close the LMS client on exit."""
    from app.config import get_cache_settings, get_dashboard_settings
    from app.scheduler.jobs import DashboardPoller, build_scheduler
    from app.services.dashboard_service import get_dashboard_service, get_lms_client

    log = logging.getLogger(__name__)
    if get_cache_settings().backend == "database":
        _check_db()
        log.info("Database connectivity confirmed")

    dashboard_settings = get_dashboard_settings()
    scheduler = build_scheduler()
    poller = DashboardPoller(
        scheduler=scheduler,
        service=get_dashboard_service(),
        interval_seconds=dashboard_settings.refresh_interval_seconds,
    )
    for user_id in dashboard_settings.watch_user_ids:
        poller.watch(user_id)
    scheduler.start()
    application.state.dashboard_poller = poller
    log.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        poller.stop_all()
        scheduler.shutdown(wait=False)
        await get_lms_client().aclose()
        get_dashboard_service.cache_clear()
        get_lms_client.cache_clear()
        log.info("Scheduler shut down")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _configure_logging()
    _validate_env()

    application = FastAPI(
        title="LMS Dashboard API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import dashboard_router

    application.include_router(dashboard_router)

    @application.get("/health")
    def healthcheck() -> HealthResponse:
        from app.config import get_cache_settings

        return HealthResponse(status="ok", cache_backend=get_cache_settings().backend)

    return application


app = create_app()
