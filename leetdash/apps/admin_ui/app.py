"""FastAPI application wiring for the dashboard admin API."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from leetdash.apps.admin_ui.routers import cache, metrics
from leetdash.core.db import dispose_engine, init_models
from leetdash.core.error_handler import safe_background_task, setup_global_exception_handler
from leetdash.core.logging import configure_logging
from leetdash.core.settings import get_settings
from leetdash.services.cache import CacheService, DashboardSource

configure_logging()
request_logger = logging.getLogger("leetdash.requests")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan: schema, cleanup scheduler and startup warm-up.

    At teardown the startup warm-up and background refreshes are awaited,
    not cancelled, so no producer call is abandoned half way.
    """
    setup_global_exception_handler()
    logger.info("Starting leetdash admin API...")

    settings = get_settings()
    service: CacheService = app.state.cache_service

    await init_models()
    service.start_cache_cleanup()

    source: Optional[DashboardSource] = app.state.dashboard_source
    if source is not None and settings.cache_warmup_on_startup:
        warmup_task = safe_background_task(
            "dashboard_cache_warmup",
            service.warm_up_from_source(source),
        )
        app.state.cache_warmup_task = warmup_task
        logger.info("Cache warm-up started in background")

    try:
        yield
    finally:
        logger.info("Shutting down application...")
        warmup_task = app.state.cache_warmup_task
        if warmup_task is not None and not warmup_task.done():
            logger.info("Waiting for cache warm-up to finish...")
            await warmup_task
        await service.wait_for_refreshes()
        service.shutdown()
        await dispose_engine()
        logger.info("Application shut down complete")


def create_app(
    *,
    cache_service: Optional[CacheService] = None,
    dashboard_source: Optional[DashboardSource] = None,
) -> FastAPI:
    app = FastAPI(title="leetdash admin API", lifespan=lifespan)
    app.state.cache_service = cache_service or CacheService()
    app.state.dashboard_source = dashboard_source
    app.state.cache_warmup_task = None

    app.include_router(metrics.router)
    app.include_router(cache.router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration = (time.perf_counter() - start) * 1000
            request_logger.exception(
                "HTTP %s %s failed after %.1f ms",
                request.method,
                request.url.path,
                duration,
            )
            raise
        duration = (time.perf_counter() - start) * 1000
        request_logger.info(
            "HTTP %s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )
        return response

    return app


__all__ = ["create_app", "lifespan"]
