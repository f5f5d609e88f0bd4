"""Cache administration API: status listing, warm-up and invalidation."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse

from leetdash.apps.admin_ui.schemas import (
    CacheStatusItem,
    CacheStatusResponse,
    ClearCacheRequest,
)
from leetdash.services.cache import CacheService, DashboardSource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cache", tags=["cache"])


def get_cache_service(request: Request) -> CacheService:
    return request.app.state.cache_service


def get_dashboard_source(request: Request) -> Optional[DashboardSource]:
    return getattr(request.app.state, "dashboard_source", None)


@router.get("/status")
async def cache_status(service: CacheService = Depends(get_cache_service)) -> JSONResponse:
    statuses = await service.cache_status()
    response = CacheStatusResponse(
        cache_status=[
            CacheStatusItem(key=item.key, expired=item.expired, has_data=item.has_data)
            for item in statuses
        ]
    )
    return JSONResponse(response.model_dump(by_alias=True))


@router.post("/warm-up")
async def warm_up(
    service: CacheService = Depends(get_cache_service),
    source: Optional[DashboardSource] = Depends(get_dashboard_source),
) -> JSONResponse:
    if source is None:
        return JSONResponse(
            {"ok": False, "error": "dashboard_source_not_configured"},
            status_code=503,
        )
    report = await service.warm_up_from_source(source)
    return JSONResponse({"ok": True, "report": report.as_dict()})


@router.post("/clear")
async def clear(
    payload: Optional[ClearCacheRequest] = Body(default=None),
    service: CacheService = Depends(get_cache_service),
) -> JSONResponse:
    cache_key = (payload.cache_key or "").strip() if payload else ""
    if cache_key:
        await service.clear_cache(cache_key)
        return JSONResponse({"ok": True, "cleared": cache_key})
    await service.clear_all_cache()
    return JSONResponse({"ok": True, "cleared": "all"})
