from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CacheStatusItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    expired: bool
    has_data: bool = Field(alias="hasData")


class CacheStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cache_status: List[CacheStatusItem] = Field(alias="cacheStatus")


class ClearCacheRequest(BaseModel):
    """Body of ``POST /api/cache/clear``; no key means clear everything."""

    model_config = ConfigDict(populate_by_name=True)

    cache_key: Optional[str] = Field(default=None, alias="cacheKey")
