from .service import CacheResult, CacheService, CacheStatus
from .warmup import DashboardSource, WarmUpReport, WarmUpTarget

__all__ = [
    "CacheService",
    "CacheResult",
    "CacheStatus",
    "DashboardSource",
    "WarmUpReport",
    "WarmUpTarget",
]
