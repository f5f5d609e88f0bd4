from .dashboard import DashboardClient, DashboardClientError, dashboard_mirror_key
from .indicator import CacheBadge, describe_cache_age
from .mirror import FileMirrorStorage, MemoryMirrorStorage, MirrorStorage
from .query import CachedQuery, CachedQueryState

__all__ = [
    "CachedQuery",
    "CachedQueryState",
    "CacheBadge",
    "DashboardClient",
    "DashboardClientError",
    "FileMirrorStorage",
    "MemoryMirrorStorage",
    "MirrorStorage",
    "dashboard_mirror_key",
    "describe_cache_age",
]
