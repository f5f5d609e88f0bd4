from .dashboard_cache import DashboardCacheStore

__all__ = ["DashboardCacheStore"]
