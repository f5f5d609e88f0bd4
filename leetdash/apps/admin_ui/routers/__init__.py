from . import cache, metrics

__all__ = ["cache", "metrics"]
