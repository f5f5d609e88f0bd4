"""
Outcome values for storage calls that must not raise.

``DashboardCacheStore`` answers every call with ``Success(value)`` or
``Failure(DatabaseError)``; the cache service checks ``is_failure()`` and
degrades (miss, expired, no-op) instead of letting the fault escape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    value: T

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Failure(Generic[E]):
    error: E

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def unwrap(self):
        """Re-raise the underlying exception (or the error itself)."""
        cause = getattr(self.error, "original_exception", None)
        if isinstance(cause, Exception):
            raise cause
        if isinstance(self.error, Exception):
            raise self.error
        raise RuntimeError(str(self.error))


Result = Union[Success[T], Failure[E]]


def success(value: T) -> Success[T]:
    return Success(value)


def failure(error: E) -> Failure[E]:
    return Failure(error)


@dataclass(frozen=True, slots=True)
class DatabaseError:
    """A failed store operation, e.g. ``DashboardCache.upsert``."""

    operation: str
    message: str
    original_exception: Optional[Exception] = None

    def __str__(self) -> str:
        return f"{self.operation} failed: {self.message}"


__all__ = ["DatabaseError", "Failure", "Result", "Success", "failure", "success"]
