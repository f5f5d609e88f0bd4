"""Warm-up planning: which keys get pre-computed and by which producer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Protocol, Sequence, TypeVar

from leetdash.services.cache import keys

Producer = Callable[[], Awaitable[Any]]

T = TypeVar("T")


class DashboardSource(Protocol):
    """Computes fresh dashboard payloads. Implemented outside the cache layer."""

    async def admin_dashboard(self) -> Any: ...

    async def university_dashboard(self) -> Any: ...

    async def batch_dashboard(self, batch: str) -> Any: ...

    async def list_student_ids(self) -> Sequence[int]:
        """Student ids in creation order."""
        ...

    async def student_dashboard(self, student_id: int) -> Any: ...


@dataclass(frozen=True)
class WarmUpTarget:
    key: str
    producer: Producer


@dataclass
class WarmUpReport:
    fixed_cached: int = 0
    entity_cached: int = 0
    entity_candidates: int = 0
    entity_selected: int = 0
    skipped: int = 0
    failed_keys: List[str] = field(default_factory=list)

    @property
    def cached(self) -> int:
        return self.fixed_cached + self.entity_cached

    @property
    def failed(self) -> int:
        return len(self.failed_keys)

    def as_dict(self) -> dict:
        return {
            "fixedCached": self.fixed_cached,
            "entityCached": self.entity_cached,
            "entityCandidates": self.entity_candidates,
            "entitySelected": self.entity_selected,
            "skipped": self.skipped,
            "failed": self.failed,
            "failedKeys": list(self.failed_keys),
            "cached": self.cached,
        }


def select_first(items: Sequence[T], limit: int) -> List[T]:
    """First ``limit`` items in the given (creation) order."""
    return list(items[: max(limit, 0)])


def select_last(items: Sequence[T], limit: int) -> List[T]:
    """Last ``limit`` items, i.e. the most recently created ones."""
    if limit <= 0:
        return []
    return list(items[-limit:])


SELECTION_POLICIES: dict[str, Callable[[Sequence[Any], int], List[Any]]] = {
    "first": select_first,
    "last": select_last,
}


def resolve_selection(name: str) -> Callable[[Sequence[Any], int], List[Any]]:
    try:
        return SELECTION_POLICIES[name]
    except KeyError as exc:
        raise ValueError(f"Unknown warm-up selection policy: {name!r}") from exc


def fixed_targets(source: DashboardSource, batches: Sequence[str]) -> List[WarmUpTarget]:
    targets = [
        WarmUpTarget(keys.admin(), source.admin_dashboard),
        WarmUpTarget(keys.university(), source.university_dashboard),
    ]
    for batch_name in batches:
        targets.append(WarmUpTarget(keys.batch(batch_name), _bind(source.batch_dashboard, batch_name)))
    return targets


def student_targets(source: DashboardSource, student_ids: Sequence[int]) -> List[WarmUpTarget]:
    return [
        WarmUpTarget(keys.student(student_id), _bind(source.student_dashboard, student_id))
        for student_id in student_ids
    ]


def _bind(func: Callable[[Any], Awaitable[Any]], arg: Any) -> Producer:
    async def producer() -> Any:
        return await func(arg)

    return producer


__all__ = [
    "DashboardSource",
    "Producer",
    "WarmUpTarget",
    "WarmUpReport",
    "select_first",
    "select_last",
    "resolve_selection",
    "fixed_targets",
    "student_targets",
]
