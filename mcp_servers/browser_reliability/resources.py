"""Registry of live disposable handles with leak accounting.

The tracker never owns a resource: it only remembers how to release it. Disposal of a
tracked id is routed exclusively through `ResourceTracker.dispose`, which pops the record
before awaiting the disposer so the same id can never be released twice.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .errors import ComponentKind, DisposedStateError

if TYPE_CHECKING:
    from .config import ConfigurationManager

logger = logging.getLogger("mcp.reliability.resources")

T = TypeVar("T")

Disposer = Callable[[], "Awaitable[None] | None"]


def _now_ms() -> float:
    return time.monotonic() * 1000.0


async def _run_disposer(disposer: Disposer) -> None:
    result = disposer()
    if inspect.isawaitable(result):
        await result


@dataclass(slots=True)
class HandleRecord:
    id: str
    category: str
    tracked_at: float
    disposer: Disposer
    resource: Any = None

    def age_ms(self, now: float | None = None) -> float:
        return (now if now is not None else _now_ms()) - self.tracked_at


@dataclass(slots=True)
class ResourceStats:
    total_tracked: int
    active_count: int
    expired_count: int
    peak_count: int
    by_category: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalTracked": self.total_tracked,
            "activeCount": self.active_count,
            "expiredCount": self.expired_count,
            "peakCount": self.peak_count,
            "byCategory": dict(self.by_category),
        }


@dataclass(slots=True)
class DisposeReport:
    disposed: int = 0
    failures: list[tuple[str, BaseException]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class ResourceTracker:
    """Shared handle registry for one automation context."""

    def __init__(self, config: ConfigurationManager | None = None) -> None:
        self._config = config
        self._records: dict[str, HandleRecord] = {}
        self._ids = itertools.count(1)
        self._peak = 0

    def _flags(self) -> dict[str, Any]:
        if self._config is None:
            return {"auto_dispose_timeout": 30000, "enable_leak_detection": True}
        return self._config.get_component_config(ComponentKind.RESOURCE_MANAGER).flags

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, handle_id: object) -> bool:
        return handle_id in self._records

    def track(self, resource: Any, disposer: Disposer, *, category: str = "handle") -> str:
        handle_id = f"resource_{next(self._ids)}"
        self._records[handle_id] = HandleRecord(
            id=handle_id,
            category=category,
            tracked_at=_now_ms(),
            disposer=disposer,
            resource=resource,
        )
        self._peak = max(self._peak, len(self._records))
        return handle_id

    def untrack(self, handle_id: str) -> bool:
        """Forget a handle without releasing it. Repeated calls are no-ops."""
        return self._records.pop(handle_id, None) is not None

    async def dispose(self, handle_id: str) -> bool:
        """Release and forget a handle. Returns False when it was already gone."""
        record = self._records.pop(handle_id, None)
        if record is None:
            return False
        await _run_disposer(record.disposer)
        return True

    def create_smart_handle(self, resource: T, disposer: Disposer, *, category: str = "handle") -> SmartHandle[T]:
        handle_id = self.track(resource, disposer, category=category)
        return SmartHandle(self, handle_id, resource)

    def find_leaks(self) -> list[HandleRecord]:
        """Handles alive past the dispose budget. Flagged only; never force-disposed."""
        flags = self._flags()
        if not flags["enable_leak_detection"]:
            return []
        now = _now_ms()
        budget = float(flags["auto_dispose_timeout"])
        return [rec for rec in self._records.values() if rec.age_ms(now) > budget]

    def get_stats(self) -> ResourceStats:
        expired = len(self.find_leaks())
        total = len(self._records)
        return ResourceStats(
            total_tracked=total,
            active_count=total - expired,
            expired_count=expired,
            peak_count=self._peak,
            by_category=dict(Counter(rec.category for rec in self._records.values())),
        )

    async def dispose_all(self) -> DisposeReport:
        """Settle-all disposal: every disposer runs regardless of sibling failures."""
        records = list(self._records.values())
        self._records.clear()
        if not records:
            return DisposeReport()

        results = await asyncio.gather(
            *(_run_disposer(rec.disposer) for rec in records),
            return_exceptions=True,
        )
        report = DisposeReport()
        for rec, outcome in zip(records, results, strict=True):
            if isinstance(outcome, BaseException):
                report.failures.append((rec.id, outcome))
            else:
                report.disposed += 1
        if report.failures:
            logger.warning(
                "dispose_all: %d/%d disposers failed: %s",
                len(report.failures),
                len(records),
                ", ".join(f"{hid}: {exc}" for hid, exc in report.failures[:5]),
            )
        return report


class SmartHandle(Generic[T]):
    """Explicit wrapper around a tracked resource; every accessor checks the disposed flag."""

    __slots__ = ("_tracker", "_id", "_resource", "_disposed")

    def __init__(self, tracker: ResourceTracker, handle_id: str, resource: T) -> None:
        self._tracker = tracker
        self._id = handle_id
        self._resource = resource
        self._disposed = False

    @property
    def id(self) -> str:
        return self._id

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _check(self) -> None:
        if self._disposed:
            raise DisposedStateError("SmartHandle")

    @property
    def resource(self) -> T:
        self._check()
        return self._resource

    def get(self) -> T:
        return self.resource

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        try:
            await self._tracker.dispose(self._id)
        finally:
            self._tracker.untrack(self._id)
            self._resource = None  # type: ignore[assignment]

    async def __aenter__(self) -> T:
        return self.resource

    async def __aexit__(self, *exc: object) -> None:
        await self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "live"
        return f"<SmartHandle {self._id} {state}>"


class SmartHandleBatch:
    """Group of SmartHandles released together."""

    def __init__(self, tracker: ResourceTracker) -> None:
        self._tracker = tracker
        self._handles: list[SmartHandle[Any]] = []
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def add(self, resource: T, disposer: Disposer, *, category: str = "handle") -> SmartHandle[T]:
        if self._disposed:
            raise DisposedStateError("SmartHandleBatch")
        handle = self._tracker.create_smart_handle(resource, disposer, category=category)
        self._handles.append(handle)
        return handle

    def active_count(self) -> int:
        return sum(1 for h in self._handles if not h.disposed)

    async def dispose_all(self) -> None:
        if self._disposed:
            return
        results = await asyncio.gather(*(h.dispose() for h in self._handles), return_exceptions=True)
        for outcome in results:
            if isinstance(outcome, BaseException):
                logger.warning("SmartHandleBatch disposal failed: %s", outcome)
        self._handles.clear()
        self._disposed = True


__all__ = [
    "DisposeReport",
    "Disposer",
    "HandleRecord",
    "ResourceStats",
    "ResourceTracker",
    "SmartHandle",
    "SmartHandleBatch",
]
