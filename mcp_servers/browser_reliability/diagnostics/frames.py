"""Bookkeeping for frames inspected during structure analysis."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Hashable
from dataclasses import dataclass
from typing import Any

from ..engine import Frame
from ..errors import DisposedStateError

logger = logging.getLogger("mcp.reliability.analyzer")

LARGE_FRAME_ELEMENTS = 1000
OLD_FRAME_MS = 5 * 60 * 1000
DETACH_CHECK_TIMEOUT_S = 1.0


def _now_ms() -> float:
    return time.monotonic() * 1000.0


def frame_key(frame: Frame) -> Hashable:
    """Engine frame id when the wrapper exposes one, else object identity."""
    frame_id = getattr(frame, "frame_id", None)
    return frame_id if frame_id is not None else id(frame)


@dataclass(slots=True)
class FrameMetadata:
    url: str
    name: str
    tracked_at: float
    element_count: int = 0
    is_detached: bool = False


class FrameReferenceManager:
    """Tracks frames by engine frame id (or identity); never owns them."""

    def __init__(self) -> None:
        self._frames: dict[Hashable, tuple[Frame, FrameMetadata]] = {}
        self._disposed = False

    def _check(self) -> None:
        if self._disposed:
            raise DisposedStateError("FrameReferenceManager")

    @property
    def disposed(self) -> bool:
        return self._disposed

    def track_frame(self, frame: Frame, *, url: str = "", name: str = "") -> None:
        self._check()
        key = frame_key(frame)
        entry = self._frames.get(key)
        if entry is not None:
            # Same frame behind a fresh wrapper: keep metadata, check the newest wrapper.
            self._frames[key] = (frame, entry[1])
            return
        self._frames[key] = (frame, FrameMetadata(url=url, name=name, tracked_at=_now_ms()))

    def untrack_frame(self, frame: Frame) -> None:
        self._frames.pop(frame_key(frame), None)

    def update_element_count(self, frame: Frame, count: int) -> None:
        self._check()
        entry = self._frames.get(frame_key(frame))
        if entry is not None:
            entry[1].element_count = max(0, int(count))

    async def cleanup_detached_frames(self) -> int:
        """Check each frame's url() with a short budget; forget frames that fail."""
        self._check()
        entries = list(self._frames.items())
        if not entries:
            return 0

        async def check_url(frame: Frame) -> None:
            await asyncio.wait_for(frame.url(), timeout=DETACH_CHECK_TIMEOUT_S)

        results = await asyncio.gather(*(check_url(frame) for _, (frame, _) in entries), return_exceptions=True)
        removed = 0
        for (key, (_frame, meta)), outcome in zip(entries, results, strict=True):
            if isinstance(outcome, BaseException):
                meta.is_detached = True
                self._frames.pop(key, None)
                removed += 1
        if removed:
            logger.debug("Forgot %d detached frame(s)", removed)
        return removed

    def get_statistics(self) -> dict[str, Any]:
        metas = [meta for _frame, meta in self._frames.values()]
        total = len(metas)
        detached = sum(1 for m in metas if m.is_detached)
        avg = sum(m.element_count for m in metas) / total if total else 0.0
        return {
            "activeCount": total - detached,
            "totalTracked": total,
            "detachedCount": detached,
            "averageElementCount": round(avg, 2),
        }

    def find_performance_issues(self) -> dict[str, list[dict[str, Any]]]:
        now = _now_ms()
        large: list[dict[str, Any]] = []
        old: list[dict[str, Any]] = []
        for _frame, meta in self._frames.values():
            if meta.element_count > LARGE_FRAME_ELEMENTS:
                large.append({"url": meta.url, "elementCount": meta.element_count})
            age = now - meta.tracked_at
            if age > OLD_FRAME_MS:
                old.append({"url": meta.url, "ageMs": int(age)})
        return {"largeFrames": large, "oldFrames": old}

    def dispose(self) -> None:
        if self._disposed:
            return
        self._frames.clear()
        self._disposed = True


__all__ = ["FrameMetadata", "FrameReferenceManager", "frame_key"]
