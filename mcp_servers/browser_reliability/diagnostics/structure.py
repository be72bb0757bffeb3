"""
Single-pass inspection of the current page.

Provides:
- analyze_structure: iframe census + modal-blocking heuristics + element tallies
- analyze_performance: DOM/interaction/resource/layout metrics with threshold warnings
- recommend_parallel: cheap complexity pre-check (hint only)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..errors import ComponentKind, DisposedStateError
from .frames import FrameReferenceManager
from .scripts import (
    COMPLEXITY_SCRIPT,
    ELEMENT_COUNT_SCRIPT,
    ELEMENT_STATS_SCRIPT,
    MODAL_STATE_SCRIPT,
    PERFORMANCE_METRICS_SCRIPT,
)

if TYPE_CHECKING:
    from ..config import ConfigurationManager
    from ..engine import AutomationEngine, ElementHandle
    from ..resources import ResourceTracker

logger = logging.getLogger("mcp.reliability.analyzer")

FRAME_ACCESS_TIMEOUT_S = 1.0
IMAGE_HEAVY_COUNT = 20
ESTIMATED_KB_PER_IMAGE = 50

REASON_NO_CONTENT_FRAME = "Content frame not available"
REASON_INACCESSIBLE = "Frame content not accessible - cross-origin or blocked"


@dataclass(frozen=True)
class IframeReport:
    detected: bool = False
    count: int = 0
    accessible: tuple[dict[str, Any], ...] = ()
    inaccessible: tuple[dict[str, Any], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "detected": self.detected,
            "count": self.count,
            "accessible": [dict(x) for x in self.accessible],
            "inaccessible": [dict(x) for x in self.inaccessible],
        }


@dataclass(frozen=True)
class ModalState:
    has_dialog: bool = False
    has_file_chooser: bool = False
    blocked_by: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasDialog": self.has_dialog,
            "hasFileChooser": self.has_file_chooser,
            "blockedBy": list(self.blocked_by),
        }


@dataclass(frozen=True)
class ElementStats:
    total_visible: int = 0
    total_interactable: int = 0
    missing_aria: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalVisible": self.total_visible,
            "totalInteractable": self.total_interactable,
            "missingAria": self.missing_aria,
        }


@dataclass(frozen=True)
class StructureSnapshot:
    iframes: IframeReport = field(default_factory=IframeReport)
    modal_states: ModalState = field(default_factory=ModalState)
    elements: ElementStats = field(default_factory=ElementStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "iframes": self.iframes.to_dict(),
            "modalStates": self.modal_states.to_dict(),
            "elements": self.elements.to_dict(),
        }


@dataclass(frozen=True)
class PerformanceWarning:
    type: str  # dom_complexity | interaction_overload | resource_heavy | layout_issue
    level: str  # warning | danger
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "level": self.level, "message": self.message}


def _empty_dom() -> dict[str, Any]:
    return {"totalElements": 0, "maxDepth": 0, "largeSubtrees": []}


def _empty_interaction() -> dict[str, Any]:
    return {"clickableElements": 0, "formElements": 0, "disabledElements": 0, "iframes": 0}


def _empty_resource() -> dict[str, Any]:
    return {
        "imageCount": 0,
        "estimatedImageSize": "Unknown",
        "scriptTags": 0,
        "inlineScripts": 0,
        "externalScripts": 0,
        "stylesheetCount": 0,
    }


def _empty_layout() -> dict[str, Any]:
    return {
        "viewportWidth": 0,
        "viewportHeight": 0,
        "scrollHeight": 0,
        "fixedElements": [],
        "highZIndexElements": [],
        "overflowHiddenElements": 0,
    }


@dataclass(frozen=True)
class PerformanceMetrics:
    execution_time: float = 0.0
    dom: dict[str, Any] = field(default_factory=_empty_dom)
    interaction: dict[str, Any] = field(default_factory=_empty_interaction)
    resource: dict[str, Any] = field(default_factory=_empty_resource)
    layout: dict[str, Any] = field(default_factory=_empty_layout)
    warnings: tuple[PerformanceWarning, ...] = ()
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "executionTime": self.execution_time,
            "dom": self.dom,
            "interaction": self.interaction,
            "resource": self.resource,
            "layout": self.layout,
            "warnings": [w.to_dict() for w in self.warnings],
            "errorCount": self.error_count,
        }


@dataclass(frozen=True)
class ParallelRecommendation:
    recommended: bool
    reason: str
    estimated_benefit: str

    def to_dict(self) -> dict[str, Any]:
        return {"recommended": self.recommended, "reason": self.reason, "estimatedBenefit": self.estimated_benefit}


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def estimate_image_size(image_count: int) -> str:
    if image_count <= 0:
        return "Small (estimated)"
    estimated_kb = image_count * ESTIMATED_KB_PER_IMAGE
    if estimated_kb > 1000:
        return "Large (>1MB estimated)"
    if estimated_kb > 500:
        return "Medium (>500KB estimated)"
    return "Small (estimated)"


def build_performance_warnings(data: dict[str, Any], thresholds: dict[str, Any]) -> list[PerformanceWarning]:
    """Compare raw metrics against warning/danger threshold pairs."""
    dom_t = thresholds["dom"]
    interaction_t = thresholds["interaction"]
    layout_t = thresholds["layout"]
    dom = data.get("dom") or {}
    interaction = data.get("interaction") or {}
    resource = data.get("resource") or {}
    layout = data.get("layout") or {}

    warnings: list[PerformanceWarning] = []
    total = _int(dom.get("totalElements"))
    if total >= dom_t["elements_danger"]:
        warnings.append(
            PerformanceWarning(
                "dom_complexity",
                "danger",
                f"Very high DOM complexity: {total} elements (threshold: {dom_t['elements_danger']})",
            )
        )
    elif total >= dom_t["elements_warning"]:
        warnings.append(
            PerformanceWarning(
                "dom_complexity",
                "warning",
                f"High DOM complexity: {total} elements (threshold: {dom_t['elements_warning']})",
            )
        )

    depth = _int(dom.get("maxDepth"))
    if depth >= dom_t["depth_danger"]:
        warnings.append(
            PerformanceWarning(
                "dom_complexity",
                "danger",
                f"Very deep DOM structure: {depth} levels (threshold: {dom_t['depth_danger']})",
            )
        )
    elif depth >= dom_t["depth_warning"]:
        warnings.append(
            PerformanceWarning(
                "dom_complexity",
                "warning",
                f"Deep DOM structure: {depth} levels (threshold: {dom_t['depth_warning']})",
            )
        )

    clickable = _int(interaction.get("clickableElements"))
    if clickable >= interaction_t["clickable_high"]:
        warnings.append(
            PerformanceWarning(
                "interaction_overload",
                "warning",
                f"High number of clickable elements: {clickable} (threshold: {interaction_t['clickable_high']})",
            )
        )

    excessive = layout_t["excessive_z_index_threshold"]
    if any(_int(el.get("zIndex")) >= excessive for el in layout.get("highZIndexElements") or []):
        warnings.append(
            PerformanceWarning(
                "layout_issue",
                "warning",
                f"Elements with excessive z-index values detected (>={excessive})",
            )
        )

    images = _int(resource.get("imageCount"))
    if images > IMAGE_HEAVY_COUNT:
        warnings.append(
            PerformanceWarning(
                "resource_heavy",
                "warning",
                f"High number of images: {images} (may impact loading performance)",
            )
        )
    return warnings


class StructureAnalyzer:
    """Structure/performance analysis over one automation engine."""

    def __init__(
        self,
        engine: AutomationEngine,
        tracker: ResourceTracker,
        config: ConfigurationManager,
    ) -> None:
        self._engine = engine
        self._tracker = tracker
        self._config = config
        self._frames = FrameReferenceManager()
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def frames(self) -> FrameReferenceManager:
        return self._frames

    def _check(self) -> None:
        if self._disposed:
            raise DisposedStateError("StructureAnalyzer")

    async def analyze_structure(self) -> StructureSnapshot:
        self._check()
        iframes, modal_states, elements = await asyncio.gather(
            self._analyze_iframes(),
            self._analyze_modal_states(),
            self._analyze_elements(),
        )
        return StructureSnapshot(iframes=iframes, modal_states=modal_states, elements=elements)

    async def _analyze_iframes(self) -> IframeReport:
        handles = await self._engine.find_all("iframe")
        if not handles:
            return IframeReport()
        results = await asyncio.gather(*(self._inspect_iframe(h) for h in handles))
        try:
            await self._frames.cleanup_detached_frames()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Detached frame cleanup failed: %s", exc)
        accessible = tuple(info for ok, info in results if ok)
        inaccessible = tuple(info for ok, info in results if not ok)
        return IframeReport(
            detected=True,
            count=len(handles),
            accessible=accessible,
            inaccessible=inaccessible,
        )

    async def _inspect_iframe(self, handle: ElementHandle) -> tuple[bool, dict[str, Any]]:
        handle_id = self._tracker.track(handle, handle.dispose, category="iframe")
        src = "about:blank"
        try:
            src = await handle.get_attribute("src") or "about:blank"
            frame = await handle.content_frame()
            if frame is None:
                return False, {"src": src, "reason": REASON_NO_CONTENT_FRAME}

            self._frames.track_frame(frame, url=src)
            try:
                await asyncio.wait_for(frame.url(), timeout=FRAME_ACCESS_TIMEOUT_S)
                count = _int(await frame.evaluate(ELEMENT_COUNT_SCRIPT))
            except Exception:  # noqa: BLE001
                return False, {"src": src, "reason": REASON_INACCESSIBLE}
            self._frames.update_element_count(frame, count)
            return True, {"src": src, "accessible": True, "elementCount": count}
        except Exception as exc:  # noqa: BLE001
            return False, {"src": src, "reason": f"{REASON_INACCESSIBLE} ({exc})"}
        finally:
            try:
                await self._tracker.dispose(handle_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("iframe handle disposal failed: %s", exc)

    async def _analyze_modal_states(self) -> ModalState:
        try:
            raw = await self._engine.evaluate(MODAL_STATE_SCRIPT)
        except Exception as exc:  # noqa: BLE001
            # Page might not be ready; treat as unblocked.
            logger.warning("Failed to evaluate modal states: %s", exc)
            return ModalState()
        raw = raw if isinstance(raw, dict) else {}
        has_dialog = bool(raw.get("hasDialog"))
        has_file_chooser = bool(raw.get("hasFileChooser"))
        blocked_by = tuple(
            name for name, flag in (("dialog", has_dialog), ("fileChooser", has_file_chooser)) if flag
        )
        return ModalState(has_dialog=has_dialog, has_file_chooser=has_file_chooser, blocked_by=blocked_by)

    async def _analyze_elements(self) -> ElementStats:
        raw = await self._engine.evaluate(ELEMENT_STATS_SCRIPT)
        raw = raw if isinstance(raw, dict) else {}
        return ElementStats(
            total_visible=_int(raw.get("totalVisible")),
            total_interactable=_int(raw.get("totalInteractable")),
            missing_aria=_int(raw.get("missingAria")),
        )

    async def analyze_performance(self) -> PerformanceMetrics:
        self._check()
        started = time.monotonic()
        scoped = self._config.get_component_config(ComponentKind.PAGE_ANALYZER)
        thresholds = scoped.thresholds
        opts = {
            "largeSubtreeThreshold": thresholds["dom"]["large_subtree_threshold"],
            "highZIndexThreshold": thresholds["layout"]["high_z_index_threshold"],
            "excessiveZIndexThreshold": thresholds["layout"]["excessive_z_index_threshold"],
        }
        try:
            data = await self._engine.evaluate(PERFORMANCE_METRICS_SCRIPT, opts)
            if not isinstance(data, dict):
                raise TypeError(f"unexpected metrics payload: {type(data).__name__}")
        except Exception as exc:  # noqa: BLE001
            logger.warning("Performance analysis failed: %s", exc)
            return PerformanceMetrics(
                execution_time=(time.monotonic() - started) * 1000.0,
                warnings=(PerformanceWarning("dom_complexity", "danger", f"Performance analysis failed: {exc}"),),
                error_count=1,
            )

        resource = {**_empty_resource(), **(data.get("resource") or {})}
        resource["estimatedImageSize"] = estimate_image_size(_int(resource.get("imageCount")))
        warnings: list[PerformanceWarning] = []
        if scoped.flags["enable_performance_warnings"]:
            warnings = build_performance_warnings(data, thresholds)
        return PerformanceMetrics(
            execution_time=(time.monotonic() - started) * 1000.0,
            dom={**_empty_dom(), **(data.get("dom") or {})},
            interaction={**_empty_interaction(), **(data.get("interaction") or {})},
            resource=resource,
            layout={**_empty_layout(), **(data.get("layout") or {})},
            warnings=tuple(warnings),
        )

    async def recommend_parallel(self) -> ParallelRecommendation:
        self._check()
        try:
            raw = await self._engine.evaluate(COMPLEXITY_SCRIPT)
            raw = raw if isinstance(raw, dict) else {}
            elements = _int(raw.get("elementCount"))
            iframes = _int(raw.get("iframeCount"))
            forms = _int(raw.get("formElements"))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Complexity evaluation failed: %s", exc)
            return ParallelRecommendation(
                recommended=True,
                reason="Unable to assess complexity - using parallel analysis as fallback",
                estimated_benefit="Resource monitoring and error handling benefits",
            )

        complexity = elements + iframes * 100 + forms * 10
        if complexity > 2000:
            return ParallelRecommendation(
                recommended=True,
                reason=f"High page complexity detected (elements: {elements}, iframes: {iframes})",
                estimated_benefit="Expected 40-60% performance improvement",
            )
        if complexity > 1000:
            return ParallelRecommendation(
                recommended=True,
                reason="Moderate complexity - parallel analysis will provide better resource monitoring",
                estimated_benefit="Expected 20-40% performance improvement",
            )
        return ParallelRecommendation(
            recommended=False,
            reason="Low complexity page - sequential analysis sufficient",
            estimated_benefit="Minimal performance difference expected",
        )

    def get_frame_stats(self) -> dict[str, Any]:
        if self._disposed:
            return {
                "frameStats": {"activeCount": 0, "totalTracked": 0, "detachedCount": 0, "averageElementCount": 0},
                "performanceIssues": {"largeFrames": [], "oldFrames": []},
                "isDisposed": True,
            }
        return {
            "frameStats": self._frames.get_statistics(),
            "performanceIssues": self._frames.find_performance_issues(),
            "isDisposed": False,
        }

    async def cleanup_frames(self) -> int:
        self._check()
        return await self._frames.cleanup_detached_frames()

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._frames.dispose()


__all__ = [
    "ElementStats",
    "IframeReport",
    "ModalState",
    "ParallelRecommendation",
    "PerformanceMetrics",
    "PerformanceWarning",
    "StructureAnalyzer",
    "StructureSnapshot",
    "build_performance_warnings",
    "estimate_image_size",
]
