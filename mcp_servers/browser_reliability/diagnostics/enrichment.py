"""
Failure enrichment: alternatives + structure snapshot + synthesized suggestions.

The pipeline never lets its own failure escape: when a collaborator raises, the
original error is handed back untouched.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..errors import EnrichmentFailure, ReliabilityError
from .discovery import AlternativeElement, SearchCriteria

if TYPE_CHECKING:
    from .discovery import ElementDiscovery
    from .structure import StructureAnalyzer, StructureSnapshot

logger = logging.getLogger("mcp.reliability.enrichment")

MAX_COMMON_SUGGESTIONS = 5
HIGH_CONFIDENCE = 0.8

_ERROR_PATTERNS: tuple[tuple[re.Pattern[str], tuple[str, ...]], ...] = (
    (
        re.compile(r"timeout|timed out", re.I),
        (
            "Consider increasing timeout values",
            "Check for slow network conditions",
            "Verify element loading states",
        ),
    ),
    (
        re.compile(r"not found|element not visible", re.I),
        (
            "Verify element selector accuracy",
            "Wait for element to become visible",
            "Check if element is in correct frame context",
        ),
    ),
    (
        re.compile(r"not enabled|disabled", re.I),
        (
            "Wait for element to become enabled",
            "Check element state and attributes",
            "Verify no modal dialogs are blocking interaction",
        ),
    ),
    (
        re.compile(r"disposed", re.I),
        (
            "Component or resource was disposed prematurely",
            "Check component lifecycle management",
            "Ensure proper initialization before use",
        ),
    ),
    (
        re.compile(r"memory", re.I),
        (
            "Check for memory leaks or excessive resource usage",
            "Consider more aggressive resource cleanup",
            "Monitor memory usage patterns",
        ),
    ),
)


def dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def generate_suggestions(
    message: str,
    *,
    operation: str = "",
    component: str = "",
    selector: str | None = None,
    execution_time: float | None = None,
) -> list[str]:
    """Pattern + context suggestions shared by every enrichment path."""
    out: list[str] = []
    for pattern, suggestions in _ERROR_PATTERNS:
        if pattern.search(message or ""):
            out.extend(suggestions)

    if execution_time and execution_time > 5000:
        out.append("Long execution time detected - consider optimization")
    if selector:
        out.append(f"Failed selector: {selector}")
        if "#" in selector:
            out.append("ID selectors may be fragile - consider alternatives")
        if "nth-child" in selector:
            out.append("Position-based selectors are fragile - use semantic selectors")
    if component == "PageAnalyzer":
        out.append("Consider using parallel analysis for complex pages")
    if "iframe" in (operation or ""):
        out.append("Check iframe accessibility and cross-origin restrictions")
    return dedupe(out)[:MAX_COMMON_SUGGESTIONS]


@dataclass(frozen=True)
class FailedStep:
    step_index: int
    tool_name: str
    selector: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"stepIndex": self.step_index, "toolName": self.tool_name}
        if self.selector:
            out["selector"] = self.selector
        return out


@dataclass(frozen=True)
class ExecutedStep:
    step_index: int
    tool_name: str
    success: bool

    def to_dict(self) -> dict[str, Any]:
        return {"stepIndex": self.step_index, "toolName": self.tool_name, "success": self.success}


@dataclass(frozen=True)
class BatchFailureContext:
    failed_step: FailedStep
    executed_steps: tuple[ExecutedStep, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "failedStep": self.failed_step.to_dict(),
            "executedSteps": [s.to_dict() for s in self.executed_steps],
        }


@dataclass
class EnrichedError(ReliabilityError):
    """A raw failure plus diagnostic context. The original is kept as __cause__."""

    original_error: BaseException
    message: str
    suggestions: list[str] = field(default_factory=list)
    alternatives: list[AlternativeElement] | None = None
    structure_snapshot: StructureSnapshot | None = None
    batch_context: BatchFailureContext | None = None

    def __post_init__(self) -> None:
        self.__cause__ = self.original_error

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "type": "EnrichedError",
            "message": self.message,
            "originalError": str(self.original_error),
            "suggestions": list(self.suggestions),
            **(
                {"alternatives": [a.to_dict() for a in self.alternatives]}
                if self.alternatives is not None
                else {}
            ),
            **(
                {"structureSnapshot": self.structure_snapshot.to_dict()}
                if self.structure_snapshot is not None
                else {}
            ),
            **({"batchContext": self.batch_context.to_dict()} if self.batch_context is not None else {}),
        }


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class ErrorEnrichmentPipeline:
    """Attaches alternatives/structure/suggestions to failures; best-effort."""

    def __init__(self, analyzer: StructureAnalyzer, discovery: ElementDiscovery) -> None:
        self._analyzer = analyzer
        self._discovery = discovery

    async def _snapshot(self) -> StructureSnapshot:
        try:
            return await self._analyzer.analyze_structure()
        except Exception as exc:  # noqa: BLE001
            raise EnrichmentFailure(f"structure snapshot failed: {exc}") from exc

    async def enrich_not_found(
        self,
        original: BaseException,
        target: str,
        criteria: SearchCriteria | None = None,
        max_alternatives: int | None = None,
    ) -> BaseException:
        try:
            return await self._enrich_not_found(original, target, criteria, max_alternatives)
        except Exception as exc:  # noqa: BLE001
            logger.debug("enrich_not_found fell back to original error: %s", exc)
            return original

    async def _enrich_not_found(
        self,
        original: BaseException,
        target: str,
        criteria: SearchCriteria | None,
        max_alternatives: int | None,
    ) -> EnrichedError:
        async def alternatives() -> list[AlternativeElement]:
            if criteria is None or criteria.is_empty():
                return []
            return await self._discovery.find_alternatives(criteria, max_alternatives)

        found, snapshot = await asyncio.gather(alternatives(), self._snapshot())

        suggestions: list[str] = []
        if found:
            suggestions.append(f"Try using one of the {len(found)} alternative elements found")
            if found[0].confidence > HIGH_CONFIDENCE:
                suggestions.append(f"High confidence match available: {found[0].selector}")
        suggestions.extend(
            generate_suggestions("Element not found", operation="findElement", component="ErrorHandler")
        )
        if snapshot.iframes.detected:
            suggestions.append("Element might be inside an iframe")
            if snapshot.iframes.inaccessible:
                suggestions.append("Some iframes are not accessible - check cross-origin restrictions")
        if snapshot.modal_states.blocked_by:
            suggestions.append("Page has active modal dialog - handle it first")
        if snapshot.elements.missing_aria > 0:
            suggestions.append("Some elements lack proper ARIA attributes - consider using text-based selectors")

        message = _describe(original)
        if found:
            lines = [message, "", "Alternative elements found:"]
            for i, alt in enumerate(found, start=1):
                lines.append(f"{i}. {alt.selector} (confidence: {alt.confidence * 100:.0f}%) - {alt.reason}")
            message = "\n".join(lines)

        return EnrichedError(
            original_error=original,
            message=message,
            suggestions=dedupe(suggestions),
            alternatives=found,
            structure_snapshot=snapshot,
        )

    async def enrich_timeout(
        self,
        original: BaseException,
        operation: str,
        target: str | None = None,
    ) -> BaseException:
        try:
            snapshot = await self._snapshot()
            suggestions = generate_suggestions(
                "timeout",
                operation=operation,
                component="ErrorHandler",
                selector=target,
            )
            if snapshot.modal_states.blocked_by:
                suggestions.append(f"Page has active modal dialog - handle it before performing {operation}")
            if snapshot.iframes.detected:
                suggestions.append("Element might be inside an iframe")
            suggestions.append(f"Wait for page load completion before performing {operation}")
            return EnrichedError(
                original_error=original,
                message=_describe(original),
                suggestions=dedupe(suggestions),
                structure_snapshot=snapshot,
            )
        except Exception as exc:  # noqa: BLE001
            logger.debug("enrich_timeout fell back to original error: %s", exc)
            return original

    async def enrich_batch_failure(
        self,
        original: BaseException,
        failed_step: FailedStep,
        executed_steps: list[ExecutedStep] | tuple[ExecutedStep, ...],
    ) -> BaseException:
        try:
            snapshot = await self._snapshot()
            suggestions = [f"Batch execution failed at step {failed_step.step_index} ({failed_step.tool_name})"]
            if snapshot.modal_states.blocked_by:
                suggestions.append("Modal dialog detected - may block subsequent operations")
            if failed_step.selector:
                suggestions.append(f"Failed selector: {failed_step.selector} - check element availability")
            suggestions.append("Consider adding wait steps between operations")
            suggestions.append("Verify page state changes after each navigation step")
            return EnrichedError(
                original_error=original,
                message=_describe(original),
                suggestions=suggestions,
                structure_snapshot=snapshot,
                batch_context=BatchFailureContext(failed_step=failed_step, executed_steps=tuple(executed_steps)),
            )
        except Exception as exc:  # noqa: BLE001
            logger.debug("enrich_batch_failure fell back to original error: %s", exc)
            return original

    async def dispose(self) -> None:
        await self._discovery.dispose()


__all__ = [
    "BatchFailureContext",
    "EnrichedError",
    "ErrorEnrichmentPipeline",
    "ExecutedStep",
    "FailedStep",
    "dedupe",
    "generate_suggestions",
]
