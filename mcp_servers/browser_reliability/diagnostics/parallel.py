"""Concurrent structure + performance passes with settle-all merging."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .structure import PerformanceMetrics, StructureSnapshot

if TYPE_CHECKING:
    from .structure import StructureAnalyzer

logger = logging.getLogger("mcp.reliability.analyzer")

STEP_STRUCTURE = "structure-analysis"
STEP_PERFORMANCE = "performance-metrics"


@dataclass(frozen=True)
class AnalysisError:
    step: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"step": self.step, "error": self.error}


@dataclass(frozen=True)
class AnalysisResult:
    structure: StructureSnapshot = field(default_factory=StructureSnapshot)
    performance_metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    resource_usage: dict[str, Any] | None = None
    execution_time: float = 0.0
    errors: tuple[AnalysisError, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "structure": self.structure.to_dict(),
            "performanceMetrics": self.performance_metrics.to_dict(),
            "resourceUsage": self.resource_usage,
            "executionTime": self.execution_time,
            "errors": [e.to_dict() for e in self.errors],
        }


class ParallelAnalysisCoordinator:
    """Runs the two read-only passes of a StructureAnalyzer concurrently."""

    def __init__(self, analyzer: StructureAnalyzer, resource_usage: Any = None) -> None:
        self._analyzer = analyzer
        # Optional zero-arg callable producing a resource snapshot for the result.
        self._resource_usage = resource_usage

    async def run(self) -> AnalysisResult:
        started = time.monotonic()
        structure_out, performance_out = await asyncio.gather(
            self._analyzer.analyze_structure(),
            self._analyzer.analyze_performance(),
            return_exceptions=True,
        )
        execution_time = (time.monotonic() - started) * 1000.0

        errors: list[AnalysisError] = []
        if isinstance(structure_out, BaseException):
            logger.warning("%s failed: %s", STEP_STRUCTURE, structure_out)
            errors.append(AnalysisError(STEP_STRUCTURE, str(structure_out) or type(structure_out).__name__))
            structure_out = StructureSnapshot()
        if isinstance(performance_out, BaseException):
            logger.warning("%s failed: %s", STEP_PERFORMANCE, performance_out)
            errors.append(AnalysisError(STEP_PERFORMANCE, str(performance_out) or type(performance_out).__name__))
            performance_out = PerformanceMetrics()

        usage = None
        if self._resource_usage is not None:
            try:
                usage = self._resource_usage()
            except Exception as exc:  # noqa: BLE001
                logger.debug("resource usage snapshot failed: %s", exc)

        return AnalysisResult(
            structure=structure_out,
            performance_metrics=performance_out,
            resource_usage=usage,
            execution_time=execution_time,
            errors=tuple(errors),
        )


__all__ = ["AnalysisError", "AnalysisResult", "ParallelAnalysisCoordinator", "STEP_PERFORMANCE", "STEP_STRUCTURE"]
