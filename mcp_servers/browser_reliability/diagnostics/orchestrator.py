"""
Diagnostic orchestrator: one facade over the reliability components.

Responsibilities:
- staged initialization (core -> page-dependent -> advanced)
- execute_operation: timeout race, bounded history, adaptive thresholds, enrichment
- health / stats / configuration introspection
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from ..errors import ComponentKind, DiagnosticError, OperationTimeoutError
from ..resources import Disposer, ResourceTracker, SmartHandle
from .discovery import AlternativeElement, ElementDiscovery, SearchCriteria
from .enrichment import EnrichedError, ErrorEnrichmentPipeline, generate_suggestions
from .initialization import ComponentRegistry, InitStage, StagedInitializer, dispose_components
from .parallel import AnalysisResult, ParallelAnalysisCoordinator
from .structure import PerformanceMetrics, StructureAnalyzer

if TYPE_CHECKING:
    from ..config import ConfigurationManager, ListenerOutcome
    from ..engine import AutomationEngine

logger = logging.getLogger("mcp.reliability.orchestrator")

T = TypeVar("T")

STAGE_CORE = "core-infrastructure"
STAGE_PAGE = "page-dependent"
STAGE_ADVANCED = "advanced-features"

DEFAULT_TIMEOUT_MS = 10000
ADAPTIVE_WINDOW_S = 300.0
ADAPTIVE_MIN_SAMPLES = 10
SLOW_AVERAGE_MS = 2000
HANDLE_SATURATION = 0.9
HIGH_ERROR_RATE = 0.1
ELEVATED_ERROR_RATE = 0.05

# Operation name -> threshold key used for the performance baseline.
_BASELINE_OPERATIONS = {
    "page_analysis": "analyze_page_structure",
    "element_discovery": "find_alternative_elements",
    "resource_monitoring": "resource_monitoring",
}
_PRIORITY_ORDER = {"high": 3, "medium": 2, "low": 1}


@dataclass(frozen=True)
class OperationRecord:
    operation: str
    component: ComponentKind
    timestamp: float
    execution_time: float
    success: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "component": self.component.value,
            "timestamp": self.timestamp,
            "executionTime": round(self.execution_time, 2),
            "success": self.success,
        }


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    success: bool
    execution_time: float
    data: T | None = None
    error: DiagnosticError | None = None

    def to_dict(self) -> dict[str, Any]:
        data = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        return {
            "success": self.success,
            "executionTime": round(self.execution_time, 2),
            **({"data": data} if self.success else {}),
            **({"error": self.error.to_dict()} if self.error is not None else {}),
        }


def _consume_late_result(task: asyncio.Future[Any]) -> None:
    # The engine call outlived its budget; retrieve its outcome so nothing is reported as unhandled.
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Operation finished after timeout with error: %s", exc)


class DiagnosticOrchestrator:
    """Owns component lifecycle and wraps every diagnostic call."""

    def __init__(
        self,
        engine: AutomationEngine,
        config: ConfigurationManager,
        tracker: ResourceTracker | None = None,
    ) -> None:
        self._engine = engine
        self._config = config
        self._tracker = tracker if tracker is not None else ResourceTracker(config)
        self._init = StagedInitializer(
            [
                InitStage(STAGE_CORE, self._build_core),
                InitStage(STAGE_PAGE, self._build_page_dependent, requires=(STAGE_CORE,)),
                InitStage(STAGE_ADVANCED, self._build_advanced, requires=(STAGE_PAGE,)),
            ]
        )
        self._history: list[OperationRecord] = []
        self._operation_count: dict[str, int] = {}
        self._average_time: dict[str, float] = {}
        self._total_operations = 0
        self._successful_operations = 0
        self._error_count: dict[str, int] = {kind.value: 0 for kind in ComponentKind}

    # ----------------------------------------------------------------- init

    async def _build_core(self, registry: ComponentRegistry) -> None:
        registry.register("resources", self._tracker)

    async def _build_page_dependent(self, registry: ComponentRegistry) -> None:
        analyzer = registry.register("analyzer", StructureAnalyzer(self._engine, self._tracker, self._config))
        discovery = registry.register("discovery", ElementDiscovery(self._engine, self._config))
        registry.register("enrichment", ErrorEnrichmentPipeline(analyzer, discovery))

    async def _build_advanced(self, registry: ComponentRegistry) -> None:
        if not self._config.get_component_config(ComponentKind.PAGE_ANALYZER).flags["enable_parallel"]:
            return
        registry.register(
            "parallel",
            ParallelAnalysisCoordinator(
                registry.get("analyzer"),
                resource_usage=lambda: self._tracker.get_stats().to_dict(),
            ),
        )

    async def initialize(self) -> None:
        await self._init.initialize()

    @property
    def initialized(self) -> bool:
        return self._init.is_ready

    @property
    def state(self) -> str:
        return self._init.state.value

    @property
    def tracker(self) -> ResourceTracker:
        return self._tracker

    def _flags(self) -> dict[str, Any]:
        return self._config.get_component_config(ComponentKind.ORCHESTRATOR).flags

    def _enrichment_enabled(self) -> bool:
        flags = self._flags()
        return bool(flags["enable_error_enrichment"]) and flags["diagnostic_level"] != "none"

    def _component(self, name: str) -> Any:
        if not self._init.registry.has(name):
            return None
        return self._init.registry.get(name)

    # ------------------------------------------------------------ execution

    async def execute_operation(
        self,
        name: str,
        component: ComponentKind,
        fn: Callable[[], Awaitable[T]],
        *,
        timeout_ms: float | None = None,
    ) -> OperationResult[T]:
        """Run `fn` under the component budget; failures come back as OperationResult, never raised."""
        budget = timeout_ms
        if budget is None:
            budget = self._config.get_component_config(component).execution_timeout or DEFAULT_TIMEOUT_MS
        started = time.monotonic()
        try:
            task = asyncio.ensure_future(fn())
            try:
                data = await asyncio.wait_for(asyncio.shield(task), budget / 1000.0)
            except TimeoutError:
                if task.done() and isinstance(task.exception(), TimeoutError):
                    # Raised by fn() itself; the budget did not expire.
                    raise
                # No cancellation: the engine call keeps running and settles on its own.
                task.add_done_callback(_consume_late_result)
                raise OperationTimeoutError(operation=name, component=component, timeout_ms=budget) from None
        except Exception as exc:  # noqa: BLE001
            elapsed = (time.monotonic() - started) * 1000.0
            self._record(name, component, elapsed, False)
            self._error_count[component.value] = self._error_count.get(component.value, 0) + 1
            if not isinstance(exc, DiagnosticError):
                logger.warning("Operation %s failed after %.0fms: %s", name, elapsed, exc)
            error = DiagnosticError.wrap(exc, component, name, execution_time=elapsed)
            if self._enrichment_enabled():
                error = await self._enrich(error, exc, name)
            return OperationResult(success=False, execution_time=elapsed, error=error)

        elapsed = (time.monotonic() - started) * 1000.0
        self._record(name, component, elapsed, True)
        return OperationResult(success=True, execution_time=elapsed, data=data)

    async def _enrich(self, error: DiagnosticError, raw: BaseException, operation: str) -> DiagnosticError:
        try:
            pipeline: ErrorEnrichmentPipeline | None = self._component("enrichment")
            enriched: BaseException | None = None
            if pipeline is not None:
                if isinstance(raw, OperationTimeoutError):
                    enriched = await pipeline.enrich_timeout(raw, operation)
                elif "not found" in error.message.lower():
                    enriched = await pipeline.enrich_not_found(raw, operation)

            extra: dict[str, Any] = {}
            if isinstance(enriched, EnrichedError):
                suggestions = enriched.suggestions
                extra["enrichment"] = enriched.to_dict()
            else:
                suggestions = generate_suggestions(
                    error.message,
                    operation=operation,
                    component=error.component.value,
                    execution_time=error.execution_time,
                )
            merged = list(dict.fromkeys([*error.suggestions, *suggestions]))
            return dataclasses.replace(error, suggestions=merged, context={**error.context, **extra})
        except Exception as exc:  # noqa: BLE001
            logger.debug("Error enrichment failed for %s: %s", operation, exc)
            return error

    def _record(self, name: str, component: ComponentKind, execution_time: float, success: bool) -> None:
        count = self._operation_count.get(name, 0) + 1
        self._operation_count[name] = count
        prev = self._average_time.get(name, 0.0)
        self._average_time[name] = (prev * (count - 1) + execution_time) / count
        self._total_operations += 1
        if success:
            self._successful_operations += 1

        self._history.append(
            OperationRecord(
                operation=name,
                component=component,
                timestamp=time.time(),
                execution_time=execution_time,
                success=success,
            )
        )
        limit = max(1, int(self._flags()["max_error_history"]))
        if len(self._history) > limit:
            del self._history[: len(self._history) - limit]

        self._adapt(name, component)

    def _adapt(self, name: str, component: ComponentKind) -> None:
        cutoff = time.time() - ADAPTIVE_WINDOW_S
        recent = [r for r in self._history if r.operation == name and r.timestamp >= cutoff]
        if len(recent) < ADAPTIVE_MIN_SAMPLES:
            return
        avg = sum(r.execution_time for r in recent) / len(recent)
        rate = sum(1 for r in recent if r.success) / len(recent)
        try:
            self._config.adjust_thresholds(component, avg, rate)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Adaptive threshold adjustment failed: %s", exc)

    # ------------------------------------------------------------ operations

    async def analyze_page_structure(self, *, force_parallel: bool = False) -> OperationResult[AnalysisResult]:
        await self.initialize()
        analyzer: StructureAnalyzer = self._component("analyzer")
        coordinator: ParallelAnalysisCoordinator | None = self._component("parallel")

        async def run() -> AnalysisResult:
            if coordinator is not None:
                use_parallel = force_parallel
                if not use_parallel:
                    recommendation = await analyzer.recommend_parallel()
                    use_parallel = recommendation.recommended
                    logger.debug("Parallel recommendation: %s", recommendation.reason)
                if use_parallel:
                    return await coordinator.run()
            started = time.monotonic()
            structure = await analyzer.analyze_structure()
            return AnalysisResult(
                structure=structure,
                resource_usage=self._tracker.get_stats().to_dict(),
                execution_time=(time.monotonic() - started) * 1000.0,
            )

        return await self.execute_operation("analyze_page_structure", ComponentKind.PAGE_ANALYZER, run)

    async def find_alternative_elements(
        self,
        criteria: SearchCriteria,
        max_results: int | None = None,
    ) -> OperationResult[list[AlternativeElement]]:
        await self.initialize()
        discovery: ElementDiscovery = self._component("discovery")
        return await self.execute_operation(
            "find_alternative_elements",
            ComponentKind.ELEMENT_DISCOVERY,
            lambda: discovery.find_alternatives(criteria, max_results),
        )

    async def analyze_performance_metrics(self) -> OperationResult[PerformanceMetrics]:
        await self.initialize()
        analyzer: StructureAnalyzer = self._component("analyzer")
        return await self.execute_operation(
            "analyze_performance_metrics",
            ComponentKind.PAGE_ANALYZER,
            analyzer.analyze_performance,
        )

    async def enrichment_pipeline(self) -> ErrorEnrichmentPipeline | None:
        """The pipeline when enrichment is enabled, else None."""
        if not self._enrichment_enabled():
            return None
        await self.initialize()
        return self._component("enrichment")

    async def enrich_not_found(
        self,
        error: BaseException,
        target: str,
        criteria: SearchCriteria | None = None,
    ) -> BaseException:
        try:
            pipeline = await self.enrichment_pipeline()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Enrichment unavailable: %s", exc)
            return error
        if pipeline is None:
            return error
        return await pipeline.enrich_not_found(error, target, criteria)

    def create_smart_handle(self, resource: T, disposer: Disposer, *, category: str = "handle") -> SmartHandle[T]:
        return self._tracker.create_smart_handle(resource, disposer, category=category)

    # --------------------------------------------------------- configuration

    def update_configuration(self, partial: dict[str, Any]) -> list[ListenerOutcome]:
        return self._config.update_config(partial)

    def get_configuration(self) -> dict[str, Any]:
        return self._config.get_config()

    def get_configuration_report(self) -> dict[str, Any]:
        impact = self._config.get_configuration_impact_report()
        summary = self._config.get_configuration_summary()

        total = summary["totalOverrides"]
        if total == 0:
            status = "default"
        elif total > 5:
            status = "heavily-customized"
        else:
            status = "customized"

        time_changes = impact["performanceImpact"]["executionTimeChanges"]
        features = impact["featureChanges"]
        overrides = [
            {
                "category": "Performance Thresholds",
                "changes": [
                    f"{key}: {c['from']}ms -> {c['to']}ms ({'+' if c['percentChange'] > 0 else ''}{c['percentChange']}%)"
                    for key, c in time_changes.items()
                ],
                "impact": "high" if len(time_changes) > 2 else "medium",
            },
            {
                "category": "Feature Flags",
                "changes": [
                    *(f"{f}: Enabled" for f in features["enabled"]),
                    *(f"{f}: Disabled" for f in features["disabled"]),
                    *features["modified"],
                ],
                "impact": "medium" if len(features["enabled"]) + len(features["disabled"]) > 2 else "low",
            },
        ]

        thresholds = self._config.get("thresholds", "execution_time")
        expected = {key: thresholds[key] for key in _BASELINE_OPERATIONS}
        actual = {key: self._average_time.get(op, 0.0) for key, op in _BASELINE_OPERATIONS.items()}
        deviations: dict[str, dict[str, Any]] = {}
        for key, expected_time in expected.items():
            actual_time = actual[key]
            if actual_time > 0 and expected_time > 0:
                percent = (actual_time - expected_time) / expected_time * 100
                significance = "normal"
                if abs(percent) > 50:
                    significance = "significant"
                elif abs(percent) > 25:
                    significance = "notable"
                deviations[key] = {"percent": round(percent), "significance": significance}

        recommendations: list[dict[str, str]] = []
        for key, deviation in deviations.items():
            if deviation["significance"] != "significant":
                continue
            if deviation["percent"] > 50:
                recommendations.append(
                    {
                        "type": "warning",
                        "message": f"{key} is taking {abs(deviation['percent'])}% longer than expected - consider optimization",
                        "priority": "high",
                    }
                )
            elif deviation["percent"] < -50:
                recommendations.append(
                    {
                        "type": "info",
                        "message": f"{key} is performing {abs(deviation['percent'])}% faster than expected - thresholds may be too conservative",
                        "priority": "low",
                    }
                )
        for optimization in impact["performanceImpact"]["recommendedOptimizations"]:
            recommendations.append({"type": "optimization", "message": optimization, "priority": "medium"})
        for warning in impact["validationStatus"]["warnings"]:
            recommendations.append({"type": "warning", "message": warning, "priority": "medium"})
        error_rate = self._error_rate()
        if error_rate > ELEVATED_ERROR_RATE:
            recommendations.append(
                {
                    "type": "warning",
                    "message": f"Error rate is {error_rate * 100:.1f}% - consider reviewing recent failures",
                    "priority": "high",
                }
            )
        recommendations.sort(key=lambda r: _PRIORITY_ORDER[r["priority"]], reverse=True)

        return {
            "configurationStatus": status,
            "appliedOverrides": [o for o in overrides if o["changes"]],
            "performanceBaseline": {
                "expectedExecutionTimes": expected,
                "actualAverages": actual,
                "deviations": deviations,
            },
            "recommendations": recommendations,
        }

    # --------------------------------------------------------- introspection

    def _error_rate(self) -> float:
        return sum(self._error_count.values()) / max(self._total_operations, 1)

    def get_system_stats(self) -> dict[str, Any]:
        stats = self._tracker.get_stats()
        return {
            "operationCount": dict(self._operation_count),
            "performanceMetrics": {
                "averageExecutionTime": dict(self._average_time),
                "totalOperations": self._total_operations,
                "successRate": (
                    self._successful_operations / self._total_operations if self._total_operations else 1.0
                ),
            },
            "errorCount": dict(self._error_count),
            "resourceUsage": {"currentHandles": stats.active_count, "peakHandles": stats.peak_count},
        }

    def get_recent_operations(self, limit: int = 50) -> list[OperationRecord]:
        if limit <= 0:
            return []
        return list(self._history[-limit:])

    def perform_health_check(self) -> dict[str, Any]:
        issues: list[str] = []
        recommendations: list[str] = []
        if not self._init.is_ready:
            return {
                "status": "critical",
                "issues": ["System not initialized"],
                "recommendations": ["Call initialize() before running diagnostics"],
            }

        max_handles = int(self._config.get_component_config(ComponentKind.RESOURCE_MANAGER).flags["max_handles"])
        active = self._tracker.get_stats().active_count
        if active > max_handles * HANDLE_SATURATION:
            issues.append(f"High handle usage: {active}/{max_handles}")
            recommendations.append("Consider reducing concurrent operations or increasing max_concurrent_handles")

        error_rate = self._error_rate()
        if error_rate > HIGH_ERROR_RATE:
            issues.append(f"High error rate: {error_rate * 100:.1f}%")
            recommendations.append("Review recent errors and consider adjusting timeout thresholds")
        elif error_rate > ELEVATED_ERROR_RATE:
            issues.append(f"Elevated error rate: {error_rate * 100:.1f}%")
            recommendations.append("Monitor recent failures for a recurring cause")

        averages = list(self._average_time.values())
        avg_overall = sum(averages) / max(len(averages), 1)
        if avg_overall > SLOW_AVERAGE_MS:
            issues.append(f"Slow performance: average {avg_overall:.0f}ms")
            recommendations.append("Consider enabling parallel analysis or optimizing operations")

        status = "healthy"
        if len(issues) > 2:
            status = "critical"
        elif issues:
            status = "warning"
        return {"status": status, "issues": issues, "recommendations": recommendations}

    async def dispose(self) -> None:
        """Dispose every constructed component; failures are logged, never raised."""
        items = self._init.registry.items()
        await dispose_components(items)
        self._init.reset()


__all__ = [
    "DiagnosticOrchestrator",
    "OperationRecord",
    "OperationResult",
    "STAGE_ADVANCED",
    "STAGE_CORE",
    "STAGE_PAGE",
]
