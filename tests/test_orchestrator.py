from __future__ import annotations

import asyncio
from typing import Any

import pytest


class DummyEngine:
    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses = responses or {}

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        value = self.responses.get(script, {})
        if isinstance(value, BaseException):
            raise value
        return value

    async def find_all(self, selector: str) -> list[Any]:
        return []

    async def dispose(self) -> None:
        return None


def _orchestrator(overrides: dict[str, Any] | None = None, engine: DummyEngine | None = None):
    from mcp_servers.browser_reliability.config import ConfigurationManager
    from mcp_servers.browser_reliability.diagnostics.orchestrator import DiagnosticOrchestrator

    return DiagnosticOrchestrator(engine or DummyEngine(), ConfigurationManager(overrides))


async def _ok() -> str:
    return "ok"


async def _fail() -> str:
    raise RuntimeError("flaky")


@pytest.mark.asyncio
async def test_initialize_builds_components_in_stages() -> None:
    orch = _orchestrator()
    assert orch.state == "uninitialized"
    await orch.initialize()
    assert orch.initialized
    assert orch.state == "ready"
    assert orch._component("parallel") is not None

    without_parallel = _orchestrator({"features": {"enable_parallel_analysis": False}})
    await without_parallel.initialize()
    assert without_parallel._component("parallel") is None


@pytest.mark.asyncio
async def test_timeout_returns_error_and_leaves_call_running() -> None:
    from mcp_servers.browser_reliability.errors import ComponentKind, OperationTimeoutError

    orch = _orchestrator()
    finished: list[bool] = []

    async def slow() -> str:
        await asyncio.sleep(0.1)
        finished.append(True)
        return "late"

    result = await orch.execute_operation("slow_op", ComponentKind.PAGE_ANALYZER, slow, timeout_ms=10)

    assert result.success is False
    assert isinstance(result.error.cause, OperationTimeoutError)
    assert result.error.message == "Operation slow_op timed out after 10ms"
    assert "Consider increasing timeout values" in result.error.suggestions
    assert orch.get_system_stats()["errorCount"]["PageAnalyzer"] == 1

    await asyncio.sleep(0.2)
    assert finished == [True]


@pytest.mark.asyncio
async def test_diagnostic_error_is_not_double_wrapped() -> None:
    from mcp_servers.browser_reliability.errors import ComponentKind, DiagnosticError

    orch = _orchestrator({"error_handling": {"enable_error_enrichment": False}})
    original = DiagnosticError(ComponentKind.ELEMENT_DISCOVERY, "inner_op", "already structured")

    async def raise_structured() -> None:
        raise original

    result = await orch.execute_operation("outer_op", ComponentKind.PAGE_ANALYZER, raise_structured)

    assert result.error is original
    assert str(result.error) == "[ElementDiscovery:inner_op] already structured"


@pytest.mark.asyncio
async def test_not_found_failure_is_enriched_with_page_context() -> None:
    from mcp_servers.browser_reliability.errors import ComponentKind

    orch = _orchestrator()
    await orch.initialize()

    async def missing() -> None:
        raise LookupError("Element not found: #checkout")

    result = await orch.execute_operation("click", ComponentKind.ELEMENT_DISCOVERY, missing)

    assert result.success is False
    assert result.error.component is ComponentKind.ELEMENT_DISCOVERY
    assert "enrichment" in result.error.context
    assert "Verify element selector accuracy" in result.error.suggestions
    assert result.to_dict()["error"]["type"] == "DiagnosticError"


@pytest.mark.asyncio
async def test_diagnostic_level_none_skips_enrichment() -> None:
    from mcp_servers.browser_reliability.errors import ComponentKind

    orch = _orchestrator({"diagnostic": {"level": "none"}})
    await orch.initialize()

    async def missing() -> None:
        raise LookupError("Element not found: #checkout")

    result = await orch.execute_operation("click", ComponentKind.ELEMENT_DISCOVERY, missing)

    assert result.success is False
    assert "enrichment" not in result.error.context
    assert "Verify element selector accuracy" not in result.error.suggestions
    assert await orch.enrichment_pipeline() is None

    original = LookupError("gone")
    assert await orch.enrich_not_found(original, "#checkout") is original


@pytest.mark.asyncio
async def test_timeout_raised_inside_operation_is_not_a_budget_timeout() -> None:
    from mcp_servers.browser_reliability.errors import ComponentKind, OperationTimeoutError

    orch = _orchestrator({"error_handling": {"enable_error_enrichment": False}})

    async def own_deadline() -> None:
        raise TimeoutError("wait_for deadline passed")

    result = await orch.execute_operation("wait", ComponentKind.PAGE_ANALYZER, own_deadline, timeout_ms=5000)

    assert result.success is False
    assert not isinstance(result.error.cause, OperationTimeoutError)
    assert isinstance(result.error.cause, TimeoutError)
    assert "timed out after 5000ms" not in result.error.message
    assert "wait_for deadline passed" in result.error.message


@pytest.mark.asyncio
async def test_adaptive_thresholds_after_enough_samples() -> None:
    from mcp_servers.browser_reliability.errors import ComponentKind

    orch = _orchestrator()
    for _ in range(9):
        await orch.execute_operation("quick_op", ComponentKind.PAGE_ANALYZER, _ok)
    assert orch.get_configuration()["thresholds"]["execution_time"]["page_analysis"] == 1000

    await orch.execute_operation("quick_op", ComponentKind.PAGE_ANALYZER, _ok)
    assert orch.get_configuration()["thresholds"]["execution_time"]["page_analysis"] == 900


@pytest.mark.asyncio
async def test_history_is_bounded() -> None:
    from mcp_servers.browser_reliability.errors import ComponentKind

    orch = _orchestrator({"error_handling": {"max_error_history": 3}})
    for i in range(5):
        await orch.execute_operation(f"op{i}", ComponentKind.ORCHESTRATOR, _ok)

    recent = orch.get_recent_operations()
    assert [r.operation for r in recent] == ["op2", "op3", "op4"]
    assert orch.get_recent_operations(limit=1)[0].operation == "op4"
    assert orch.get_recent_operations(limit=0) == []
    stats = orch.get_system_stats()
    assert stats["performanceMetrics"]["totalOperations"] == 5
    assert stats["performanceMetrics"]["successRate"] == 1.0


@pytest.mark.asyncio
async def test_health_check_levels(monkeypatch: pytest.MonkeyPatch) -> None:
    from mcp_servers.browser_reliability.diagnostics import orchestrator as orchestrator_module
    from mcp_servers.browser_reliability.errors import ComponentKind

    orch = _orchestrator({"max_concurrent_handles": 2, "error_handling": {"enable_error_enrichment": False}})
    report = orch.perform_health_check()
    assert report["status"] == "critical"
    assert report["issues"] == ["System not initialized"]

    await orch.initialize()
    assert orch.perform_health_check()["status"] == "healthy"

    for _ in range(4):
        await orch.execute_operation("ok", ComponentKind.ORCHESTRATOR, _ok)
    await orch.execute_operation("bad", ComponentKind.ORCHESTRATOR, _fail)
    report = orch.perform_health_check()
    assert report["status"] == "warning"
    assert report["issues"] == ["High error rate: 20.0%"]

    orch.create_smart_handle("a", lambda: None)
    orch.create_smart_handle("b", lambda: None)
    monkeypatch.setattr(orchestrator_module, "SLOW_AVERAGE_MS", -1)
    report = orch.perform_health_check()
    assert report["status"] == "critical"
    assert report["issues"][0] == "High handle usage: 2/2"
    assert report["issues"][-1].startswith("Slow performance")


@pytest.mark.asyncio
async def test_elevated_error_rate_is_reported() -> None:
    from mcp_servers.browser_reliability.errors import ComponentKind

    orch = _orchestrator({"error_handling": {"enable_error_enrichment": False}})
    await orch.initialize()
    for _ in range(12):
        await orch.execute_operation("ok", ComponentKind.ORCHESTRATOR, _ok)
    await orch.execute_operation("bad", ComponentKind.ORCHESTRATOR, _fail)

    report = orch.perform_health_check()
    assert report["issues"] == ["Elevated error rate: 7.7%"]
    assert report["status"] == "warning"


@pytest.mark.asyncio
async def test_configuration_report_status() -> None:
    orch = _orchestrator()
    report = orch.get_configuration_report()
    assert report["configurationStatus"] == "default"
    assert report["appliedOverrides"] == []

    orch.update_configuration({"thresholds": {"execution_time": {"element_discovery": 1500}}})
    report = orch.get_configuration_report()
    assert report["configurationStatus"] == "customized"
    assert report["appliedOverrides"][0]["category"] == "Performance Thresholds"
    assert report["recommendations"][0]["priority"] in {"high", "medium"}


@pytest.mark.asyncio
async def test_analyze_page_structure_sequential_and_parallel() -> None:
    orch = _orchestrator()

    sequential = await orch.analyze_page_structure()
    assert sequential.success is True
    assert sequential.data.errors == ()
    assert sequential.data.resource_usage["totalTracked"] == 0

    parallel = await orch.analyze_page_structure(force_parallel=True)
    assert parallel.success is True
    assert parallel.data.performance_metrics.error_count == 0


@pytest.mark.asyncio
async def test_dispose_releases_components_and_handles() -> None:
    orch = _orchestrator()
    await orch.initialize()
    released: list[str] = []
    orch.create_smart_handle("x", lambda: released.append("x"))

    await orch.dispose()

    assert released == ["x"]
    assert len(orch.tracker) == 0
    assert orch.state == "uninitialized"
    assert orch.perform_health_check()["status"] == "critical"
