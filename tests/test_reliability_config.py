from __future__ import annotations

import pytest


def test_update_with_current_config_is_noop() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager

    manager = ConfigurationManager()
    before = manager.get_config()
    manager.update_config(manager.get_config())
    assert manager.get_config() == before


def test_get_config_returns_deep_copy() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager

    manager = ConfigurationManager()
    snapshot = manager.get_config()
    snapshot["thresholds"]["execution_time"]["page_analysis"] = 1
    assert manager.get("thresholds", "execution_time", "page_analysis") == 1000


def test_invalid_threshold_update_is_rejected_atomically() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager
    from mcp_servers.browser_reliability.errors import ValidationError

    manager = ConfigurationManager()
    before = manager.get_config()

    with pytest.raises(ValidationError) as exc_info:
        manager.update_config(
            {
                "max_concurrent_handles": 5,
                "thresholds": {"dom": {"elements_warning": 5000, "elements_danger": 4000}},
            }
        )

    assert "Invalid threshold configuration" in str(exc_info.value)
    assert any("elements_danger" in e for e in exc_info.value.errors)
    assert manager.get_config() == before


def test_memory_leak_threshold_must_stay_below_max() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager
    from mcp_servers.browser_reliability.errors import ValidationError

    manager = ConfigurationManager()
    with pytest.raises(ValidationError):
        manager.update_config({"thresholds": {"memory": {"memory_leak_threshold": 200 * 1024 * 1024}}})


def test_arrays_replace_wholesale() -> None:
    from mcp_servers.browser_reliability.config import deep_merge

    merged = deep_merge({"a": {"items": [1, 2, 3], "keep": True}}, {"a": {"items": [9]}})
    assert merged == {"a": {"items": [9], "keep": True}}


def test_listener_failure_does_not_block_others() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager

    manager = ConfigurationManager()
    seen: list[int] = []

    def broken(_cfg: dict) -> None:
        raise RuntimeError("boom")

    def good(cfg: dict) -> None:
        seen.append(cfg["max_concurrent_handles"])

    manager.on_config_change(broken)
    manager.on_config_change(good)
    outcomes = manager.update_config({"max_concurrent_handles": 42})

    assert seen == [42]
    assert [o.ok for o in outcomes] == [False, True]
    assert isinstance(outcomes[0].error, RuntimeError)
    assert manager.last_outcomes == outcomes


def test_unsubscribe_stops_notifications() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager

    manager = ConfigurationManager()
    calls: list[dict] = []
    unsubscribe = manager.on_config_change(calls.append)
    unsubscribe()
    unsubscribe()
    assert manager.update_config({"batch_size_limit": 10}) == []
    assert calls == []


def test_adjust_thresholds_raises_within_bounds() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager
    from mcp_servers.browser_reliability.errors import ComponentKind

    manager = ConfigurationManager()
    adj = manager.adjust_thresholds(ComponentKind.PAGE_ANALYZER, 950, 0.99)

    assert adj is not None
    assert adj.direction == "raised"
    assert adj.previous == 1000
    assert adj.current == 1200
    assert adj.current <= adj.previous * 1.2 + 1000
    assert manager.get("thresholds", "execution_time", "page_analysis") == 1200


def test_adjust_thresholds_raise_is_capped_at_plus_1000() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager
    from mcp_servers.browser_reliability.errors import ComponentKind

    manager = ConfigurationManager({"thresholds": {"execution_time": {"page_analysis": 10000}}})
    adj = manager.adjust_thresholds(ComponentKind.PAGE_ANALYZER, 9000, 1.0)
    assert adj is not None
    assert adj.current == 11000


def test_adjust_thresholds_lowers_with_floor() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager
    from mcp_servers.browser_reliability.errors import ComponentKind

    manager = ConfigurationManager({"thresholds": {"execution_time": {"resource_monitoring": 105}}})
    adj = manager.adjust_thresholds(ComponentKind.RESOURCE_MANAGER, 10, 1.0)
    assert adj is not None
    assert adj.direction == "lowered"
    assert adj.current == 100

    assert manager.adjust_thresholds(ComponentKind.RESOURCE_MANAGER, 10, 1.0) is None


def test_adjust_thresholds_respects_feature_flag_and_success_rate() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager
    from mcp_servers.browser_reliability.errors import ComponentKind

    manager = ConfigurationManager()
    assert manager.adjust_thresholds(ComponentKind.PAGE_ANALYZER, 950, 0.5) is None
    assert manager.adjust_thresholds(ComponentKind.ERROR_HANDLER, 10_000, 1.0) is None

    manager.update_config({"runtime": {"enable_adaptive_thresholds": False}})
    assert manager.adjust_thresholds(ComponentKind.PAGE_ANALYZER, 950, 0.99) is None


def test_component_config_is_role_scoped() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager
    from mcp_servers.browser_reliability.errors import ComponentKind

    manager = ConfigurationManager()
    discovery = manager.get_component_config(ComponentKind.ELEMENT_DISCOVERY)
    assert discovery.execution_timeout == 500
    assert discovery.flags["max_alternatives"] == 5

    resources = manager.get_component_config(ComponentKind.RESOURCE_MANAGER)
    assert resources.flags["max_handles"] == 100
    assert resources.flags["enable_leak_detection"] is True

    analyzer = manager.get_component_config(ComponentKind.PAGE_ANALYZER)
    assert analyzer.flags["enable_performance_warnings"] is True
    assert analyzer.thresholds["dom"]["elements_warning"] == 1500
    analyzer.thresholds["dom"]["elements_warning"] = 1
    assert manager.get("thresholds", "dom", "elements_warning") == 1500

    orchestrator = manager.get_component_config(ComponentKind.ORCHESTRATOR)
    assert orchestrator.flags["diagnostic_level"] == "standard"
    assert orchestrator.flags["enable_error_enrichment"] is True

    manager.update_config({"features": {"enable_resource_leak_detection": False}, "diagnostic": {"level": "none"}})
    assert manager.get_component_config(ComponentKind.RESOURCE_MANAGER).flags["enable_leak_detection"] is False
    assert manager.get_component_config(ComponentKind.ERROR_HANDLER).flags["diagnostic_level"] == "none"

    for kind in ComponentKind:
        assert manager.get_component_config(kind).execution_timeout > 0


def test_environment_presets() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager
    from mcp_servers.browser_reliability.errors import ValidationError

    manager = ConfigurationManager()
    manager.configure_for_environment("testing")
    assert manager.get("features", "enable_parallel_analysis") is False
    assert manager.get("error_handling", "log_level") == "error"

    with pytest.raises(ValidationError):
        manager.configure_for_environment("staging")


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager

    monkeypatch.setenv("MCP_RELIABILITY_ENV", "production")
    monkeypatch.setenv("MCP_RELIABILITY_MAX_HANDLES", "7")
    monkeypatch.setenv("MCP_RELIABILITY_ADAPTIVE", "off")
    manager = ConfigurationManager.from_env()

    assert manager.get("max_concurrent_handles") == 7
    assert manager.get("runtime", "enable_adaptive_thresholds") is False
    assert manager.get("error_handling", "max_error_history") == 50


def test_log_level_applies_to_parent_logger() -> None:
    import logging

    from mcp_servers.browser_reliability.config import ConfigurationManager

    manager = ConfigurationManager({"error_handling": {"log_level": "debug"}})
    assert logging.getLogger("mcp.reliability").level == logging.DEBUG
    manager.reset()
    assert logging.getLogger("mcp.reliability").level == logging.WARNING


def test_summary_and_impact_report() -> None:
    from mcp_servers.browser_reliability.config import ConfigurationManager

    manager = ConfigurationManager()
    summary = manager.get_configuration_summary()
    assert summary["totalOverrides"] == 0
    assert summary["performanceRisk"] == "low"
    assert summary["recommendation"].startswith("Using default configuration")

    manager.update_config(
        {
            "thresholds": {"execution_time": {"page_analysis": 2000}},
            "features": {"enable_parallel_analysis": False},
        }
    )
    report = manager.get_configuration_impact_report()
    assert report["performanceImpact"]["executionTimeChanges"]["page_analysis"]["percentChange"] == 100
    assert report["featureChanges"]["disabled"] == ["Parallel Analysis"]
    assert any("increased significantly" in w for w in report["validationStatus"]["warnings"])
    assert manager.get_configuration_summary()["totalOverrides"] == 2
