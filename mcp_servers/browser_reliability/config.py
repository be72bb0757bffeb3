"""Adaptive thresholds + feature flags for the reliability layer.

One ConfigurationManager is built at the composition root (see main.py) and handed to
every component that needs budgets or flags. Reads always return deep copies.
"""

from __future__ import annotations

import copy
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, assert_never

from .errors import ComponentKind, ValidationError

logger = logging.getLogger("mcp.reliability.config")

ConfigListener = Callable[[dict[str, Any]], None]

MB = 1024 * 1024

_LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

DIAGNOSTIC_LEVELS = ("none", "basic", "standard", "detailed", "full")

# Adaptive control loop bounds.
RAISE_FACTOR = 1.2
RAISE_CAP_MS = 1000
LOWER_FACTOR = 0.9
THRESHOLD_FLOOR_MS = 100


def default_thresholds() -> dict[str, Any]:
    return {
        "execution_time": {
            "page_analysis": 1000,
            "element_discovery": 500,
            "resource_monitoring": 200,
            "parallel_analysis": 2000,
        },
        "memory": {
            "max_memory_usage": 100 * MB,
            "memory_leak_threshold": 50 * MB,
            "gc_trigger_threshold": 80 * MB,
        },
        "dom": {
            "total_elements": 10000,
            "max_depth": 50,
            "large_subtrees": 10,
            "elements_warning": 1500,
            "elements_danger": 3000,
            "depth_warning": 15,
            "depth_danger": 20,
            "large_subtree_threshold": 500,
        },
        "interaction": {
            "clickable_elements": 100,
            "form_elements": 50,
            "clickable_high": 100,
        },
        "layout": {
            "fixed_elements": 10,
            "high_z_index_elements": 5,
            "high_z_index_threshold": 1000,
            "excessive_z_index_threshold": 9999,
        },
    }


def default_config() -> dict[str, Any]:
    return {
        "auto_dispose_timeout": 30000,
        "max_concurrent_handles": 100,
        "enable_leak_detection": True,
        "batch_size_limit": 50,
        "parallel_analysis_enabled": True,
        "diagnostic": {
            "level": "standard",
            "enable_alternative_suggestions": True,
            "enable_page_analysis": True,
            "enable_performance_metrics": True,
            "max_alternatives": 5,
            "enable_detailed_errors": True,
        },
        "performance": {
            "enable_metrics_collection": True,
            "enable_resource_monitoring": True,
            "enable_performance_warnings": True,
            "auto_optimization": False,
        },
        "thresholds": default_thresholds(),
        "error_handling": {
            "enable_error_enrichment": True,
            "enable_contextual_suggestions": True,
            "log_level": "warn",
            "max_error_history": 100,
            "enable_performance_error_detection": True,
        },
        "features": {
            "enable_parallel_analysis": True,
            "enable_smart_handle_management": True,
            "enable_advanced_element_discovery": True,
            "enable_resource_leak_detection": True,
            "enable_real_time_monitoring": False,
        },
        "runtime": {
            "enable_adaptive_thresholds": True,
            "enable_auto_tuning": False,
            "stats_collection_enabled": True,
        },
    }


_ENVIRONMENT_PRESETS: dict[str, dict[str, Any]] = {
    "development": {
        "diagnostic": {"level": "full"},
        "performance": {
            "enable_metrics_collection": True,
            "enable_resource_monitoring": True,
            "enable_performance_warnings": True,
            "auto_optimization": True,
        },
        "error_handling": {
            "enable_error_enrichment": True,
            "enable_contextual_suggestions": True,
            "log_level": "debug",
            "max_error_history": 100,
            "enable_performance_error_detection": True,
        },
        "features": {
            "enable_parallel_analysis": True,
            "enable_smart_handle_management": True,
            "enable_advanced_element_discovery": True,
            "enable_resource_leak_detection": True,
            "enable_real_time_monitoring": True,
        },
    },
    "production": {
        "diagnostic": {"level": "standard"},
        "performance": {
            "enable_metrics_collection": True,
            "enable_resource_monitoring": True,
            "enable_performance_warnings": False,
            "auto_optimization": True,
        },
        "error_handling": {
            "enable_error_enrichment": True,
            "enable_contextual_suggestions": True,
            "log_level": "warn",
            "max_error_history": 50,
            "enable_performance_error_detection": True,
        },
        "features": {
            "enable_parallel_analysis": True,
            "enable_smart_handle_management": True,
            "enable_advanced_element_discovery": True,
            "enable_resource_leak_detection": True,
            "enable_real_time_monitoring": False,
        },
    },
    "testing": {
        "diagnostic": {"level": "basic"},
        "performance": {
            "enable_metrics_collection": False,
            "enable_resource_monitoring": False,
            "enable_performance_warnings": False,
            "auto_optimization": False,
        },
        "error_handling": {
            "enable_error_enrichment": False,
            "enable_contextual_suggestions": False,
            "log_level": "error",
            "max_error_history": 20,
            "enable_performance_error_detection": False,
        },
        "features": {
            "enable_parallel_analysis": False,
            "enable_smart_handle_management": False,
            "enable_advanced_element_discovery": False,
            "enable_resource_leak_detection": False,
            "enable_real_time_monitoring": False,
        },
    },
}

_FEATURE_NAMES: dict[str, str] = {
    "enable_parallel_analysis": "Parallel Analysis",
    "enable_smart_handle_management": "Smart Handle Management",
    "enable_advanced_element_discovery": "Advanced Element Discovery",
    "enable_resource_leak_detection": "Resource Leak Detection",
    "enable_real_time_monitoring": "Real-Time Monitoring",
}


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Merge dicts key-wise; lists and scalars in `patch` replace wholesale."""
    out = copy.deepcopy(base)
    for key, value in (patch or {}).items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def _iter_numbers(tree: dict[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    out: list[tuple[str, Any]] = []
    for key, value in tree.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            out.extend(_iter_numbers(value, path))
        else:
            out.append((path, value))
    return out


def validate_config(config: dict[str, Any]) -> list[str]:
    """Return every invariant violation in `config` (empty when valid)."""
    errors: list[str] = []
    thresholds = config.get("thresholds")
    if not isinstance(thresholds, dict):
        return ["thresholds: expected mapping"]

    for path, value in _iter_numbers(thresholds):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"{path} must be a number")
        elif value <= 0:
            errors.append(f"{path} must be positive")
    if errors:
        return errors

    mem = thresholds.get("memory", {})
    dom = thresholds.get("dom", {})
    layout = thresholds.get("layout", {})
    if mem.get("memory_leak_threshold", 0) >= mem.get("max_memory_usage", 0):
        errors.append("memory.memory_leak_threshold must be less than memory.max_memory_usage")
    if dom.get("elements_danger", 0) <= dom.get("elements_warning", 0):
        errors.append("dom.elements_danger must be greater than dom.elements_warning")
    if dom.get("depth_danger", 0) <= dom.get("depth_warning", 0):
        errors.append("dom.depth_danger must be greater than dom.depth_warning")
    if layout.get("excessive_z_index_threshold", 0) <= layout.get("high_z_index_threshold", 0):
        errors.append("layout.excessive_z_index_threshold must be greater than layout.high_z_index_threshold")

    level = (config.get("diagnostic") or {}).get("level")
    if level not in DIAGNOSTIC_LEVELS:
        errors.append(f"diagnostic.level: expected one of {list(DIAGNOSTIC_LEVELS)}")
    log_level = (config.get("error_handling") or {}).get("log_level")
    if log_level not in _LOG_LEVELS:
        errors.append(f"error_handling.log_level: expected one of {sorted(_LOG_LEVELS)}")
    return errors


def threshold_key(component: ComponentKind) -> str | None:
    """Map a component onto its execution-time threshold (None: not adaptive)."""
    match component:
        case ComponentKind.PAGE_ANALYZER:
            return "page_analysis"
        case ComponentKind.ELEMENT_DISCOVERY:
            return "element_discovery"
        case ComponentKind.RESOURCE_MANAGER:
            return "resource_monitoring"
        case (
            ComponentKind.ERROR_HANDLER
            | ComponentKind.CONFIG_MANAGER
            | ComponentKind.ORCHESTRATOR
            | ComponentKind.INITIALIZATION
        ):
            return None
        case _:
            assert_never(component)


@dataclass(frozen=True)
class ComponentConfig:
    """Role-scoped view handed to a single component."""

    component: ComponentKind
    execution_timeout: int
    flags: dict[str, Any] = field(default_factory=dict)
    thresholds: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ListenerOutcome:
    listener: ConfigListener
    ok: bool
    error: BaseException | None = None


@dataclass(slots=True)
class ThresholdAdjustment:
    component: ComponentKind
    key: str
    previous: int
    current: int
    direction: str  # "raised" or "lowered"


class ConfigurationManager:
    """Holds the live configuration tree; mutable and observable."""

    def __init__(self, overrides: dict[str, Any] | None = None) -> None:
        self._config: dict[str, Any] = default_config()
        self._listeners: list[ConfigListener] = []
        self.last_outcomes: list[ListenerOutcome] = []
        if overrides:
            self.update_config(overrides)
        else:
            self._apply_log_level()

    @classmethod
    def from_env(cls) -> ConfigurationManager:
        manager = cls()
        env = (os.environ.get("MCP_RELIABILITY_ENV") or "").strip().lower()
        if env:
            manager.configure_for_environment(env)

        patch: dict[str, Any] = {}
        if raw := os.environ.get("MCP_RELIABILITY_LOG_LEVEL"):
            patch.setdefault("error_handling", {})["log_level"] = raw.strip().lower()
        if raw := os.environ.get("MCP_RELIABILITY_MAX_HANDLES"):
            patch["max_concurrent_handles"] = int(raw)
        if raw := os.environ.get("MCP_RELIABILITY_AUTO_DISPOSE_MS"):
            patch["auto_dispose_timeout"] = int(raw)
        if raw := os.environ.get("MCP_RELIABILITY_ADAPTIVE"):
            enabled = raw.strip().lower() in {"1", "true", "yes", "on"}
            patch.setdefault("runtime", {})["enable_adaptive_thresholds"] = enabled
        if patch:
            manager.update_config(patch)
        return manager

    def get_config(self) -> dict[str, Any]:
        return copy.deepcopy(self._config)

    def get(self, *path: str) -> Any:
        """Read a single value by key path (deep copy for containers)."""
        node: Any = self._config
        for key in path:
            node = node[key]
        return copy.deepcopy(node)

    def update_config(self, partial: dict[str, Any]) -> list[ListenerOutcome]:
        """Merge `partial` atomically; raises ValidationError and keeps prior state on violation."""
        candidate = deep_merge(self._config, partial)
        errors = validate_config(candidate)
        if errors:
            logger.info("Configuration update rejected: %s", "; ".join(errors))
            raise ValidationError(f"Invalid threshold configuration: {'; '.join(errors)}", errors)
        self._config = candidate
        self._apply_log_level()
        return self._notify()

    def configure_for_environment(self, env: str) -> list[ListenerOutcome]:
        preset = _ENVIRONMENT_PRESETS.get(env)
        if preset is None:
            raise ValidationError(
                f"Unknown environment: {env}",
                [f"environment: expected one of {sorted(_ENVIRONMENT_PRESETS)}"],
            )
        return self.update_config(preset)

    def reset(self) -> list[ListenerOutcome]:
        self._config = default_config()
        self._apply_log_level()
        return self._notify()

    def on_config_change(self, listener: ConfigListener) -> Callable[[], None]:
        """Register a listener; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> list[ListenerOutcome]:
        outcomes: list[ListenerOutcome] = []
        for listener in list(self._listeners):
            try:
                listener(self.get_config())
                outcomes.append(ListenerOutcome(listener=listener, ok=True))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Config listener failed: %s", exc)
                outcomes.append(ListenerOutcome(listener=listener, ok=False, error=exc))
        self.last_outcomes = outcomes
        return outcomes

    def _apply_log_level(self) -> None:
        level = _LOG_LEVELS.get(self._config["error_handling"]["log_level"], logging.WARNING)
        logging.getLogger("mcp.reliability").setLevel(level)

    def adjust_thresholds(
        self,
        component: ComponentKind,
        avg_execution_time: float,
        success_rate: float,
    ) -> ThresholdAdjustment | None:
        """Drift the component's execution-time threshold toward the observed operating point."""
        if not self._config["runtime"]["enable_adaptive_thresholds"]:
            return None
        key = threshold_key(component)
        if key is None:
            return None

        current = self._config["thresholds"]["execution_time"][key]
        new_value = current
        if avg_execution_time > current * 0.8 and success_rate > 0.9:
            new_value = min(current * RAISE_FACTOR, current + RAISE_CAP_MS)
        elif avg_execution_time < current * 0.5 and success_rate > 0.95:
            new_value = max(current * LOWER_FACTOR, THRESHOLD_FLOOR_MS)
        new_value = int(round(new_value))
        if new_value == current:
            return None

        self.update_config({"thresholds": {"execution_time": {key: new_value}}})
        direction = "raised" if new_value > current else "lowered"
        logger.info("Threshold %s %s: %sms -> %sms", key, direction, current, new_value)
        return ThresholdAdjustment(
            component=component,
            key=key,
            previous=current,
            current=new_value,
            direction=direction,
        )

    def get_component_config(self, component: ComponentKind) -> ComponentConfig:
        cfg = self._config
        timeouts = cfg["thresholds"]["execution_time"]
        features = cfg["features"]
        match component:
            case ComponentKind.PAGE_ANALYZER:
                return ComponentConfig(
                    component=component,
                    execution_timeout=timeouts["page_analysis"],
                    flags={
                        "enable_parallel": features["enable_parallel_analysis"],
                        "enable_resource_monitoring": cfg["performance"]["enable_resource_monitoring"],
                        "enable_performance_warnings": cfg["performance"]["enable_performance_warnings"],
                    },
                    thresholds=copy.deepcopy(cfg["thresholds"]),
                )
            case ComponentKind.ELEMENT_DISCOVERY:
                return ComponentConfig(
                    component=component,
                    execution_timeout=timeouts["element_discovery"],
                    flags={
                        "max_alternatives": cfg["diagnostic"]["max_alternatives"],
                        "enable_advanced": features["enable_advanced_element_discovery"],
                    },
                )
            case ComponentKind.RESOURCE_MANAGER:
                return ComponentConfig(
                    component=component,
                    execution_timeout=timeouts["resource_monitoring"],
                    flags={
                        "auto_dispose_timeout": cfg["auto_dispose_timeout"],
                        "max_handles": cfg["max_concurrent_handles"],
                        # Both switches must be on.
                        "enable_leak_detection": bool(
                            cfg["enable_leak_detection"] and features["enable_resource_leak_detection"]
                        ),
                    },
                )
            case ComponentKind.ERROR_HANDLER | ComponentKind.ORCHESTRATOR:
                handling = cfg["error_handling"]
                return ComponentConfig(
                    component=component,
                    execution_timeout=10000,
                    flags={
                        "diagnostic_level": cfg["diagnostic"]["level"],
                        "enable_error_enrichment": handling["enable_error_enrichment"],
                        "enable_contextual_suggestions": handling["enable_contextual_suggestions"],
                        "max_error_history": handling["max_error_history"],
                    },
                )
            case ComponentKind.CONFIG_MANAGER | ComponentKind.INITIALIZATION:
                return ComponentConfig(component=component, execution_timeout=10000)
            case _:
                assert_never(component)

    def get_configuration_impact_report(self) -> dict[str, Any]:
        defaults = default_config()
        current = self._config

        active_overrides: list[str] = []
        execution_time_changes: dict[str, dict[str, Any]] = {}
        enabled: list[str] = []
        disabled: list[str] = []
        modified: list[str] = []
        warnings: list[str] = []
        errors = validate_config(current)

        default_times = defaults["thresholds"]["execution_time"]
        current_times = current["thresholds"]["execution_time"]
        for key, default_value in default_times.items():
            current_value = current_times.get(key, default_value)
            if current_value == default_value:
                continue
            pct = (current_value - default_value) / default_value * 100
            execution_time_changes[key] = {"from": default_value, "to": current_value, "percentChange": round(pct)}
            sign = "+" if pct > 0 else ""
            active_overrides.append(f"{key} threshold: {default_value}ms -> {current_value}ms ({sign}{pct:.1f}%)")

        for key, name in _FEATURE_NAMES.items():
            was = defaults["features"][key]
            now = current["features"][key]
            if now and not was:
                enabled.append(name)
                active_overrides.append(f"{name}: Enabled (was disabled by default)")
            elif was and not now:
                disabled.append(name)
                active_overrides.append(f"{name}: Disabled (was enabled by default)")

        if defaults["error_handling"]["enable_error_enrichment"] != current["error_handling"]["enable_error_enrichment"]:
            status = "Enabled" if current["error_handling"]["enable_error_enrichment"] else "Disabled"
            modified.append(f"Error Enrichment: {status}")
            active_overrides.append(f"Error Enrichment: {status}")

        if defaults["diagnostic"]["level"] != current["diagnostic"]["level"]:
            change = f"Diagnostic Level: {defaults['diagnostic']['level']} -> {current['diagnostic']['level']}"
            modified.append(change)
            active_overrides.append(change)

        memory_impact = "Minimal"
        optimizations: list[str] = []
        if current["features"]["enable_real_time_monitoring"]:
            memory_impact = "Medium - Real-time monitoring requires continuous data collection"
            optimizations.append("Only enable for debugging sessions")

        for key, change in execution_time_changes.items():
            if change["percentChange"] > 50:
                warnings.append(
                    f"{key} timeout increased significantly (+{change['percentChange']}%) - may mask performance issues"
                )
            elif change["percentChange"] < -30:
                warnings.append(
                    f"{key} timeout decreased significantly ({change['percentChange']}%) - may cause false failures"
                )
        if len(enabled) > 3:
            warnings.append(
                f"Many features enabled ({len(enabled)}) - consider selective enablement for better performance"
            )

        return {
            "activeOverrides": active_overrides,
            "performanceImpact": {
                "executionTimeChanges": execution_time_changes,
                "memoryImpact": memory_impact,
                "recommendedOptimizations": optimizations,
            },
            "featureChanges": {"enabled": enabled, "disabled": disabled, "modified": modified},
            "validationStatus": {"isValid": not errors, "warnings": warnings, "errors": errors},
        }

    def get_configuration_summary(self) -> dict[str, Any]:
        report = self.get_configuration_impact_report()
        total_overrides = len(report["activeOverrides"])
        features = report["featureChanges"]
        significant = (
            len(features["enabled"])
            + len(features["disabled"])
            + len(report["performanceImpact"]["executionTimeChanges"])
        )

        status = report["validationStatus"]
        risk = "low"
        if status["errors"]:
            risk = "high"
        elif len(status["warnings"]) > 2 or significant > 5:
            risk = "medium"

        recommendation = "Configuration is optimal"
        if risk == "high":
            recommendation = "Review and fix configuration errors before proceeding"
        elif risk == "medium":
            recommendation = "Consider reviewing warnings and optimizing configuration"
        elif total_overrides == 0:
            recommendation = "Using default configuration - consider customization for your use case"

        return {
            "totalOverrides": total_overrides,
            "significantChanges": significant,
            "performanceRisk": risk,
            "recommendation": recommendation,
        }


__all__ = [
    "ComponentConfig",
    "ConfigurationManager",
    "ListenerOutcome",
    "ThresholdAdjustment",
    "deep_merge",
    "default_config",
    "default_thresholds",
    "threshold_key",
    "validate_config",
]
