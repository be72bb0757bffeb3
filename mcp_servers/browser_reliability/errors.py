"""
Error taxonomy for the reliability layer.

Provides:
- ComponentKind: closed set of diagnostic components
- ValidationError / UnknownToolError: batch rejection before any step runs
- OperationTimeoutError: budget exceeded inside an orchestrated operation
- DisposedStateError: use-after-dispose
- DiagnosticError: structured wrap with component/operation context
- StagedInitializationError: a failed initialization stage
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ComponentKind(str, Enum):
    PAGE_ANALYZER = "PageAnalyzer"
    ELEMENT_DISCOVERY = "ElementDiscovery"
    RESOURCE_MANAGER = "ResourceManager"
    ERROR_HANDLER = "ErrorHandler"
    CONFIG_MANAGER = "ConfigManager"
    ORCHESTRATOR = "UnifiedSystem"
    INITIALIZATION = "InitializationManager"


class ReliabilityError(Exception):
    """Base class; subclasses render themselves via to_dict()."""

    def to_dict(self) -> dict[str, Any]:
        return {"error": True, "type": type(self).__name__, "message": str(self)}


@dataclass
class ValidationError(ReliabilityError):
    message: str
    errors: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {"error": True, "type": "ValidationError", "message": self.message, "errors": list(self.errors)}


@dataclass
class UnknownToolError(ReliabilityError):
    tool: str

    def __str__(self) -> str:
        return f"Unknown tool: {self.tool}"

    def to_dict(self) -> dict[str, Any]:
        return {"error": True, "type": "UnknownToolError", "tool": self.tool, "message": str(self)}


@dataclass
class OperationTimeoutError(ReliabilityError):
    operation: str
    component: ComponentKind
    timeout_ms: float

    def __str__(self) -> str:
        return f"Operation {self.operation} timed out after {int(self.timeout_ms)}ms"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "type": "OperationTimeoutError",
            "operation": self.operation,
            "component": self.component.value,
            "timeoutMs": self.timeout_ms,
        }


@dataclass
class DisposedStateError(ReliabilityError):
    subject: str = "SmartHandle"

    def __str__(self) -> str:
        return f"{self.subject} has been disposed"


class EnrichmentFailure(ReliabilityError):
    """Raised inside the enrichment pipeline only; callers never observe it."""


@dataclass
class DiagnosticError(ReliabilityError):
    """Structured error with component context for AI agents."""

    component: ComponentKind
    operation: str
    message: str
    cause: BaseException | None = None
    timestamp: float = field(default_factory=time.time)
    execution_time: float | None = None
    memory_usage: int | None = None
    performance_impact: str = "low"
    suggestions: list[str] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.cause is not None:
            self.__cause__ = self.cause

    def __str__(self) -> str:
        return f"[{self.component.value}:{self.operation}] {self.message}"

    @classmethod
    def wrap(
        cls,
        error: BaseException,
        component: ComponentKind,
        operation: str,
        *,
        execution_time: float | None = None,
        suggestions: list[str] | None = None,
        context: dict[str, Any] | None = None,
    ) -> DiagnosticError:
        """Wrap an arbitrary failure; an existing DiagnosticError is returned as-is."""
        if isinstance(error, DiagnosticError):
            return error
        return cls(
            component=component,
            operation=operation,
            message=str(error) or type(error).__name__,
            cause=error,
            execution_time=execution_time,
            suggestions=list(suggestions or []),
            context=dict(context or {}),
        )

    @classmethod
    def performance(
        cls,
        component: ComponentKind,
        operation: str,
        execution_time: float,
        threshold: float,
        suggestions: list[str] | None = None,
    ) -> DiagnosticError:
        impact = "low"
        if execution_time > threshold * 3:
            impact = "high"
        elif execution_time > threshold * 2:
            impact = "medium"
        return cls(
            component=component,
            operation=operation,
            message=f"Operation exceeded threshold: {execution_time:.0f}ms > {threshold:.0f}ms",
            execution_time=execution_time,
            performance_impact=impact,
            suggestions=list(suggestions or ["Consider optimizing the operation or adjusting thresholds"]),
            context={"threshold": threshold},
        )

    @classmethod
    def resource(
        cls,
        component: ComponentKind,
        operation: str,
        message: str,
        *,
        memory_usage: int | None = None,
        suggestions: list[str] | None = None,
    ) -> DiagnosticError:
        return cls(
            component=component,
            operation=operation,
            message=message,
            memory_usage=memory_usage,
            performance_impact="medium",
            suggestions=list(suggestions or ["Dispose unused handles", "Check for resource leaks"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "type": "DiagnosticError",
            "message": str(self),
            "component": self.component.value,
            "operation": self.operation,
            "timestamp": self.timestamp,
            **({"executionTime": self.execution_time} if self.execution_time is not None else {}),
            **({"memoryUsage": self.memory_usage} if self.memory_usage is not None else {}),
            "performanceImpact": self.performance_impact,
            "suggestions": list(self.suggestions),
            **({"context": dict(self.context)} if self.context else {}),
            **({"cause": str(self.cause)} if self.cause is not None else {}),
        }


@dataclass
class StagedInitializationError(ReliabilityError):
    stage: str
    completed_components: list[str]
    cause: BaseException | None = None

    def __post_init__(self) -> None:
        if self.cause is not None:
            self.__cause__ = self.cause

    def __str__(self) -> str:
        done = ", ".join(self.completed_components) or "none"
        return f"Initialization failed at stage '{self.stage}': {self.cause} (completed: {done})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "type": "StagedInitializationError",
            "stage": self.stage,
            "completedComponents": list(self.completed_components),
            "message": str(self),
        }


__all__ = [
    "ComponentKind",
    "DiagnosticError",
    "DisposedStateError",
    "EnrichmentFailure",
    "OperationTimeoutError",
    "ReliabilityError",
    "StagedInitializationError",
    "UnknownToolError",
    "ValidationError",
]
