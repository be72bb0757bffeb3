"""Staged component initialization with memoized in-flight attempts.

States: uninitialized -> initializing(stage) -> ready, or failed from any stage.
A failing stage tears down every component registered so far (current stage included).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import StagedInitializationError

logger = logging.getLogger("mcp.reliability.orchestrator")


class InitState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class ComponentRegistry:
    """Name -> component map filled in by stage builders, in registration order."""

    def __init__(self) -> None:
        self._components: dict[str, Any] = {}

    def register(self, name: str, component: Any) -> Any:
        self._components[name] = component
        return component

    def get(self, name: str) -> Any:
        try:
            return self._components[name]
        except KeyError:
            raise KeyError(f"Component not initialized: {name}") from None

    def has(self, name: str) -> bool:
        return name in self._components

    def names(self) -> list[str]:
        return list(self._components)

    def items(self) -> list[tuple[str, Any]]:
        return list(self._components.items())

    def clear(self) -> None:
        self._components.clear()


StageBuilder = Callable[[ComponentRegistry], Awaitable[None]]


@dataclass(frozen=True)
class InitStage:
    name: str
    build: StageBuilder
    requires: tuple[str, ...] = ()


async def dispose_component(name: str, component: Any) -> None:
    # Registries (tracker, handle batch) expose dispose_all; dispose(id) there is per-handle.
    dispose = getattr(component, "dispose_all", None)
    if dispose is None:
        dispose = getattr(component, "dispose", None)
    if dispose is None:
        return
    result = dispose()
    if inspect.isawaitable(result):
        await result


async def dispose_components(items: list[tuple[str, Any]]) -> list[tuple[str, BaseException]]:
    """Dispose concurrently; returns failures instead of raising."""
    if not items:
        return []
    # Reverse registration order so dependents go before their dependencies when awaited.
    ordered = list(reversed(items))
    results = await asyncio.gather(
        *(dispose_component(name, comp) for name, comp in ordered),
        return_exceptions=True,
    )
    failures = [(name, out) for (name, _), out in zip(ordered, results, strict=True) if isinstance(out, BaseException)]
    for name, exc in failures:
        logger.warning("Failed to dispose %s: %s", name, exc)
    return failures


class StagedInitializer:
    def __init__(self, stages: list[InitStage]) -> None:
        self._stages = list(stages)
        self.registry = ComponentRegistry()
        self.state = InitState.UNINITIALIZED
        self.current_stage: str | None = None
        self.completed_stages: list[str] = []
        self._task: asyncio.Task[ComponentRegistry] | None = None
        self._error: StagedInitializationError | None = None

    @property
    def is_ready(self) -> bool:
        return self.state is InitState.READY

    @property
    def error(self) -> StagedInitializationError | None:
        return self._error

    async def initialize(self) -> ComponentRegistry:
        """Run all stages once; concurrent callers share the same attempt."""
        if self.state is InitState.READY:
            return self.registry
        if self._error is not None:
            raise self._error
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        return await asyncio.shield(self._task)

    async def _run(self) -> ComponentRegistry:
        self.state = InitState.INITIALIZING
        for stage in self._stages:
            self.current_stage = stage.name
            try:
                missing = [dep for dep in stage.requires if dep not in self.completed_stages]
                if missing:
                    raise RuntimeError(f"Stage '{stage.name}' requires {', '.join(missing)}")
                logger.debug("Initializing stage %s", stage.name)
                await stage.build(self.registry)
            except Exception as exc:  # noqa: BLE001
                completed = self.registry.names()
                await dispose_components(self.registry.items())
                self.registry.clear()
                self.state = InitState.FAILED
                self._error = StagedInitializationError(stage=stage.name, completed_components=completed, cause=exc)
                logger.warning("%s", self._error)
                raise self._error from exc
            self.completed_stages.append(stage.name)
        self.current_stage = None
        self.state = InitState.READY
        return self.registry

    def reset(self) -> None:
        """Forget state (components must already be disposed)."""
        self.registry.clear()
        self.state = InitState.UNINITIALIZED
        self.current_stage = None
        self.completed_stages = []
        self._task = None
        self._error = None


__all__ = [
    "ComponentRegistry",
    "InitStage",
    "InitState",
    "StagedInitializer",
    "dispose_component",
    "dispose_components",
]
