"""Default tool wiring."""

from __future__ import annotations

from .dispatch import ToolRegistry


def create_default_registry() -> ToolRegistry:
    """Registry with the DOM/diagnose tools plus the batch tool bound to it."""
    from .handlers import ALL_HANDLERS
    from .handlers.batch import batch_tool_spec

    registry = ToolRegistry()
    registry.register_many(ALL_HANDLERS)
    # Registered here so batch steps dispatch into this same registry.
    registry.register(batch_tool_spec(registry))
    return registry


__all__ = ["ToolRegistry", "create_default_registry"]
