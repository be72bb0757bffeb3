"""
Tool registry with dispatch table.

O(1) lookup by tool name; arguments are validated against the tool's schema
before the handler runs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..errors import UnknownToolError, ValidationError
from .expectation import merge_expectation
from .response import Response
from .types import ToolResult, ToolSpec

if TYPE_CHECKING:
    from .types import ToolContext

logger = logging.getLogger("mcp.reliability.registry")


class ToolRegistry:
    """Registry for tool specs (handler + input schema)."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        self._tools[spec.name] = spec

    def register_many(self, specs: dict[str, ToolSpec]) -> None:
        self._tools.update(specs)

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    async def dispatch(
        self,
        name: str,
        context: ToolContext,
        arguments: dict[str, Any],
    ) -> ToolResult:
        """
        Dispatch one tool call.

        Raises:
            UnknownToolError: tool is not registered
            ValidationError: arguments fail the tool's schema
        """
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownToolError(name)

        raw = dict(arguments or {})
        expectation_raw = raw.pop("expectation", None)
        parsed = spec.input_schema.validate(raw)
        if not parsed.ok:
            raise ValidationError(f"Invalid arguments for {name}: {parsed.message}", list(parsed.errors))
        try:
            expectation = merge_expectation(name, None, expectation_raw)
        except ValueError as exc:
            raise ValidationError(str(exc), [str(exc)]) from exc

        response = Response(context, name, parsed.value, expectation)
        try:
            await spec.handler(context, parsed.value, response)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Tool %s failed: %s", name, exc)
            return ToolResult.error(str(exc) or type(exc).__name__, tool=name)
        await response.finish()
        return response.serialize()

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def list_tools(self) -> list[dict[str, Any]]:
        return [
            {"name": s.name, "description": s.description, "inputSchema": s.input_schema.to_json_schema()}
            for s in self._tools.values()
        ]

    def __len__(self) -> int:
        return len(self._tools)


__all__ = ["ToolRegistry"]
