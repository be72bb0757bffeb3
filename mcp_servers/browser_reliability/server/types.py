"""
Type definitions for tool results, handlers and the shared tool context.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..diagnostics.orchestrator import DiagnosticOrchestrator
    from ..engine import AutomationEngine
    from .response import Response
    from .schema import ArgSchema


@dataclass(slots=True)
class ToolContent:
    """Single content item in tool response."""

    type: str  # "text" or "image"
    text: str | None = None
    data: str | None = None  # base64 for images
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.type == "image":
            return {"type": "image", "data": self.data, "mimeType": self.mime_type}
        return {"type": "text", "text": self.text}


@dataclass(slots=True)
class ToolResult:
    """Result of a tool execution."""

    content: list[ToolContent] = field(default_factory=list)
    is_error: bool = False
    # Raw payload for in-process callers (batch formatting, tests); not part of the wire format.
    data: Any | None = None

    @classmethod
    def text(cls, text: str, *, data: Any | None = None) -> ToolResult:
        return cls(content=[ToolContent(type="text", text=text or "")], data=data)

    @classmethod
    def error(
        cls,
        message: str,
        *,
        tool: str | None = None,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> ToolResult:
        payload: dict[str, Any] = {"ok": False, "error": message}
        if tool:
            payload["tool"] = tool
        if suggestion:
            payload["suggestion"] = suggestion
        if details:
            payload["details"] = details
        text = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
        return cls(content=[ToolContent(type="text", text=text)], is_error=True, data=payload)

    @classmethod
    def json(cls, data: Any) -> ToolResult:
        text = json.dumps(data, ensure_ascii=False, indent=2, default=str)
        return cls(content=[ToolContent(type="text", text=text)], data=data)

    def to_content_list(self) -> list[dict[str, Any]]:
        return [c.to_dict() for c in self.content]

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.to_content_list(),
            **({"isError": True} if self.is_error else {}),
        }


@dataclass(slots=True)
class ToolContext:
    """State shared by every tool call of one automation session."""

    engine: AutomationEngine
    orchestrator: DiagnosticOrchestrator | None = None
    # Per-execution slots (e.g. the current batch id); owners restore prior values when done.
    scratch: dict[str, Any] = field(default_factory=dict)


class ToolHandler(Protocol):
    """Handlers write into the response sink; raising marks the call failed."""

    async def __call__(
        self,
        context: ToolContext,
        arguments: dict[str, Any],
        response: Response,
    ) -> None: ...


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a registered tool."""

    name: str
    handler: ToolHandler
    input_schema: ArgSchema
    description: str = ""


__all__ = ["ToolContent", "ToolContext", "ToolHandler", "ToolResult", "ToolSpec"]
