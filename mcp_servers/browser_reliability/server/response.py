"""Response sink: handlers append results/code; expectation decides what gets rendered."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .expectation import Expectation, default_expectation
from .types import ToolResult

if TYPE_CHECKING:
    from .types import ToolContext

logger = logging.getLogger("mcp.reliability.registry")

DEFAULT_SNAPSHOT_CHARS = 4000

PAGE_STATE_SCRIPT = r"""
(opts) => {
  const root = (opts && opts.selector) ? document.querySelector(opts.selector) : document.body;
  const maxLength = (opts && opts.maxLength) || 4000;
  const text = root ? (root.innerText || '').replace(/\s+\n/g, '\n').trim() : '';
  const dialogs = document.querySelectorAll('[role="dialog"], [role="alertdialog"], dialog[open]');
  return {
    url: location.href,
    title: document.title,
    text: text.length > maxLength ? text.slice(0, maxLength) + '...' : text,
    truncated: text.length > maxLength,
    modal: dialogs.length > 0,
  };
}
"""


class Response:
    def __init__(
        self,
        context: ToolContext,
        tool_name: str,
        args: dict[str, Any],
        expectation: Expectation | None = None,
    ) -> None:
        self.context = context
        self.tool_name = tool_name
        self.args = args
        self.expectation = expectation if expectation is not None else default_expectation(tool_name)
        self._result: list[str] = []
        self._code: list[str] = []
        self._data: Any = None
        self._is_error = False
        self._include_snapshot = False
        self._page_state: dict[str, Any] | None = None
        self._page_state_error: str | None = None

    def add_result(self, text: str, *, data: Any = None) -> None:
        self._result.append(text)
        if data is not None:
            self._data = data

    def add_error(self, text: str) -> None:
        self._result.append(text)
        self._is_error = True

    def add_code(self, code: str) -> None:
        self._code.append(code)

    def set_include_snapshot(self) -> None:
        self._include_snapshot = True

    @property
    def is_error(self) -> bool:
        return self._is_error

    @property
    def result_text(self) -> str:
        return "\n".join(self._result)

    @property
    def code(self) -> list[str]:
        return list(self._code)

    @property
    def _wants_snapshot(self) -> bool:
        return self.expectation.include_snapshot or self._include_snapshot

    @property
    def _wants_tabs(self) -> bool:
        return self.expectation.include_tabs

    async def finish(self) -> None:
        """Capture page state when the expectation asks for it (best-effort)."""
        if not (self._wants_snapshot or self._wants_tabs):
            return
        opts = dict(self.expectation.snapshot_options or {})
        arg = {
            "selector": opts.get("selector"),
            "maxLength": int(opts.get("maxLength") or opts.get("max_length") or DEFAULT_SNAPSHOT_CHARS),
        }
        try:
            state = await self.context.engine.evaluate(PAGE_STATE_SCRIPT, arg)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Page state capture failed for %s: %s", self.tool_name, exc)
            self._page_state_error = str(exc) or type(exc).__name__
            return
        self._page_state = state if isinstance(state, dict) else None

    def serialize(self) -> ToolResult:
        lines: list[str] = []
        if self._result:
            lines.append("### Result")
            lines.append("\n".join(self._result))
            lines.append("")

        if self._code and self.expectation.include_code:
            lines.append("### Ran code")
            lines.append("```js")
            lines.extend(self._code)
            lines.append("```")
            lines.append("")

        state = self._page_state or {}
        if self._wants_tabs and state:
            lines.append("### Page")
            lines.append(f"- URL: {state.get('url', '')}")
            lines.append(f"- Title: {state.get('title', '')}")
            lines.append("")

        if self._wants_snapshot:
            if state.get("modal"):
                lines.append("### Modal state")
                lines.append("- A dialog is open; handle it before further interaction")
                lines.append("")
            elif state:
                lines.append("### Page state")
                lines.append(str(state.get("text") or ""))
                lines.append("")
            elif self._page_state_error:
                lines.append("### Page state")
                lines.append(f"Unavailable: {self._page_state_error}")
                lines.append("")

        payload = {
            "tool": self.tool_name,
            "result": self._data if self._data is not None else self.result_text,
            **({"code": list(self._code)} if self._code and self.expectation.include_code else {}),
            **({"page": state} if state else {}),
        }
        return ToolResult(
            content=ToolResult.text("\n".join(lines).rstrip()).content,
            is_error=self._is_error,
            data=payload,
        )


__all__ = ["PAGE_STATE_SCRIPT", "Response"]
