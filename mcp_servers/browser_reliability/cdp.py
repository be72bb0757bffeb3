"""
Chrome DevTools Protocol adapter for the AutomationEngine protocol.

CdpConnection is synchronous (websocket-client); the async engine/frame/element
wrappers move every round-trip off the event loop with asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

from .errors import ReliabilityError

logger = logging.getLogger("mcp.reliability.cdp")

ISOLATED_WORLD = "mcp-reliability"


@dataclass
class CdpError(ReliabilityError):
    message: str

    def __str__(self) -> str:
        return self.message


def http_get_json(url: str, timeout: float = 2.0) -> Any:
    """Fetch JSON from URL."""
    from urllib.error import URLError
    from urllib.request import urlopen

    try:
        with urlopen(url, timeout=timeout) as resp:
            return json.loads(resp.read().decode())
    except URLError as e:
        raise CdpError(str(e)) from e


def discover_page_ws_url(port: int, host: str = "127.0.0.1") -> str:
    """WebSocket URL of the first page target on a local debugging port."""
    targets = http_get_json(f"http://{host}:{port}/json/list") or []
    for target in targets:
        if isinstance(target, dict) and target.get("type") == "page" and target.get("webSocketDebuggerUrl"):
            return str(target["webSocketDebuggerUrl"])
    raise CdpError(f"No page target found on port {port}")


class CdpConnection:
    """Low-level CDP WebSocket connection (one command in flight at a time)."""

    def __init__(self, ws_url: str, timeout: float = 5.0, *, ws: Any = None):
        if ws is None:
            import websocket

            ws = websocket.create_connection(ws_url, timeout=timeout)
        self.ws = ws
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        self._lock = threading.Lock()

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send CDP command and wait for response."""
        with self._lock:
            msg_id = self._next_id
            self._next_id += 1

            msg: dict[str, Any] = {"id": msg_id, "method": method}
            if params:
                msg["params"] = params
            try:
                self.ws.send(json.dumps(msg))
            except Exception as exc:  # noqa: BLE001
                raise CdpError(str(exc)) from exc
            return self._recv_until(msg_id)

    def _recv_until(self, expected_id: int) -> dict[str, Any]:
        """Wait for response with specific ID; events are skipped."""
        deadline = time.time() + self.timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise CdpError("CDP response timed out")

            # recv() blocks indefinitely unless a socket timeout is set.
            try:
                self.ws.settimeout(min(0.5, remaining))
                raw = self.ws.recv()
            except Exception as exc:  # noqa: BLE001
                msg = str(exc).lower()
                if isinstance(exc, TimeoutError) or "timed out" in msg:
                    continue
                raise CdpError(str(exc)) from exc

            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                continue

            if not isinstance(data, dict) or data.get("id") != expected_id:
                continue
            if "error" in data:
                err = data["error"]
                raise CdpError(str(err.get("message") if isinstance(err, dict) else err))
            return data.get("result", {})

    def close(self) -> None:
        try:
            self.ws.close()
        except Exception as exc:  # noqa: BLE001
            logger.debug("CDP close failed: %s", exc)


def _call_expression(script: str, arg: Any) -> str:
    return f"({script})({json.dumps(arg)})"


def _exception_text(details: dict[str, Any]) -> str:
    exc = details.get("exception") if isinstance(details.get("exception"), dict) else {}
    return str(exc.get("description") or details.get("text") or "Evaluation failed")


class CdpEngine:
    """AutomationEngine over one page target."""

    def __init__(self, conn: CdpConnection):
        self._conn = conn
        self._closed = False

    @classmethod
    async def connect(cls, ws_url: str, timeout: float = 5.0) -> CdpEngine:
        conn = await asyncio.to_thread(CdpConnection, ws_url, timeout)
        return cls(conn)

    async def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if self._closed:
            raise CdpError("CDP engine has been disposed")
        return await asyncio.to_thread(self._conn.send, method, params)

    async def evaluate(self, script: str, arg: Any = None, *, context_id: int | None = None) -> Any:
        params: dict[str, Any] = {
            "expression": _call_expression(script, arg),
            "returnByValue": True,
            "awaitPromise": True,
        }
        if context_id is not None:
            params["contextId"] = context_id
        result = await self.call("Runtime.evaluate", params)
        if result.get("exceptionDetails"):
            raise CdpError(_exception_text(result["exceptionDetails"]))
        return (result.get("result") or {}).get("value")

    async def find_all(self, selector: str, *, context_id: int | None = None) -> list[CdpElementHandle]:
        params: dict[str, Any] = {
            "expression": f"Array.from(document.querySelectorAll({json.dumps(selector)}))",
            "returnByValue": False,
        }
        if context_id is not None:
            params["contextId"] = context_id
        result = await self.call("Runtime.evaluate", params)
        if result.get("exceptionDetails"):
            raise CdpError(_exception_text(result["exceptionDetails"]))
        array_id = (result.get("result") or {}).get("objectId")
        if not array_id:
            return []
        try:
            props = await self.call("Runtime.getProperties", {"objectId": array_id, "ownProperties": True})
        finally:
            await self.release(array_id)
        handles: list[CdpElementHandle] = []
        for prop in props.get("result") or []:
            name = str(prop.get("name", ""))
            object_id = (prop.get("value") or {}).get("objectId")
            if name.isdigit() and object_id:
                handles.append(CdpElementHandle(self, object_id))
        return handles

    async def release(self, object_id: str) -> None:
        if self._closed:
            return
        await self.call("Runtime.releaseObject", {"objectId": object_id})

    async def frame_url(self, frame_id: str) -> str:
        tree = await self.call("Page.getFrameTree")
        stack = [tree.get("frameTree") or {}]
        while stack:
            node = stack.pop()
            frame = node.get("frame") or {}
            if frame.get("id") == frame_id:
                return str(frame.get("url") or "")
            stack.extend(node.get("childFrames") or [])
        raise CdpError(f"Frame detached: {frame_id}")

    async def dispose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await asyncio.to_thread(self._conn.close)


class CdpElementHandle:
    def __init__(self, engine: CdpEngine, object_id: str):
        self._engine = engine
        self.object_id = object_id
        self._released = False

    async def get_attribute(self, name: str) -> str | None:
        result = await self._engine.call(
            "Runtime.callFunctionOn",
            {
                "objectId": self.object_id,
                "functionDeclaration": "function(n) { return this.getAttribute(n); }",
                "arguments": [{"value": name}],
                "returnByValue": True,
            },
        )
        value = (result.get("result") or {}).get("value")
        return None if value is None else str(value)

    async def content_frame(self) -> CdpFrame | None:
        described = await self._engine.call("DOM.describeNode", {"objectId": self.object_id})
        frame_id = (described.get("node") or {}).get("frameId")
        return CdpFrame(self._engine, frame_id) if frame_id else None

    async def dispose(self) -> None:
        if self._released:
            return
        self._released = True
        await self._engine.release(self.object_id)


class CdpFrame:
    def __init__(self, engine: CdpEngine, frame_id: str):
        self._engine = engine
        self.frame_id = frame_id
        self._context_id: int | None = None

    async def _context(self) -> int:
        if self._context_id is None:
            result = await self._engine.call(
                "Page.createIsolatedWorld",
                {"frameId": self.frame_id, "worldName": ISOLATED_WORLD},
            )
            context_id = result.get("executionContextId")
            if context_id is None:
                raise CdpError(f"No execution context for frame {self.frame_id}")
            self._context_id = int(context_id)
        return self._context_id

    async def url(self) -> str:
        return await self._engine.frame_url(self.frame_id)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._engine.evaluate(script, arg, context_id=await self._context())

    async def find_all(self, selector: str) -> list[CdpElementHandle]:
        return await self._engine.find_all(selector, context_id=await self._context())


__all__ = [
    "CdpConnection",
    "CdpElementHandle",
    "CdpEngine",
    "CdpError",
    "CdpFrame",
    "discover_page_ws_url",
    "http_get_json",
]
