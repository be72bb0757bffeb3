from __future__ import annotations

import json
from typing import Any

import pytest


class DummyWs:
    def __init__(self, replies: list[Any] | None = None) -> None:
        self.replies = list(replies or [])
        self.sent: list[dict] = []
        self.closed = False

    def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    def settimeout(self, value: float) -> None:
        return None

    def recv(self) -> str:
        if not self.replies:
            raise TimeoutError("timed out")
        item = self.replies.pop(0)
        return item if isinstance(item, str) else json.dumps(item)

    def close(self) -> None:
        self.closed = True


class DummyConn:
    def __init__(self, results: dict[str, Any]) -> None:
        self.results = results
        self.calls: list[tuple[str, dict | None]] = []
        self.closed = False

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        self.calls.append((method, params))
        value = self.results.get(method, {})
        if callable(value):
            value = value(params)
        return value

    def close(self) -> None:
        self.closed = True


def test_connection_skips_events_and_foreign_ids() -> None:
    from mcp_servers.browser_reliability.cdp import CdpConnection

    ws = DummyWs(
        [
            {"method": "Page.loadEventFired", "params": {}},
            "not json",
            {"id": 99, "result": {"wrong": True}},
            {"id": 1, "result": {"ok": True}},
        ]
    )
    conn = CdpConnection("ws://test", ws=ws)

    assert conn.send("Runtime.enable") == {"ok": True}
    assert ws.sent == [{"id": 1, "method": "Runtime.enable"}]

    ws.replies.append({"id": 2, "result": {}})
    conn.send("Page.enable", {"x": 1})
    assert ws.sent[-1] == {"id": 2, "method": "Page.enable", "params": {"x": 1}}


def test_connection_raises_on_error_reply_and_timeout() -> None:
    from mcp_servers.browser_reliability.cdp import CdpConnection, CdpError

    ws = DummyWs([{"id": 1, "error": {"code": -32000, "message": "No node with given id"}}])
    conn = CdpConnection("ws://test", timeout=0.05, ws=ws)
    with pytest.raises(CdpError, match="No node with given id"):
        conn.send("DOM.describeNode")

    with pytest.raises(CdpError, match="timed out"):
        conn.send("Runtime.evaluate")

    conn.close()
    assert ws.closed


def test_discover_page_ws_url(monkeypatch: pytest.MonkeyPatch) -> None:
    from mcp_servers.browser_reliability import cdp

    monkeypatch.setattr(
        cdp,
        "http_get_json",
        lambda url, timeout=2.0: [
            {"type": "service_worker", "webSocketDebuggerUrl": "ws://sw"},
            {"type": "page", "webSocketDebuggerUrl": "ws://page"},
        ],
    )
    assert cdp.discover_page_ws_url(9222) == "ws://page"

    monkeypatch.setattr(cdp, "http_get_json", lambda url, timeout=2.0: [])
    with pytest.raises(cdp.CdpError, match="No page target"):
        cdp.discover_page_ws_url(9222)


@pytest.mark.asyncio
async def test_engine_evaluate_builds_call_expression() -> None:
    from mcp_servers.browser_reliability.cdp import CdpEngine, CdpError

    conn = DummyConn({"Runtime.evaluate": {"result": {"type": "number", "value": 3}}})
    engine = CdpEngine(conn)

    assert await engine.evaluate("(a) => a.x + 1", {"x": 2}) == 3
    method, params = conn.calls[0]
    assert method == "Runtime.evaluate"
    assert params["expression"] == '((a) => a.x + 1)({"x": 2})'
    assert params["returnByValue"] is True
    assert params["awaitPromise"] is True
    assert "contextId" not in params

    conn.results["Runtime.evaluate"] = {"exceptionDetails": {"exception": {"description": "ReferenceError: y"}}}
    with pytest.raises(CdpError, match="ReferenceError"):
        await engine.evaluate("() => y")


@pytest.mark.asyncio
async def test_find_all_returns_handles_and_releases_array() -> None:
    from mcp_servers.browser_reliability.cdp import CdpEngine

    conn = DummyConn(
        {
            "Runtime.evaluate": {"result": {"objectId": "array-1"}},
            "Runtime.getProperties": {
                "result": [
                    {"name": "0", "value": {"objectId": "el-0"}},
                    {"name": "1", "value": {"objectId": "el-1"}},
                    {"name": "length", "value": {"value": 2}},
                ]
            },
        }
    )
    engine = CdpEngine(conn)

    handles = await engine.find_all("iframe")

    assert [h.object_id for h in handles] == ["el-0", "el-1"]
    assert ("Runtime.releaseObject", {"objectId": "array-1"}) in conn.calls

    await handles[0].dispose()
    await handles[0].dispose()
    releases = [p["objectId"] for m, p in conn.calls if m == "Runtime.releaseObject"]
    assert releases == ["array-1", "el-0"]


@pytest.mark.asyncio
async def test_element_attribute_and_content_frame() -> None:
    from mcp_servers.browser_reliability.cdp import CdpElementHandle, CdpEngine, CdpError

    tree = {
        "frameTree": {
            "frame": {"id": "main", "url": "https://top"},
            "childFrames": [{"frame": {"id": "F1", "url": "https://child"}}],
        }
    }
    conn = DummyConn(
        {
            "Runtime.callFunctionOn": {"result": {"value": "https://child"}},
            "DOM.describeNode": {"node": {"frameId": "F1"}},
            "Page.getFrameTree": tree,
            "Page.createIsolatedWorld": {"executionContextId": 7},
            "Runtime.evaluate": {"result": {"value": 12}},
        }
    )
    engine = CdpEngine(conn)
    handle = CdpElementHandle(engine, "el-0")

    assert await handle.get_attribute("src") == "https://child"
    frame = await handle.content_frame()
    assert frame is not None
    assert await frame.url() == "https://child"
    assert await frame.evaluate("() => 12") == 12
    assert await frame.evaluate("() => 12") == 12

    worlds = [p for m, p in conn.calls if m == "Page.createIsolatedWorld"]
    assert worlds == [{"frameId": "F1", "worldName": "mcp-reliability"}]
    evals = [p for m, p in conn.calls if m == "Runtime.evaluate"]
    assert all(p["contextId"] == 7 for p in evals)

    conn.results["DOM.describeNode"] = {"node": {}}
    assert await handle.content_frame() is None

    conn.results["Page.getFrameTree"] = {"frameTree": {"frame": {"id": "main"}}}
    with pytest.raises(CdpError, match="Frame detached"):
        await frame.url()


@pytest.mark.asyncio
async def test_dispose_closes_connection_once() -> None:
    from mcp_servers.browser_reliability.cdp import CdpEngine, CdpError

    conn = DummyConn({})
    engine = CdpEngine(conn)
    await engine.dispose()
    await engine.dispose()

    assert conn.closed
    with pytest.raises(CdpError, match="disposed"):
        await engine.evaluate("() => 1")
    await engine.release("late-object")
    assert conn.calls == []
