from __future__ import annotations

import pytest


@pytest.mark.asyncio
async def test_untrack_and_dispose_twice_are_noops() -> None:
    from mcp_servers.browser_reliability.resources import ResourceTracker

    tracker = ResourceTracker()
    released: list[str] = []

    first = tracker.track("a", lambda: released.append("a"))
    assert tracker.untrack(first) is True
    assert tracker.untrack(first) is False

    second = tracker.track("b", lambda: released.append("b"))
    assert await tracker.dispose(second) is True
    assert await tracker.dispose(second) is False
    assert released == ["b"]
    assert len(tracker) == 0


@pytest.mark.asyncio
async def test_async_disposers_are_awaited() -> None:
    from mcp_servers.browser_reliability.resources import ResourceTracker

    tracker = ResourceTracker()
    released: list[str] = []

    async def release() -> None:
        released.append("x")

    handle_id = tracker.track(object(), release, category="element")
    assert tracker.get_stats().by_category == {"element": 1}
    await tracker.dispose(handle_id)
    assert released == ["x"]


@pytest.mark.asyncio
async def test_smart_handle_fails_after_dispose() -> None:
    from mcp_servers.browser_reliability.errors import DisposedStateError
    from mcp_servers.browser_reliability.resources import ResourceTracker

    tracker = ResourceTracker()
    released: list[int] = []
    handle = tracker.create_smart_handle({"v": 1}, lambda: released.append(1))

    assert handle.resource == {"v": 1}
    assert handle.id in tracker
    await handle.dispose()
    await handle.dispose()

    assert released == [1]
    assert handle.disposed
    assert handle.id not in tracker
    with pytest.raises(DisposedStateError, match="SmartHandle has been disposed"):
        _ = handle.resource
    with pytest.raises(DisposedStateError):
        handle.get()


@pytest.mark.asyncio
async def test_smart_handle_context_manager_releases() -> None:
    from mcp_servers.browser_reliability.resources import ResourceTracker

    tracker = ResourceTracker()
    released: list[str] = []
    handle = tracker.create_smart_handle("page", lambda: released.append("page"))
    async with handle as resource:
        assert resource == "page"
    assert released == ["page"]
    assert len(tracker) == 0


@pytest.mark.asyncio
async def test_dispose_all_settles_every_disposer() -> None:
    from mcp_servers.browser_reliability.resources import ResourceTracker

    tracker = ResourceTracker()
    released: list[str] = []

    def fail() -> None:
        raise RuntimeError("disposer exploded")

    tracker.track("a", lambda: released.append("a"))
    bad = tracker.track("b", fail)
    tracker.track("c", lambda: released.append("c"))

    report = await tracker.dispose_all()

    assert sorted(released) == ["a", "c"]
    assert report.disposed == 2
    assert [hid for hid, _ in report.failures] == [bad]
    assert not report.ok
    assert len(tracker) == 0


def test_peak_count_is_monotonic() -> None:
    from mcp_servers.browser_reliability.resources import ResourceTracker

    tracker = ResourceTracker()
    ids = [tracker.track(i, lambda: None) for i in range(3)]
    for hid in ids:
        tracker.untrack(hid)
    tracker.track("again", lambda: None)

    stats = tracker.get_stats()
    assert stats.active_count == 1
    assert stats.peak_count == 3


def test_leaks_are_flagged_not_disposed(monkeypatch: pytest.MonkeyPatch) -> None:
    from mcp_servers.browser_reliability import resources
    from mcp_servers.browser_reliability.config import ConfigurationManager

    clock = [1_000.0]
    monkeypatch.setattr(resources, "_now_ms", lambda: clock[0])
    config = ConfigurationManager({"auto_dispose_timeout": 50})
    tracker = resources.ResourceTracker(config)
    released: list[str] = []

    old = tracker.track("old", lambda: released.append("old"))
    clock[0] += 100
    tracker.track("fresh", lambda: released.append("fresh"))

    leaks = tracker.find_leaks()
    assert [rec.id for rec in leaks] == [old]
    stats = tracker.get_stats()
    assert stats.expired_count == 1
    assert stats.total_tracked == 2
    assert released == []
    assert old in tracker


def test_leak_detection_flags_disable_flagging(monkeypatch: pytest.MonkeyPatch) -> None:
    from mcp_servers.browser_reliability import resources
    from mcp_servers.browser_reliability.config import ConfigurationManager

    clock = [1_000.0]
    monkeypatch.setattr(resources, "_now_ms", lambda: clock[0])
    config = ConfigurationManager({"auto_dispose_timeout": 50, "enable_leak_detection": False})
    tracker = resources.ResourceTracker(config)
    tracker.track("old", lambda: None)
    clock[0] += 100

    assert tracker.find_leaks() == []
    stats = tracker.get_stats()
    assert stats.expired_count == 0
    assert stats.active_count == 1

    config.update_config({"enable_leak_detection": True, "features": {"enable_resource_leak_detection": False}})
    assert tracker.find_leaks() == []

    config.update_config({"features": {"enable_resource_leak_detection": True}})
    assert len(tracker.find_leaks()) == 1
    assert tracker.get_stats().expired_count == 1


@pytest.mark.asyncio
async def test_smart_handle_batch() -> None:
    from mcp_servers.browser_reliability.errors import DisposedStateError
    from mcp_servers.browser_reliability.resources import ResourceTracker, SmartHandleBatch

    tracker = ResourceTracker()
    released: list[int] = []
    batch = SmartHandleBatch(tracker)
    for i in range(3):
        batch.add(i, lambda i=i: released.append(i))
    assert batch.active_count() == 3

    await batch.dispose_all()
    await batch.dispose_all()

    assert sorted(released) == [0, 1, 2]
    assert len(tracker) == 0
    with pytest.raises(DisposedStateError):
        batch.add(4, lambda: None)
