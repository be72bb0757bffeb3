"""
Automation-engine boundary.

The reliability layer never assumes a transport or browser; it only needs these
capabilities. `cdp.CdpEngine` is the bundled implementation.
"""

from __future__ import annotations

from typing import Any, Protocol


class Frame(Protocol):
    """A nested browsing context reachable from an iframe element.

    Implementations may expose a `frame_id` attribute; wrappers sharing it are
    treated as the same frame.
    """

    async def url(self) -> str: ...

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    async def find_all(self, selector: str) -> list[ElementHandle]: ...


class ElementHandle(Protocol):
    """Reference to a live element; must be disposed exactly once."""

    async def get_attribute(self, name: str) -> str | None: ...

    async def content_frame(self) -> Frame | None: ...

    async def dispose(self) -> None: ...


class AutomationEngine(Protocol):
    """Opaque engine capability: evaluate / find_all / dispose."""

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    async def find_all(self, selector: str) -> list[ElementHandle]: ...

    async def dispose(self) -> None: ...


__all__ = ["AutomationEngine", "ElementHandle", "Frame"]
