"""
Composition root: build config, engine, orchestrator and registry, then run one diagnosis.

Environment:
- MCP_BROWSER_PORT: local Chrome remote-debugging port (default 9222)
- MCP_BROWSER_WS_URL: explicit page WebSocket URL (skips target discovery)
- MCP_RELIABILITY_*: see ConfigurationManager.from_env
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any

from .cdp import CdpEngine, CdpError, discover_page_ws_url
from .config import ConfigurationManager
from .diagnostics.orchestrator import DiagnosticOrchestrator
from .errors import ReliabilityError
from .server.registry import create_default_registry
from .server.types import ToolContext

logger = logging.getLogger("mcp.reliability")

DEFAULT_CDP_PORT = 9222


async def run(arguments: dict[str, Any] | None = None) -> dict[str, Any]:
    config = ConfigurationManager.from_env()
    ws_url = os.environ.get("MCP_BROWSER_WS_URL") or await asyncio.to_thread(
        discover_page_ws_url, int(os.environ.get("MCP_BROWSER_PORT") or DEFAULT_CDP_PORT)
    )
    engine = await CdpEngine.connect(ws_url)
    orchestrator = DiagnosticOrchestrator(engine, config)
    registry = create_default_registry()
    context = ToolContext(engine=engine, orchestrator=orchestrator)
    try:
        result = await registry.dispatch("browser_diagnose", context, arguments or {})
        return {"isError": result.is_error, "report": result.data}
    finally:
        await orchestrator.dispose()
        await engine.dispose()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    try:
        out = asyncio.run(run({"include_configuration": True}))
    except (CdpError, ReliabilityError) as exc:
        logger.error("diagnose_failed: %s", exc)
        sys.exit(1)
    sys.stdout.write(json.dumps(out, ensure_ascii=False, indent=2, default=str) + "\n")


if __name__ == "__main__":
    main()
