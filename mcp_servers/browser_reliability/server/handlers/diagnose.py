"""browser_diagnose: orchestrated page analysis plus system health."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..schema import ArgField, ArgSchema
from ..types import ToolSpec

if TYPE_CHECKING:
    from ..response import Response
    from ..types import ToolContext


async def handle_browser_diagnose(context: ToolContext, args: dict[str, Any], response: Response) -> None:
    orchestrator = context.orchestrator
    if orchestrator is None:
        raise RuntimeError("Diagnostics are not configured for this context")

    await orchestrator.initialize()
    report: dict[str, Any] = {}

    structure = await orchestrator.analyze_page_structure(force_parallel=args.get("force_parallel", False))
    report["structure"] = structure.to_dict()

    if args.get("include_performance", True):
        performance = await orchestrator.analyze_performance_metrics()
        report["performance"] = performance.to_dict()

    report["health"] = orchestrator.perform_health_check()
    report["system"] = orchestrator.get_system_stats()
    if args.get("include_configuration", False):
        report["configuration"] = orchestrator.get_configuration_report()

    lines = [f"Health: {report['health']['status']}"]
    lines.extend(f"- {issue}" for issue in report["health"]["issues"])
    if not structure.success and structure.error is not None:
        lines.append(f"Structure analysis failed: {structure.error}")
    response.add_result("\n".join(lines), data=report)


DIAGNOSE_HANDLERS: dict[str, ToolSpec] = {
    "browser_diagnose": ToolSpec(
        name="browser_diagnose",
        handler=handle_browser_diagnose,
        input_schema=ArgSchema(
            fields=(
                ArgField("force_parallel", "bool", default=False),
                ArgField("include_performance", "bool", default=True),
                ArgField("include_configuration", "bool", default=False),
            )
        ),
        description="Analyze page structure/performance and report system health",
    ),
}

__all__ = ["DIAGNOSE_HANDLERS"]
