"""browser_batch_execute: run several tool calls as one ordered unit."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..batch import STOP_COMPLETED, STOP_ERROR, BatchExecutor, BatchStep, format_batch_result
from ..schema import ArgField, ArgSchema
from ..types import ToolSpec

if TYPE_CHECKING:
    from ..dispatch import ToolRegistry
    from ..response import Response
    from ..types import ToolContext


def make_batch_handler(registry: ToolRegistry):
    """Bind the batch tool to the registry its steps dispatch into."""

    async def handle_browser_batch_execute(context: ToolContext, args: dict[str, Any], response: Response) -> None:
        steps = [BatchStep.from_dict(s) if isinstance(s, dict) else BatchStep(tool="") for s in args["steps"]]

        enrichment = None
        max_steps = None
        if context.orchestrator is not None:
            enrichment = await context.orchestrator.enrichment_pipeline()
            max_steps = int(context.orchestrator.get_configuration()["batch_size_limit"])

        executor = BatchExecutor(registry, context, enrichment=enrichment, max_steps=max_steps)
        result = await executor.execute(
            steps,
            global_expectation=args.get("global_expectation"),
            stop_on_first_error=args.get("stop_on_first_error", False),
        )
        response.add_result(format_batch_result(result), data=result.to_dict())

        last_ok = next((s for s in reversed(result.steps) if s.success and s.result is not None), None)
        if last_ok is not None and result.stop_reason == STOP_COMPLETED and last_ok.result.content:
            final_text = last_ok.result.content[0].text or ""
            if final_text:
                response.add_result("")
                response.add_result("### Final State")
                response.add_result(final_text)

        if result.stop_reason == STOP_ERROR:
            response.add_error("Batch execution stopped due to error")
        elif result.failed_steps:
            response.add_error("Batch execution completed with failures")

    return handle_browser_batch_execute


def batch_tool_spec(registry: ToolRegistry) -> ToolSpec:
    return ToolSpec(
        name="browser_batch_execute",
        handler=make_batch_handler(registry),
        input_schema=ArgSchema(
            fields=(
                ArgField("steps", "list", required=True, description="[{tool, arguments, expectation?, continue_on_error?}]"),
                ArgField("global_expectation", "dict"),
                ArgField("stop_on_first_error", "bool", default=False),
            )
        ),
        description="Execute multiple browser actions in sequence with one response",
    )


__all__ = ["batch_tool_spec", "make_batch_handler"]
