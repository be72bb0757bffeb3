"""
Batch execution: several tool calls as one ordered unit.

Steps run strictly in submission order against one shared ToolContext. A batch
with any invalid step is rejected before anything runs.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..diagnostics.enrichment import EnrichedError, ExecutedStep, FailedStep
from ..errors import ValidationError
from .expectation import merge_expectation, validate_expectation
from .response import Response

if TYPE_CHECKING:
    from ..diagnostics.enrichment import ErrorEnrichmentPipeline
    from .dispatch import ToolRegistry
    from .types import ToolContext, ToolResult

logger = logging.getLogger("mcp.reliability.batch")

STOP_COMPLETED = "completed"
STOP_ERROR = "error"

SCRATCH_KEY = "batch"
_MISSING = object()


@dataclass(frozen=True)
class BatchStep:
    tool: str
    arguments: dict[str, Any] = field(default_factory=dict)
    expectation: dict[str, Any] | None = None
    continue_on_error: bool = False

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> BatchStep:
        args = raw.get("arguments", raw.get("args"))
        continue_on_error = raw.get("continue_on_error", raw.get("continueOnError", False))
        return cls(
            tool=str(raw.get("tool") or ""),
            arguments=dict(args) if isinstance(args, dict) else {},
            expectation=raw.get("expectation") if isinstance(raw.get("expectation"), dict) else None,
            continue_on_error=bool(continue_on_error),
        )


@dataclass(frozen=True)
class StepResult:
    step_index: int
    tool_name: str
    success: bool
    execution_time_ms: float
    result: ToolResult | None = None
    error: str | None = None
    suggestions: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "stepIndex": self.step_index,
            "toolName": self.tool_name,
            "success": self.success,
            "executionTimeMs": round(self.execution_time_ms),
            **({"result": self.result.to_dict()} if self.result is not None else {}),
            **({"error": self.error} if self.error is not None else {}),
            **({"suggestions": list(self.suggestions)} if self.suggestions else {}),
        }


@dataclass(frozen=True)
class BatchResult:
    batch_id: str
    steps: tuple[StepResult, ...]
    total_steps: int
    successful_steps: int
    failed_steps: int
    total_execution_time_ms: float
    stop_reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "steps": [s.to_dict() for s in self.steps],
            "totalSteps": self.total_steps,
            "successfulSteps": self.successful_steps,
            "failedSteps": self.failed_steps,
            "totalExecutionTimeMs": round(self.total_execution_time_ms),
            "stopReason": self.stop_reason,
        }


def new_batch_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class BatchExecutor:
    def __init__(
        self,
        registry: ToolRegistry,
        context: ToolContext,
        *,
        enrichment: ErrorEnrichmentPipeline | None = None,
        max_steps: int | None = None,
    ) -> None:
        self._registry = registry
        self._context = context
        self._enrichment = enrichment
        self._max_steps = max_steps

    def validate_all_steps(self, steps: list[BatchStep]) -> list[dict[str, Any]]:
        """Validate every step up front; returns the coerced arguments per step.

        Raises ValidationError listing every problem; nothing has run at that point.
        """
        errors: list[str] = []
        if not steps:
            errors.append("Batch must contain at least one step")
        if self._max_steps is not None and len(steps) > self._max_steps:
            errors.append(f"Batch has {len(steps)} steps; limit is {self._max_steps}")

        coerced: list[dict[str, Any]] = []
        for index, step in enumerate(steps):
            spec = self._registry.get(step.tool)
            if spec is None:
                errors.append(f"Unknown tool: {step.tool}")
                coerced.append({})
                continue
            parsed = spec.input_schema.validate(step.arguments)
            if not parsed.ok:
                errors.append(f"Invalid arguments for {step.tool} at step {index}: {parsed.message}")
            if step.expectation is not None:
                exp = validate_expectation(step.expectation)
                if not exp.ok:
                    errors.append(f"Invalid arguments for {step.tool} at step {index}: expectation {exp.message}")
            coerced.append(parsed.value)

        if errors:
            raise ValidationError("Batch validation failed: " + "; ".join(errors), errors)
        return coerced

    async def execute(
        self,
        steps: list[BatchStep],
        global_expectation: dict[str, Any] | None = None,
        stop_on_first_error: bool = False,
    ) -> BatchResult:
        """Run steps in order.

        A failed step stops the batch unless it set continue_on_error. The
        stop_on_first_error flag is accepted for compatibility and has no effect.
        """
        if global_expectation is not None:
            exp = validate_expectation(global_expectation)
            if not exp.ok:
                raise ValidationError(f"Invalid global expectation: {exp.message}", list(exp.errors))
        arguments = self.validate_all_steps(steps)

        batch_id = new_batch_id()
        started = time.monotonic()
        results: list[StepResult] = []
        stop_reason = STOP_COMPLETED
        logger.debug("Batch %s: %d steps", batch_id, len(steps))

        for index, (step, args) in enumerate(zip(steps, arguments, strict=True)):
            step_started = time.monotonic()
            prior = self._context.scratch.get(SCRATCH_KEY, _MISSING)
            self._context.scratch[SCRATCH_KEY] = {"id": batch_id, "step": index, "tool": step.tool}
            try:
                result = await self._execute_step(step, args, global_expectation)
                error: BaseException | None = None
            except Exception as exc:  # noqa: BLE001
                result = None
                error = exc
            finally:
                if prior is _MISSING:
                    self._context.scratch.pop(SCRATCH_KEY, None)
                else:
                    self._context.scratch[SCRATCH_KEY] = prior
            elapsed = (time.monotonic() - step_started) * 1000.0

            if error is None:
                results.append(
                    StepResult(
                        step_index=index,
                        tool_name=step.tool,
                        success=True,
                        execution_time_ms=elapsed,
                        result=result,
                    )
                )
                continue

            logger.info("Batch %s step %d (%s) failed: %s", batch_id, index, step.tool, error)
            enriched = await self._enrich(error, index, step, args, results)
            results.append(
                StepResult(
                    step_index=index,
                    tool_name=step.tool,
                    success=False,
                    execution_time_ms=elapsed,
                    error=str(error) or type(error).__name__,
                    suggestions=tuple(enriched.suggestions) if isinstance(enriched, EnrichedError) else (),
                )
            )
            if not step.continue_on_error:
                stop_reason = STOP_ERROR
                break

        successful = sum(1 for r in results if r.success)
        return BatchResult(
            batch_id=batch_id,
            steps=tuple(results),
            total_steps=len(steps),
            successful_steps=successful,
            failed_steps=len(results) - successful,
            total_execution_time_ms=(time.monotonic() - started) * 1000.0,
            stop_reason=stop_reason,
        )

    async def _execute_step(
        self,
        step: BatchStep,
        args: dict[str, Any],
        global_expectation: dict[str, Any] | None,
    ) -> ToolResult:
        spec = self._registry.get(step.tool)
        if spec is None:
            raise ValidationError(f"Unknown tool: {step.tool}", [f"Unknown tool: {step.tool}"])
        expectation = merge_expectation(step.tool, global_expectation, step.expectation)
        response = Response(self._context, step.tool, args, expectation)
        await spec.handler(self._context, args, response)
        if response.is_error:
            raise RuntimeError(response.result_text or f"{step.tool} reported an error")
        await response.finish()
        return response.serialize()

    async def _enrich(
        self,
        error: BaseException,
        index: int,
        step: BatchStep,
        args: dict[str, Any],
        results: list[StepResult],
    ) -> BaseException:
        if self._enrichment is None:
            return error
        selector = args.get("selector") if isinstance(args.get("selector"), str) else None
        return await self._enrichment.enrich_batch_failure(
            error,
            FailedStep(step_index=index, tool_name=step.tool, selector=selector),
            [ExecutedStep(step_index=r.step_index, tool_name=r.tool_name, success=r.success) for r in results],
        )


def _status_display(stop_reason: str) -> str:
    match stop_reason:
        case "completed":
            return "Completed"
        case "error":
            return "Stopped on Error"
        case _:
            return "Unknown"


def format_batch_result(result: BatchResult) -> str:
    lines = [
        "### Batch Execution Summary",
        f"- Status: {_status_display(result.stop_reason)}",
        f"- Total Steps: {result.total_steps}",
        f"- Successful: {result.successful_steps}",
        f"- Failed: {result.failed_steps}",
        f"- Total Time: {round(result.total_execution_time_ms)}ms",
    ]
    if result.stop_reason == STOP_ERROR:
        lines.append("- Note: Execution stopped early due to error")

    if result.steps:
        lines.append("")
        lines.append("### Step Details")
        for step in result.steps:
            mark = "OK" if step.success else "FAIL"
            lines.append(f"[{mark}] Step {step.step_index + 1}: {step.tool_name} ({round(step.execution_time_ms)}ms)")
            if step.success and step.result is not None and step.result.content:
                text = step.result.content[0].text or ""
                head = text.split("\n")
                if text:
                    lines.append("   " + "\n   ".join(head[:3]))
                    if len(head) > 3:
                        lines.append("   ...")
            elif step.error:
                lines.append(f"   Error: {step.error}")
                for suggestion in step.suggestions:
                    lines.append(f"   - {suggestion}")
    return "\n".join(lines)


__all__ = [
    "BatchExecutor",
    "BatchResult",
    "BatchStep",
    "STOP_COMPLETED",
    "STOP_ERROR",
    "StepResult",
    "format_batch_result",
    "new_batch_id",
]
