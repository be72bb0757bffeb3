"""Response expectations: what a tool response should include.

Priority when merging: step-level > batch-level (global) > per-tool defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any

from .schema import ArgField, ArgSchema, SchemaResult


@dataclass(frozen=True)
class Expectation:
    include_snapshot: bool = False
    include_tabs: bool = False
    include_code: bool = False
    snapshot_options: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


EXPECTATION_SCHEMA = ArgSchema(
    fields=(
        ArgField("include_snapshot", "bool"),
        ArgField("include_tabs", "bool"),
        ArgField("include_code", "bool"),
        ArgField("snapshot_options", "dict"),
    )
)

_GENERAL_DEFAULT = Expectation()

TOOL_DEFAULTS: dict[str, Expectation] = {
    "browser_navigate": Expectation(include_snapshot=True, include_tabs=True, include_code=True),
    "browser_snapshot": Expectation(include_snapshot=True),
    "browser_close": Expectation(include_tabs=True, include_code=True),
}


def default_expectation(tool_name: str) -> Expectation:
    return TOOL_DEFAULTS.get(tool_name, _GENERAL_DEFAULT)


def validate_expectation(raw: dict[str, Any] | None) -> SchemaResult:
    return EXPECTATION_SCHEMA.validate(raw)


def merge_expectation(
    tool_name: str,
    global_expectation: dict[str, Any] | None = None,
    step_expectation: dict[str, Any] | None = None,
) -> Expectation:
    """Tool defaults, then global overrides, then step overrides (None values never override)."""
    merged = default_expectation(tool_name)
    for layer in (global_expectation, step_expectation):
        if not layer:
            continue
        parsed = EXPECTATION_SCHEMA.validate(layer)
        if not parsed.ok:
            raise ValueError(f"Invalid expectation: {parsed.message}")
        merged = replace(merged, **parsed.value)
    return merged


__all__ = [
    "EXPECTATION_SCHEMA",
    "Expectation",
    "TOOL_DEFAULTS",
    "default_expectation",
    "merge_expectation",
    "validate_expectation",
]
