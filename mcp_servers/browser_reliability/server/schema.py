"""Declarative argument schemas with strict coercion for tool inputs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ArgField:
    name: str
    kind: str  # "str" | "int" | "float" | "bool" | "dict" | "list" | "any"
    required: bool = False
    default: Any = None
    lo: float | None = None
    hi: float | None = None
    choices: frozenset[str] | None = None
    description: str = ""


@dataclass(frozen=True)
class SchemaResult:
    ok: bool
    value: dict[str, Any] = field(default_factory=dict)
    errors: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        return "; ".join(self.errors)


def _coerce_boolish(value: Any) -> tuple[bool | None, bool]:
    if isinstance(value, bool):
        return value, True
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value), True
    if isinstance(value, str):
        v = value.strip().lower()
        if v in {"true", "1", "yes", "y", "on"}:
            return True, True
        if v in {"false", "0", "no", "n", "off"}:
            return False, True
    return None, False


def _coerce_int(value: Any, *, lo: float | None, hi: float | None) -> tuple[int | None, bool]:
    if value is None or isinstance(value, bool):
        return None, False
    if isinstance(value, float) and not value.is_integer():
        return None, False
    try:
        num = int(value)
    except (TypeError, ValueError):
        return None, False
    if (lo is not None and num < lo) or (hi is not None and num > hi):
        return None, False
    return num, True


def _coerce_float(value: Any, *, lo: float | None, hi: float | None) -> tuple[float | None, bool]:
    if value is None or isinstance(value, bool):
        return None, False
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None, False
    if (lo is not None and num < lo) or (hi is not None and num > hi):
        return None, False
    return num, True


def _range_hint(f: ArgField) -> str:
    if f.lo is not None and f.hi is not None:
        return f" in [{f.lo:g}, {f.hi:g}]"
    if f.lo is not None:
        return f" >= {f.lo:g}"
    if f.hi is not None:
        return f" <= {f.hi:g}"
    return ""


def _coerce(f: ArgField, value: Any) -> tuple[Any, str | None]:
    match f.kind:
        case "str":
            if not isinstance(value, str):
                return None, f"{f.name}: expected string"
            if f.choices is not None and value not in f.choices:
                return None, f"{f.name}: expected one of {sorted(f.choices)}"
            return value, None
        case "int":
            num, ok = _coerce_int(value, lo=f.lo, hi=f.hi)
            return (num, None) if ok else (None, f"{f.name}: expected integer{_range_hint(f)}")
        case "float":
            num, ok = _coerce_float(value, lo=f.lo, hi=f.hi)
            return (num, None) if ok else (None, f"{f.name}: expected number{_range_hint(f)}")
        case "bool":
            flag, ok = _coerce_boolish(value)
            return (flag, None) if ok else (None, f"{f.name}: expected boolean")
        case "dict":
            return (value, None) if isinstance(value, dict) else (None, f"{f.name}: expected object")
        case "list":
            return (value, None) if isinstance(value, list) else (None, f"{f.name}: expected array")
        case "any":
            return value, None
        case _:
            raise ValueError(f"Unsupported field kind: {f.kind}")


_JSON_TYPES = {
    "str": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
    "dict": "object",
    "list": "array",
}


@dataclass(frozen=True)
class ArgSchema:
    fields: tuple[ArgField, ...] = ()
    allow_extra: bool = False

    def validate(self, args: dict[str, Any] | None) -> SchemaResult:
        """Coerce known fields; report every violation at once."""
        if args is not None and not isinstance(args, dict):
            return SchemaResult(ok=False, errors=("arguments: expected object",))
        args = dict(args or {})
        value: dict[str, Any] = {}
        errors: list[str] = []
        known = {f.name for f in self.fields}

        for f in self.fields:
            raw = args.get(f.name)
            if raw is None:
                if f.required:
                    errors.append(f"{f.name}: required")
                elif f.default is not None:
                    value[f.name] = f.default
                continue
            coerced, err = _coerce(f, raw)
            if err:
                errors.append(err)
            else:
                value[f.name] = coerced

        extra = [k for k in args if k not in known]
        if extra and not self.allow_extra:
            errors.append(f"unknown arguments: {', '.join(sorted(extra))}")
        elif extra:
            value.update({k: args[k] for k in extra})

        if errors:
            return SchemaResult(ok=False, errors=tuple(errors))
        return SchemaResult(ok=True, value=value)

    def to_json_schema(self) -> dict[str, Any]:
        props: dict[str, Any] = {}
        for f in self.fields:
            prop: dict[str, Any] = {}
            if f.kind in _JSON_TYPES:
                prop["type"] = _JSON_TYPES[f.kind]
            if f.description:
                prop["description"] = f.description
            if f.choices is not None:
                prop["enum"] = sorted(f.choices)
            if f.lo is not None:
                prop["minimum"] = f.lo
            if f.hi is not None:
                prop["maximum"] = f.hi
            if f.default is not None:
                prop["default"] = f.default
            props[f.name] = prop
        return {
            "type": "object",
            "properties": props,
            "required": [f.name for f in self.fields if f.required],
            "additionalProperties": self.allow_extra,
        }


__all__ = ["ArgField", "ArgSchema", "SchemaResult"]
