"""Typed stored-query parameters: definitions, validation and resolution.

Everything here is pure: no I/O, no logging, safe to call from several
pipeline worker threads at once.

Value sources for a parameter, highest precedence first:
1. Raw string provided on the command line (parsed, then validated)
2. Configured default (validated as-is)
3. The only element of a single-item choices list
4. MissingParameter if the parameter is required, otherwise omitted
"""

from __future__ import annotations

import json
import math
import re
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, field_validator

from cosmos_tool.core.exceptions import (
    AboveMax,
    BelowMin,
    InvalidChoice,
    MissingParameter,
    ParseError,
    PatternMismatch,
    TypeMismatch,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

# Scalar value bound to a query parameter. int and float stay distinct
# from parse through to the wire.
ParamValue = str | int | float | bool

ResolvedParameterSet = dict[str, ParamValue]

_INT_RE = re.compile(r"[+-]?\d+")
_TRUE_LITERALS = frozenset({"true", "1", "yes"})
_FALSE_LITERALS = frozenset({"false", "0", "no"})


class ParamType(StrEnum):
    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"


class ParameterDefinition(BaseModel):
    """A parameter declared in a stored query's metadata (used as @name in SQL)."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: ParamType
    description: str | None = None
    default: Any = None
    choices: list[Any] | None = None
    required: bool | None = None
    min: float | None = None
    max: float | None = None
    pattern: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str) and v.lower() == "boolean":
            return ParamType.BOOL
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not re.fullmatch(r"\w+", v):
            msg = f"Invalid parameter name: '{v}'. Use letters, digits and underscores"
            raise ValueError(msg)
        return v


def is_required(param: ParameterDefinition) -> bool:
    """An explicit ``required`` wins; otherwise required iff no default and no choices."""
    if param.required is not None:
        return param.required
    return param.default is None and param.choices is None


def _is_number(value: Any) -> bool:
    # bool is a subclass of int, so it must be ruled out for numbers.
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _matches_type(param_type: ParamType, value: Any) -> bool:
    if param_type is ParamType.STRING:
        return isinstance(value, str)
    if param_type is ParamType.NUMBER:
        return _is_number(value)
    return isinstance(value, bool)


def _same_value(a: Any, b: Any) -> bool:
    return type(a) is type(b) and a == b


def validate(param: ParameterDefinition, value: Any) -> None:
    """Check ``value`` against ``param``; raise the first failing check.

    Order: type, numeric range, choices, string pattern.
    """
    if not _matches_type(param.type, value):
        rendered = json.dumps(value, default=str)
        raise TypeMismatch(param.name, param.type.value, rendered)

    if _is_number(value):
        num = float(value)
        if param.min is not None and num < param.min:
            raise BelowMin(param.name, num, param.min)
        if param.max is not None and num > param.max:
            raise AboveMax(param.name, num, param.max)

    if param.choices is not None and not any(
        _same_value(choice, value) for choice in param.choices
    ):
        raise InvalidChoice(param.name, value, param.choices)

    if param.type is ParamType.STRING and param.pattern is not None:
        try:
            matched = re.fullmatch(param.pattern, value) is not None
        except re.error:
            matched = False
        if not matched:
            raise PatternMismatch(param.name, value, param.pattern)


def parse_value(param_type: ParamType, raw: str, name: str = "value") -> ParamValue:
    """Convert command-line text into a typed value.

    Numbers try an integer first, then a finite float. Booleans accept
    true/1/yes and false/0/no in any case.
    """
    if param_type is ParamType.STRING:
        return raw

    if param_type is ParamType.NUMBER:
        if _INT_RE.fullmatch(raw):
            return int(raw)
        if raw == raw.strip() and "_" not in raw:
            try:
                num = float(raw)
            except ValueError:
                pass
            else:
                if math.isfinite(num):
                    return num
        raise ParseError(name, "number", raw)

    lowered = raw.lower()
    if lowered in _TRUE_LITERALS:
        return True
    if lowered in _FALSE_LITERALS:
        return False
    raise ParseError(name, "bool (true/false)", raw)


def resolve(
    params: Iterable[ParameterDefinition],
    provided: Mapping[str, str],
) -> ResolvedParameterSet:
    """Resolve every declared parameter, in declaration order.

    Each resolved value is validated exactly once before it is added.
    """
    resolved: ResolvedParameterSet = {}
    for param in params:
        if param.name in provided:
            value = parse_value(param.type, provided[param.name], param.name)
        elif param.default is not None:
            value = param.default
        elif param.choices is not None and len(param.choices) == 1:
            value = param.choices[0]
        elif is_required(param):
            raise MissingParameter(param.name)
        else:
            continue

        validate(param, value)
        resolved[param.name] = value
    return resolved


def build_query_parameters(resolved: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Render resolved values as the wire-level ``[{"name": "@x", "value": v}]`` array."""
    return [{"name": f"@{name}", "value": resolved[name]} for name in sorted(resolved)]
