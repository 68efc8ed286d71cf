"""Exception hierarchy for Cosmos Tool.

All exceptions carry an exit_code for CLI return value mapping.
Exit codes are defined in exit_codes.py.

Families:
- ValidationError: a parameter value is wrong; always fixable by the caller.
- TransportError: the remote API refused or failed a request.
- PlanError: a multi-step query cannot be scheduled; raised before any step runs.
- ExecutionError: a pipeline step could not be completed.
"""

from __future__ import annotations

import json
from typing import Any

from cosmos_tool.core.exit_codes import ExitCode

_ACTIVITY_SUFFIX = "\r\nActivityId:"

PERMISSION_HINT = (
    "You may not have data plane access. Check your Cosmos DB RBAC roles."
)


def extract_message(body: str) -> str:
    """Pull a readable message out of a Cosmos DB error body.

    Falls back to the raw body when it is not JSON or has no message field.
    """
    try:
        data = json.loads(body)
    except ValueError:
        return body
    if not isinstance(data, dict):
        return body
    msg = data.get("message")
    if not isinstance(msg, str):
        msg = data.get("Message")
    if not isinstance(msg, str):
        return body
    return msg.split(_ACTIVITY_SUFFIX, 1)[0].strip()


class CosmosToolError(Exception):
    """Base exception for all Cosmos Tool errors."""

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NetworkError(CosmosToolError):
    """Connection failures, unreachable host."""

    exit_code: int = ExitCode.NETWORK_ERROR


class TimeoutError(NetworkError):
    """Request timeout, connection timeout."""

    exit_code: int = ExitCode.TIMEOUT


class InputError(CosmosToolError):
    """File not found, invalid parameters."""

    exit_code: int = ExitCode.INPUT_ERROR


class ConfigError(CosmosToolError):
    """Malformed config, missing profile."""

    exit_code: int = ExitCode.CONFIG_ERROR


class StoredQueryError(InputError):
    """Stored query file is missing or malformed."""


# -- Parameter validation --


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


class ValidationError(InputError):
    """A parameter value failed validation. Always names the parameter."""

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(message)


class TypeMismatch(ValidationError):
    def __init__(self, name: str, expected: str, value: str) -> None:
        self.expected = expected
        self.value = value
        super().__init__(
            name, f"parameter '{name}': expected {expected}, got '{value}'"
        )


class ParseError(TypeMismatch):
    """Raw command-line text could not be coerced to the declared type."""


class BelowMin(ValidationError):
    def __init__(self, name: str, value: float, min: float) -> None:
        self.value = value
        self.min = min
        super().__init__(
            name, f"parameter '{name}': value {value} is below minimum {min}"
        )


class AboveMax(ValidationError):
    def __init__(self, name: str, value: float, max: float) -> None:
        self.value = value
        self.max = max
        super().__init__(
            name, f"parameter '{name}': value {value} exceeds maximum {max}"
        )


class InvalidChoice(ValidationError):
    def __init__(self, name: str, value: Any, choices: list[Any]) -> None:
        self.value = value
        self.choices = ", ".join(_render(c) for c in choices)
        super().__init__(
            name,
            f"parameter '{name}': '{_render(value)}' is not one of the "
            f"allowed values: {self.choices}",
        )


class PatternMismatch(ValidationError):
    def __init__(self, name: str, value: str, pattern: str) -> None:
        self.value = value
        self.pattern = pattern
        super().__init__(
            name,
            f"parameter '{name}': value '{value}' does not match pattern '{pattern}'",
        )


class MissingParameter(ValidationError):
    def __init__(self, name: str) -> None:
        super().__init__(name, f"parameter '{name}' is required")


# -- Transport --


class TransportError(CosmosToolError):
    """The data plane API rejected or failed a request."""

    exit_code: int = ExitCode.API_ERROR

    def __init__(self, message: str, range_id: str | None = None) -> None:
        self.range_id = range_id
        super().__init__(message)


class PermissionDenied(TransportError):
    """HTTP 403 from the data plane; carries remediation guidance."""

    exit_code: int = ExitCode.PERMISSION_DENIED

    def __init__(
        self,
        body: str,
        hint: str = PERMISSION_HINT,
        range_id: str | None = None,
    ) -> None:
        self.detail = extract_message(body)
        self.hint = hint
        super().__init__(
            f"access denied: {self.detail}\n\nHint: {hint}", range_id=range_id
        )


class ApiError(TransportError):
    def __init__(self, status: int, body: str, range_id: str | None = None) -> None:
        self.status = status
        self.detail = extract_message(body)
        super().__init__(f"API error ({status}): {self.detail}", range_id=range_id)


class EmptyPartitionRanges(TransportError):
    def __init__(self, container: str) -> None:
        self.container = container
        super().__init__(
            f"container '{container}' reported no partition key ranges"
        )


# -- Planning --


class PlanError(InputError):
    """A multi-step query cannot be scheduled."""


class CyclicDependency(PlanError):
    def __init__(self, steps: list[str]) -> None:
        self.steps = steps
        super().__init__(
            f"circular step dependency detected among: {', '.join(steps)}"
        )


# -- Pipeline execution --


class ExecutionError(CosmosToolError):
    """A pipeline step could not be completed."""


class StepHasNoRows(ExecutionError):
    def __init__(self, step: str, field: str) -> None:
        self.step = step
        self.field = field
        super().__init__(
            f"step '{step}' returned no results, cannot resolve @{step}.{field}"
        )


class FieldNotFoundInStepResult(ExecutionError):
    def __init__(self, step: str, field: str, available: list[str]) -> None:
        self.step = step
        self.field = field
        self.available = available
        names = ", ".join(available) if available else "none"
        super().__init__(
            f"field '{field}' not found in step '{step}' result. "
            f"Available fields: {names}"
        )


class InternalInvariantViolation(ExecutionError):
    """Scheduler bookkeeping is inconsistent; indicates a bug, not bad input."""


class StepFailed(ExecutionError):
    """Wraps the error raised while executing one pipeline step."""

    def __init__(self, step: str, cause: Exception) -> None:
        self.step = step
        self.cause = cause
        if isinstance(cause, CosmosToolError):
            self.exit_code = cause.exit_code
            detail = cause.message
        else:
            detail = str(cause)
        super().__init__(f"step '{step}' failed: {detail}")
