"""Shared CLI helpers for argument parsing and display."""

from __future__ import annotations

from cosmos_tool.core.exceptions import InputError


def parse_cli_params(args: list[str]) -> dict[str, str]:
    """Turn trailing ``--name value`` / ``--name=value`` pairs into a raw map.

    Values stay strings; typing happens against the parameter definitions.
    A repeated name keeps its last value.
    """
    provided: dict[str, str] = {}
    i = 0
    while i < len(args):
        arg = args[i]
        if not arg.startswith("--") or arg == "--":
            msg = f"Unexpected argument '{arg}'. Parameters are passed as --name value"
            raise InputError(msg)

        name, sep, value = arg[2:].partition("=")
        if not name:
            msg = f"Invalid parameter flag '{arg}'"
            raise InputError(msg)
        if not sep:
            if i + 1 >= len(args):
                msg = f"Parameter --{name} needs a value"
                raise InputError(msg)
            i += 1
            value = args[i]

        provided[name] = value
        i += 1
    return provided


def mask_secret(value: str | None) -> str:
    if value is None:
        return "not set"
    return "***"
