"""Output format selection and document rendering."""

from __future__ import annotations

import sys
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import typer

from cosmos_tool.core.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from cosmos_tool.formatters.base import Formatter

STEP_HEADER = "-- step: {name}"


class OutputFormat(StrEnum):
    JSON = "json"
    TABLE = "table"
    CSV = "csv"


def resolve_format(format_flag: str | None, default_format: str = "json") -> str:
    """Explicit --format wins over the configured default."""
    if format_flag is not None:
        return format_flag
    return default_format


def get_formatter(
    format_flag: str | None = None,
    *,
    default_format: str = "json",
    compact: bool = False,
    width: int = 40,
    no_header: bool = False,
) -> Formatter:
    """Build and return the appropriate formatter instance."""
    # Import here to trigger registry population from formatter modules.
    import cosmos_tool.formatters.csv  # noqa: F401
    import cosmos_tool.formatters.json  # noqa: F401
    import cosmos_tool.formatters.table  # noqa: F401
    from cosmos_tool.formatters.base import registry

    fmt_name = resolve_format(format_flag, default_format)

    kwargs: dict[str, object] = {}
    if fmt_name == "table":
        kwargs["width"] = width
        kwargs["no_header"] = no_header
    elif fmt_name == "json":
        kwargs["compact"] = compact
    elif fmt_name == "csv":
        kwargs["no_header"] = no_header

    try:
        return registry.get(fmt_name, **kwargs)
    except KeyError as e:
        raise ConfigError(str(e.args[0])) from e


def write_output(formatter: Formatter, documents: Sequence[Any]) -> None:
    """Write formatted output to stdout."""
    for line in formatter.format(documents):
        sys.stdout.write(line + "\n")


def write_pipeline_output(
    formatter: Formatter, step_results: Mapping[str, Sequence[Any]]
) -> None:
    """JSON gets one object keyed by step; other formats get a section per step."""
    from cosmos_tool.formatters.json import JSONFormatter

    if isinstance(formatter, JSONFormatter):
        write_output(formatter, dict(step_results))  # type: ignore[arg-type]
        return

    for index, (name, documents) in enumerate(step_results.items()):
        if index:
            sys.stdout.write("\n")
        sys.stdout.write(STEP_HEADER.format(name=name) + "\n")
        write_output(formatter, documents)


def write_charge(charge: float, quiet: bool = False) -> None:
    if not quiet:
        typer.echo(f"Request charge: {charge:.2f} RUs", err=True)
