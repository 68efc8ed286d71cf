from __future__ import annotations

import sys
from typing import Annotated

import typer

from cosmos_tool.cli.commands._shared import (
    get_client,
    get_resolved_config,
    output_documents,
    report_charge,
)
from cosmos_tool.core.exceptions import InputError
from cosmos_tool.core.exit_codes import ExitCode
from cosmos_tool.core.query_source import resolve_query_source


def query_command(
    ctx: typer.Context,
    sql: Annotated[
        str | None,
        typer.Argument(help="SQL query to execute"),
    ] = None,
    file: Annotated[
        str | None,
        typer.Option("--file", help="Read the SQL query from a file"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Request timeout in seconds"),
    ] = None,
) -> None:
    """Execute a SQL query against a container (argument, --file, or stdin)."""
    try:
        is_tty = sys.stdin.isatty()
    except (ValueError, AttributeError):
        is_tty = False
    if sql is None and file is None and is_tty:
        typer.echo(ctx.get_help())
        raise typer.Exit()

    try:
        text = resolve_query_source(sql, file)
    except InputError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(ExitCode.INPUT_ERROR) from exc

    resolved = get_resolved_config(ctx, timeout=timeout)
    container = resolved.require_container()

    with get_client(resolved) as client:
        result = client.execute_query(container, text)

    output_documents(ctx, resolved, result.documents)
    report_charge(ctx, result.request_charge)
