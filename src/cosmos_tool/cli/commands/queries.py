"""Stored query discovery commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

import typer

from cosmos_tool.cli.commands._shared import get_resolved_config, output_documents
from cosmos_tool.core.params import is_required
from cosmos_tool.core.stored_query import (
    find_stored_query,
    list_stored_queries,
    project_queries_dir,
)

if TYPE_CHECKING:
    from cosmos_tool.core.params import ParameterDefinition

queries_app = typer.Typer(help="Stored query commands")


@queries_app.callback(invoke_without_command=True)
def queries_callback(ctx: typer.Context) -> None:
    if not ctx.invoked_subcommand:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@queries_app.command("list")
def queries_list(ctx: typer.Context) -> None:
    """List stored queries from the user and project query directories."""
    resolved = get_resolved_config(ctx)
    queries = list_stored_queries(resolved.queries_dir, project_queries_dir())

    documents = [
        {
            "name": q.name,
            "description": q.metadata.description,
            "database": q.metadata.database,
            "container": q.metadata.container,
            "steps": len(q.step_names),
            "params": [p.name for p in q.metadata.params],
        }
        for q in queries
    ]
    output_documents(ctx, resolved, documents)


def _describe_param(param: ParameterDefinition) -> str:
    parts = [param.type.value]
    if is_required(param):
        parts.append("required")
    if param.default is not None:
        parts.append(f"default={param.default!r}")
    if param.choices is not None:
        parts.append("choices=" + "|".join(str(c) for c in param.choices))
    if param.min is not None:
        parts.append(f"min={param.min:g}")
    if param.max is not None:
        parts.append(f"max={param.max:g}")
    if param.pattern is not None:
        parts.append(f"pattern={param.pattern}")
    line = f"  @{param.name} ({', '.join(parts)})"
    if param.description:
        line += f": {param.description}"
    return line


@queries_app.command("show")
def queries_show(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Stored query name")],
) -> None:
    """Show a stored query's metadata, parameters, execution plan, and SQL."""
    resolved = get_resolved_config(ctx)
    query = find_stored_query(name, resolved.queries_dir, project_queries_dir())
    meta = query.metadata

    typer.echo(f"Name: {query.name}")
    typer.echo(f"Description: {meta.description}")
    if query.path is not None:
        typer.echo(f"File: {query.path}")
    if meta.database:
        typer.echo(f"Database: {meta.database}")
    if meta.container:
        typer.echo(f"Container: {meta.container}")

    typer.echo("")
    if meta.params:
        typer.echo("Parameters:")
        for param in meta.params:
            typer.echo(_describe_param(param))
    else:
        typer.echo("Parameters: none")

    if query.is_multi_step:
        containers = {s.name: s.container for s in meta.steps or []}
        typer.echo("")
        typer.echo("Execution plan:")
        for index, layer in enumerate(query.execution_order(), start=1):
            steps = ", ".join(f"{s} ({containers[s]})" for s in layer)
            typer.echo(f"  {index}. {steps}")

    typer.echo("")
    typer.echo(query.sql)
