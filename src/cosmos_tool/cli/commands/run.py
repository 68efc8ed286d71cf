"""Run a stored query by name."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

import typer

from cosmos_tool.cli.commands._shared import (
    get_client,
    get_resolved_config,
    load_app_config,
    output_documents,
    output_pipeline,
    report_charge,
)
from cosmos_tool.cli.helpers import parse_cli_params
from cosmos_tool.core.logging import get_logger
from cosmos_tool.core.params import build_query_parameters, resolve
from cosmos_tool.core.pipeline import run_pipeline
from cosmos_tool.core.stored_query import find_stored_query, project_queries_dir

if TYPE_CHECKING:
    from cosmos_tool.core.models import StepDefinition


def run_command(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Stored query name")],
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Request timeout in seconds"),
    ] = None,
) -> None:
    """
    Run a stored query, passing its parameters as --name value pairs.

    Example: cosmos-tool run recent-orders --days 7 --status shipped
    """
    log = get_logger("run")
    obj = ctx.ensure_object(dict)
    quiet = obj.get("quiet", False)

    app_config = load_app_config(ctx)
    base = get_resolved_config(ctx, timeout=timeout, app_config=app_config)
    query = find_stored_query(name, base.queries_dir, project_queries_dir())

    provided = parse_cli_params(list(ctx.args))
    declared = {p.name for p in query.metadata.params}
    for extra in sorted(provided.keys() - declared):
        log.warning("ignoring undeclared parameter", query=query.name, param=extra)
        provided.pop(extra)

    params = resolve(query.metadata.params, provided)

    resolved = get_resolved_config(
        ctx,
        timeout=timeout,
        query_defaults={
            "database": query.metadata.database,
            "container": query.metadata.container,
        },
        query_name=query.name,
        app_config=app_config,
    )

    if not query.is_multi_step:
        container = resolved.require_container()
        with get_client(resolved) as client:
            result = client.execute_query(
                container, query.sql, build_query_parameters(params)
            )
        output_documents(ctx, resolved, result.documents)
        report_charge(ctx, result.request_charge)
        return

    resolved.require_database()

    def announce(step: StepDefinition) -> None:
        if not quiet:
            typer.echo(f"Running step: {step.name}", err=True)

    with get_client(resolved) as client:
        pipeline = run_pipeline(
            client,
            query.metadata.steps or [],
            query.step_queries,
            params,
            max_workers=resolved.step_workers,
            on_step=announce,
        )

    output_pipeline(ctx, resolved, pipeline.step_results)
    report_charge(ctx, pipeline.total_charge)
