"""Catalog listing commands."""

from __future__ import annotations

import typer

from cosmos_tool.cli.commands._shared import (
    get_client,
    get_resolved_config,
    output_documents,
)


def databases_command(ctx: typer.Context) -> None:
    """List databases in the account."""
    resolved = get_resolved_config(ctx)
    with get_client(resolved) as client:
        names = client.list_databases()
    output_documents(ctx, resolved, [{"id": name} for name in names])


def containers_command(ctx: typer.Context) -> None:
    """List containers in the selected database."""
    resolved = get_resolved_config(ctx)
    database = resolved.require_database()
    with get_client(resolved) as client:
        names = client.list_containers(database)
    output_documents(ctx, resolved, [{"id": name} for name in names])
