"""Shared CLI plumbing for command modules.

Config resolution, client creation, and output helpers.
Distinct from cli.helpers which contains pure parsing functions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from cosmos_tool.cli.output import (
    get_formatter,
    write_charge,
    write_output,
    write_pipeline_output,
)
from cosmos_tool.core.client import CosmosClient
from cosmos_tool.core.config import load_config, resolve_config

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    import typer

    from cosmos_tool.core.config import AppConfig, ResolvedConfig
    from cosmos_tool.formatters.base import Formatter


def load_app_config(ctx: typer.Context) -> AppConfig:
    obj = ctx.ensure_object(dict)
    return load_config(obj.get("config_file"))


def get_resolved_config(
    ctx: typer.Context,
    *,
    timeout: float | None = None,
    query_defaults: Mapping[str, str | None] | None = None,
    query_name: str | None = None,
    app_config: AppConfig | None = None,
) -> ResolvedConfig:
    obj = ctx.ensure_object(dict)
    if app_config is None:
        app_config = load_app_config(ctx)

    cli_overrides: dict[str, Any] = {}
    for key in ("endpoint", "database", "container", "token"):
        val = obj.get(key)
        if val is not None:
            cli_overrides[key] = val
    if timeout is not None:
        cli_overrides["timeout"] = timeout

    return resolve_config(
        app_config,
        profile_name=obj.get("profile"),
        query_defaults=query_defaults,
        query_name=query_name,
        **cli_overrides,
    )


def get_client(resolved: ResolvedConfig) -> CosmosClient:
    return CosmosClient(resolved)


def get_output_formatter(ctx: typer.Context, resolved: ResolvedConfig) -> Formatter:
    obj = ctx.ensure_object(dict)
    return get_formatter(
        obj.get("format"),
        default_format=resolved.default_format,
        compact=obj.get("compact", False),
        width=obj.get("width", 40),
        no_header=obj.get("no_header", False),
    )


def output_documents(
    ctx: typer.Context, resolved: ResolvedConfig, documents: Sequence[Any]
) -> None:
    write_output(get_output_formatter(ctx, resolved), documents)


def output_pipeline(
    ctx: typer.Context,
    resolved: ResolvedConfig,
    step_results: Mapping[str, Sequence[Any]],
) -> None:
    write_pipeline_output(get_output_formatter(ctx, resolved), step_results)


def report_charge(ctx: typer.Context, charge: float) -> None:
    obj = ctx.ensure_object(dict)
    write_charge(charge, quiet=obj.get("quiet", False))
