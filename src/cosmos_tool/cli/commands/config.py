"""Configuration management CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

from cosmos_tool.cli.commands._shared import get_resolved_config, load_app_config
from cosmos_tool.cli.helpers import mask_secret
from cosmos_tool.core.config import DEFAULT_CONFIG_PATH

if TYPE_CHECKING:
    from pathlib import Path

config_app = typer.Typer(help="Configuration management commands")


@config_app.callback(invoke_without_command=True)
def config_callback(ctx: typer.Context) -> None:
    if not ctx.invoked_subcommand:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Display resolved configuration with source attribution."""
    resolved = get_resolved_config(ctx)
    config_path: Path | None = ctx.obj.get("config_file")
    sources = resolved.sources

    typer.echo("Account Settings (resolved):")
    account_fields = [
        ("endpoint", resolved.endpoint or "not set"),
        ("database", resolved.database or "not set"),
        ("container", resolved.container or "not set"),
        ("token", mask_secret(resolved.token)),
    ]
    for field_name, value in account_fields:
        source = sources.get(field_name, "default")
        typer.echo(f"  {field_name}: {value} ({source})")

    typer.echo("")
    typer.echo("General:")
    general_fields = [
        ("timeout", f"{resolved.default_timeout}s", "default_timeout"),
        ("format", resolved.default_format, "default_format"),
        ("range_workers", str(resolved.range_workers), "range_workers"),
        ("step_workers", str(resolved.step_workers), "step_workers"),
        ("queries_dir", str(resolved.queries_dir), "queries_dir"),
    ]
    for label, value, key in general_fields:
        typer.echo(f"  {label}: {value} ({sources.get(key, 'default')})")

    typer.echo("")
    if resolved.active_profile:
        typer.echo(f"Active Profile: {resolved.active_profile}")
    else:
        typer.echo("Active Profile: none")

    display_path = config_path or DEFAULT_CONFIG_PATH
    typer.echo(f"Config File: {display_path}")


@config_app.command("profiles")
def config_profiles(ctx: typer.Context) -> None:
    """List available account profiles."""
    config_path: Path | None = ctx.obj.get("config_file")
    app_config = load_app_config(ctx)
    active_profile = ctx.obj.get("profile") or app_config.default_profile

    if not app_config.profiles:
        typer.echo("No profiles configured.")
        display_path = config_path or DEFAULT_CONFIG_PATH
        typer.echo(f"Add profiles to: {display_path}")
        return

    typer.echo("Available Profiles:")
    typer.echo("")
    for name, profile in sorted(app_config.profiles.items()):
        is_active = name == active_profile
        marker = "* " if is_active else "  "
        label = " (active)" if is_active else ""
        typer.echo(f"{marker}{name}{label}")

        display_fields = [("endpoint", profile.endpoint or "not set")]
        if profile.database:
            display_fields.append(("database", profile.database))
        if profile.container:
            display_fields.append(("container", profile.container))
        if profile.token:
            display_fields.append(("token", mask_secret(profile.token)))

        for field_name, value in display_fields:
            typer.echo(f"      {field_name}: {value}")
        typer.echo("")
