"""Cosmos Tool main entry point and command registration."""

from __future__ import annotations

import atexit
from pathlib import Path  # noqa: TC003
from typing import Annotated

import sentry_sdk
import typer

from cosmos_tool.__about__ import __version__
from cosmos_tool.cli.commands.config import config_app
from cosmos_tool.cli.commands.databases import containers_command, databases_command
from cosmos_tool.cli.commands.queries import queries_app
from cosmos_tool.cli.commands.query import query_command
from cosmos_tool.cli.commands.run import run_command
from cosmos_tool.cli.output import OutputFormat  # noqa: TC001
from cosmos_tool.core.exceptions import CosmosToolError
from cosmos_tool.core.logging import setup_logging
from cosmos_tool.core.monitoring import setup_sentry

app = typer.Typer(
    help="Cosmos Tool - query Azure Cosmos DB containers and run stored queries",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")
app.add_typer(queries_app, name="queries")
app.command("query")(query_command)
app.command(
    "run",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)(run_command)
app.command("databases")(databases_command)
app.command("containers")(containers_command)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"cosmos-tool {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable verbose logging"),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Only log warnings; hide request charge"),
    ] = False,
    profile: Annotated[
        str | None,
        typer.Option("--profile", "-P", help="Named account profile"),
    ] = None,
    endpoint: Annotated[
        str | None,
        typer.Option("--endpoint", help="Cosmos DB account endpoint URL"),
    ] = None,
    database: Annotated[
        str | None,
        typer.Option("--database", "-d", help="Database name"),
    ] = None,
    container: Annotated[
        str | None,
        typer.Option("--container", "-c", help="Container name"),
    ] = None,
    token: Annotated[
        str | None,
        typer.Option("--token", help="AAD access token for the data plane"),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config file"),
    ] = None,
    format: Annotated[
        OutputFormat | None,
        typer.Option("--format", "-f", help="Output format: json|table|csv"),
    ] = None,
    compact: Annotated[
        bool,
        typer.Option("--compact", help="Compact JSON output (no indentation)"),
    ] = False,
    width: Annotated[
        int,
        typer.Option("--width", help="Column width for table format"),
    ] = 40,
    no_header: Annotated[
        bool,
        typer.Option("--no-header", help="Suppress header row in CSV/table output"),
    ] = False,
) -> None:
    """Cosmos Tool - query Azure Cosmos DB containers and run stored queries."""
    setup_logging(verbose, quiet)
    setup_sentry()

    transaction = sentry_sdk.start_transaction(
        op="cli", name=ctx.invoked_subcommand or "cosmos-tool"
    )
    transaction.__enter__()

    def cleanup() -> None:
        transaction.__exit__(None, None, None)
        sentry_sdk.flush(timeout=2)

    atexit.register(cleanup)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["profile"] = profile
    ctx.obj["endpoint"] = endpoint
    ctx.obj["database"] = database
    ctx.obj["container"] = container
    ctx.obj["token"] = token
    ctx.obj["config_file"] = config_file

    # Format options (global)
    ctx.obj["format"] = format.value if format else None
    ctx.obj["compact"] = compact
    ctx.obj["width"] = width
    ctx.obj["no_header"] = no_header


def run() -> None:
    """Entry point with global error handling."""
    try:
        app()
    except CosmosToolError as e:
        sentry_sdk.capture_exception(e)
        typer.echo(f"Error: {e.message}", err=True)
        raise SystemExit(e.exit_code) from None
    except SystemExit:
        raise
    except KeyboardInterrupt:
        raise SystemExit(130) from None
    except Exception as e:
        sentry_sdk.capture_exception(e)
        typer.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from None
