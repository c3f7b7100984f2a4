"""
mongosetup — CLI entrypoint.

Usage:
    python -m src.main --help
    python -m src.main status
    python -m src.main install
    python -m src.main config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from src.core.observability.logging_config import setup_logging

from src import __version__


@click.group()
@click.version_option(version=__version__, prog_name="mongosetup")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to mongosetup.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """mongosetup — install and manage a local MongoDB."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("MONGOSETUP_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("MONGOSETUP_LOG_FILE"),
        log_file_level=os.environ.get("MONGOSETUP_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate mongosetup.yml."""
    from src.core.config.loader import ConfigError, load_settings, resolve_config_path

    path = resolve_config_path(ctx.obj.get("config_path"))
    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        if as_json:
            click.echo(json.dumps({"valid": False, "path": str(path) if path else None, "error": str(e)}, indent=2))
        else:
            click.secho("❌ Configuration error:", fg="red", bold=True)
            click.echo(f"   • {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({
            "valid": True,
            "path": str(path) if path else None,
            "settings": settings.model_dump(),
        }, indent=2))
        return

    click.secho("✅ Configuration is valid", fg="green", bold=True)
    click.echo(f"   File:     {path or '(none, using defaults)'}")
    click.echo(f"   Database: {settings.database_name} @ {settings.connection_uri}")
    click.echo(f"   Linux:    MongoDB {settings.linux.series} ({settings.linux.codename})")
    click.echo(f"   Windows:  MongoDB {settings.windows.version}")
    click.echo()


@cli.command()
@click.option("--host", default=None, help="Bind address (default: from config).")
@click.option("--port", "-p", default=None, type=int, help="Port number (default: from config).")
@click.pass_context
def web(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the web API and event stream."""
    from src.core.config.loader import ConfigError, load_settings
    from src.ui.web.server import create_app, run_server

    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    host = host or settings.web.host
    port = port or settings.web.port
    app = create_app(settings)

    debug = ctx.obj.get("debug", False)

    click.echo()
    click.secho("🍃 mongosetup — Web API", bold=True)
    click.echo(f"   API:    http://{host}:{port}/api")
    click.echo(f"   Events: http://{host}:{port}/api/events")
    if debug:
        click.secho("   Logging: DEBUG (all output)", fg="yellow")
    click.echo()

    run_server(app, host=host, port=port, debug=debug)


# ── Register sub-commands from src/ui/cli/ ──────────────────────────

from src.ui.cli.db import db  # noqa: E402
from src.ui.cli.install import install, status  # noqa: E402

cli.add_command(status)
cli.add_command(install)
cli.add_command(db)


if __name__ == "__main__":
    cli()
