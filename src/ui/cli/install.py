"""
CLI commands for the installer.

    mongosetup status [--json]      run the installation probes
    mongosetup install [--dry-run]  run the installation, streaming progress

Thin wrappers over ``src.core.services.installer``.  Progress events
are rendered by an in-process bus listener; credential requests are
answered by prompting on the terminal with hidden input.
"""

from __future__ import annotations

import asyncio
import json
import sys

import click

from src.core.config.loader import ConfigError, load_settings
from src.core.models.settings import InstallerSettings
from src.core.services.event_bus import EventBus
from src.core.services.installer.orchestration.service import (
    InstallationService,
    build_service,
)
from src.core.services.installer.progress import (
    CREDENTIAL_REQUEST,
    DOWNLOAD_PROGRESS,
    INSTALL_ERROR,
    INSTALL_LOG,
    INSTALLER_PATH,
)

EXIT_FAILED = 1
EXIT_CANCELLED = 130


def _settings(ctx: click.Context) -> InstallerSettings:
    """Load settings or exit with the config error."""
    try:
        return load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


def _service(ctx: click.Context) -> InstallationService:
    """Build the installation service (tests inject ``service_factory``)."""
    factory = ctx.obj.get("service_factory") or build_service
    return factory(_settings(ctx), EventBus())


# ── Rendering ───────────────────────────────────────────────────────


class ProgressRenderer:
    """Bus listener printing installer events to the terminal."""

    _PHASE_COLORS = {"started": "cyan", "completed": "green", "failed": "red"}

    def __init__(self, service: InstallationService, *, quiet: bool = False) -> None:
        self._service = service
        self._quiet = quiet
        self._prompts: set[asyncio.Task] = set()
        self._in_progress_line = False

    def __call__(self, event: dict) -> None:
        kind = event["type"]
        data = event.get("data") or {}
        if kind == CREDENTIAL_REQUEST:
            self._ask_secret(data["token"])
        elif kind == DOWNLOAD_PROGRESS:
            self._download(data)
        elif kind == INSTALLER_PATH:
            self._line(f"   Installer: {data.get('path')}")
        elif kind == INSTALL_LOG:
            self._log(data, error=False)
        elif kind == INSTALL_ERROR:
            self._log(data, error=True)

    def _log(self, data: dict, *, error: bool) -> None:
        message = data.get("message", "")
        phase = data.get("phase")
        if self._quiet and not error and phase == "output":
            return
        if "step" in data:
            message = f"[Step {data['step']}/{data['totalSteps']}] {message}"
        color = "red" if error else self._PHASE_COLORS.get(phase)
        self._line(message, fg=color, bold=phase in ("started", "failed"), err=error)

    def _download(self, data: dict) -> None:
        if self._quiet:
            return
        mb = 1024 * 1024
        pct = data.get("percentage", 0.0)
        click.echo(
            f"\r   Downloading: {pct:5.1f}% "
            f"({data.get('bytesDownloaded', 0) / mb:.1f} / {data.get('totalBytes', 0) / mb:.1f} MB)",
            nl=False,
        )
        self._in_progress_line = pct < 100.0
        if not self._in_progress_line:
            click.echo()

    def _line(self, message: str, **style) -> None:
        if self._in_progress_line:
            click.echo()
            self._in_progress_line = False
        click.secho(message, **style)

    def _ask_secret(self, token: str) -> None:
        task = asyncio.get_running_loop().create_task(self._prompt(token))
        self._prompts.add(task)
        task.add_done_callback(self._prompts.discard)

    async def _prompt(self, token: str) -> None:
        try:
            secret = await asyncio.to_thread(
                click.prompt, "🔑 sudo password", hide_input=True,
                default="", show_default=False,
            )
        except click.Abort:
            self._service.broker.cancel(token)
            return
        self._service.deliver_credential(token, secret)


# ── Commands ────────────────────────────────────────────────────────


@click.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Check whether MongoDB is installed."""
    service = _service(ctx)
    verdict = asyncio.run(service.is_installed())

    if as_json:
        click.echo(json.dumps({"platform": service.platform_name, **verdict.model_dump()}, indent=2))
        return

    click.secho(f"\n🍃 MongoDB ({service.platform_name})", fg="cyan", bold=True)
    if verdict.installed:
        click.secho("   ✅ Installed", fg="green", bold=True)
    else:
        click.secho("   ❌ Not installed", fg="yellow", bold=True)
    for name, vote in verdict.votes.items():
        click.echo(f"     {'✓' if vote else '✗'} {name}")
    click.echo()


@click.command()
@click.option("--dry-run", is_flag=True, help="Show the steps without running them.")
@click.pass_context
def install(ctx: click.Context, dry_run: bool) -> None:
    """Install MongoDB, streaming progress."""
    service = _service(ctx)

    if dry_run:
        if service.provider is None:
            click.secho("❌ Unsupported platform", fg="red", err=True)
            sys.exit(EXIT_FAILED)
        plan = service.provider.describe()
        click.secho(f"\n📋 Installation plan ({plan['platform']})", fg="cyan", bold=True)
        for step in plan["steps"]:
            marker = " 🔒" if step["privileged"] else ""
            click.echo(f"   {step['step']}. {step['description']}{marker}")
        click.echo()
        return

    renderer = ProgressRenderer(service, quiet=ctx.obj.get("quiet", False))
    unsubscribe = service.emitter.bus.listen(renderer)
    try:
        outcome = asyncio.run(service.install())
    except KeyboardInterrupt:
        click.secho("\n⚠️  Installation cancelled", fg="yellow", err=True)
        sys.exit(EXIT_CANCELLED)
    finally:
        unsubscribe()

    if outcome.ok:
        click.secho(f"\n✅ MongoDB installed ({outcome.total_steps} steps)", fg="green", bold=True)
        return
    if outcome.status == "cancelled":
        click.secho("\n⚠️  Installation cancelled", fg="yellow", err=True)
        sys.exit(EXIT_CANCELLED)
    click.secho(f"\n❌ {outcome.reason}", fg="red", bold=True, err=True)
    sys.exit(EXIT_FAILED)
