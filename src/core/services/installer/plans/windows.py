"""
L2 Plans — Windows (MSI installer).

Five procedure steps::

    1. create the data directory
    2. download the MSI to a temp file   (installer-path, download-progress)
    3. open the installer GUI and wait   (install root checked, warning only)
    4. add the server bin dir to the machine PATH if missing
    5. start the MongoDB service, or launch mongod directly

PowerShell arguments are single-quoted with embedded quotes doubled,
so paths with spaces or apostrophes survive intact.
"""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path

from src.core.models.installation import InstallationStep
from src.core.models.settings import WindowsSettings
from src.core.services.installer.detection.probes import (
    Probe,
    path_exists_probe,
    service_query_probe,
    tcp_port_probe,
)
from src.core.services.installer.errors import ExitFailure, InstallError
from src.core.services.installer.execution.process_runner import ProcessRunner
from src.core.services.installer.orchestration.sequencer import StepContext
from src.core.services.installer.plans.base import InstallationPlanProvider

logger = logging.getLogger(__name__)

DEFAULT_PORT = 27017

_SERVICE_MISSING_MARKERS = ("cannot find any service", "service not found", "does not exist")


def powershell_single_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def powershell(script: str) -> list[str]:
    """argv running ``script`` in a non-interactive PowerShell."""
    return [
        "powershell", "-NoProfile", "-NonInteractive",
        "-ExecutionPolicy", "Bypass", "-Command", script,
    ]


@dataclass
class _RunState:
    """Values handed from one step of a run to the next."""

    installer: Path | None = None


class WindowsPlanProvider(InstallationPlanProvider):
    """MongoDB Community from the official MSI."""

    name = "windows"

    def __init__(
        self,
        settings: WindowsSettings | None = None,
        *,
        download_dir: Path | None = None,
    ) -> None:
        self._settings = settings or WindowsSettings()
        self._download_dir = download_dir

    def supports(self, system: str) -> bool:
        return system == "Windows"

    def build_steps(self) -> list[InstallationStep]:
        run = _RunState()
        procedures = [
            ("Creating data directory", self._create_data_dir),
            ("Downloading MongoDB installer", lambda ctx: self._download(ctx, run)),
            ("Running MongoDB installer", lambda ctx: self._run_installer(ctx, run)),
            ("Adding MongoDB to PATH", self._add_to_path),
            ("Starting MongoDB service", self._start_service),
        ]
        return [
            InstallationStep(index=i, description=description, procedure=procedure)
            for i, (description, procedure) in enumerate(procedures)
        ]

    def probes(self, runner: ProcessRunner) -> list[Probe]:
        return [
            service_query_probe(runner, self._settings.service_name),
            path_exists_probe(self._settings.install_root),
            tcp_port_probe("localhost", DEFAULT_PORT),
        ]

    # ── Steps ───────────────────────────────────────────────────

    async def _create_data_dir(self, ctx: StepContext) -> None:
        data_dir = Path(self._settings.data_dir)
        try:
            data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallError(f"Failed to create data directory {data_dir}: {e}") from e
        ctx.report(f"Data directory ready: {data_dir}")

    async def _download(self, ctx: StepContext, run: _RunState) -> None:
        directory = self._download_dir or Path(tempfile.gettempdir())
        dest = directory / f"mongodb-{uuid.uuid4().hex}.msi"
        run.installer = dest
        ctx.emitter.installer_path(str(dest))
        await ctx.download(self._settings.resolved_download_url, dest)

    async def _run_installer(self, ctx: StepContext, run: _RunState) -> None:
        if run.installer is None or not run.installer.is_file():
            raise InstallError("Installer file is missing; the download step did not complete")
        ctx.report("Opening the MongoDB installer. Complete the setup wizard to continue.")
        await ctx.run(powershell(
            f"Start-Process -FilePath {powershell_single_quote(str(run.installer))} -Wait"
        ))
        if os.path.isdir(self._settings.install_root):
            ctx.report(f"MongoDB found at {self._settings.install_root}")
        else:
            ctx.report(
                f"Warning: {self._settings.install_root} not found after the installer "
                "closed. The installation may have been cancelled or installed elsewhere.",
                is_error=True,
            )

    async def _add_to_path(self, ctx: StepContext) -> None:
        bin_dir = powershell_single_quote(self._settings.bin_dir)
        script = (
            f"$bin = {bin_dir}; "
            "$current = [Environment]::GetEnvironmentVariable('Path', 'Machine'); "
            "if (($current -split ';') -notcontains $bin) { "
            "[Environment]::SetEnvironmentVariable('Path', \"$current;$bin\", 'Machine'); "
            "'added' } else { 'present' }"
        )
        result = await ctx.run(powershell(script))
        if "added" in result.text:
            ctx.report(f"Added {self._settings.bin_dir} to the system PATH")
        else:
            ctx.report(f"{self._settings.bin_dir} is already on the system PATH")

    async def _start_service(self, ctx: StepContext) -> None:
        s = self._settings
        result = await ctx.run(
            powershell(f"Start-Service -Name {powershell_single_quote(s.service_name)}"),
            check=False,
        )
        if result.ok:
            ctx.report(f"Service {s.service_name} started")
            return

        output = "\n".join([*result.stdout, *result.stderr]).lower()
        if not any(marker in output for marker in _SERVICE_MISSING_MARKERS):
            raise ExitFailure(
                ctx.step.number,
                ctx.step.description,
                exit_code=result.exit_code,
                signal=result.termination.signal,
            )

        logger.info("Service %s not registered, starting mongod directly", s.service_name)
        ctx.report(f"Service {s.service_name} not found, starting mongod manually")
        mongod = powershell_single_quote(f"{s.bin_dir}\\mongod.exe")
        data_dir = powershell_single_quote(s.data_dir)
        await ctx.run(powershell(
            f"Start-Process -FilePath {mongod} "
            f"-ArgumentList '--dbpath', {data_dir} -WindowStyle Hidden"
        ))
        ctx.report("mongod started")
