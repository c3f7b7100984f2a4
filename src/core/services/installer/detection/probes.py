"""
L3 Detection — installation probes and the majority verdict.

Each probe is an independent, side-effect-free async check that
answers "does this look installed?".  Probes fail soft: any exception
(including ``ProbeError`` and timeouts) counts as a "no" vote and is
never propagated.

The verdict is a strict majority over an odd number of probes, so
exactly one flaky or erroring probe can never flip the result::

    (True, True, False)   → installed
    (True, False, False)  → not installed
    (error, True, True)   → installed
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from src.core.models.installation import InstallationVerdict
from src.core.services.installer.errors import ProbeError
from src.core.services.installer.execution.process_runner import ProcessRunner

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_S = 15.0

ProbeCheck = Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class Probe:
    """A named check contributing one vote."""

    name: str
    check: ProbeCheck

    async def vote(self, timeout: float = PROBE_TIMEOUT_S) -> bool:
        """Run the check; any error or timeout is a "no" vote."""
        try:
            return bool(await asyncio.wait_for(self.check(), timeout=timeout))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Probe %s counted as false: %s", self.name, e)
            return False


def majority(votes: Sequence[bool]) -> bool:
    """Strict majority of ``votes``."""
    if not votes or len(votes) % 2 == 0:
        raise ValueError(f"Majority vote needs an odd, non-empty probe set (got {len(votes)})")
    return sum(1 for v in votes if v) > len(votes) // 2


class InstallationDetector:
    """Runs probes concurrently and aggregates them by majority vote."""

    def __init__(self, probes: Sequence[Probe], *, timeout: float = PROBE_TIMEOUT_S) -> None:
        if not probes or len(probes) % 2 == 0:
            raise ValueError(
                f"InstallationDetector needs an odd number of probes (got {len(probes)})"
            )
        names = [p.name for p in probes]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate probe names: {names}")
        self._probes = list(probes)
        self._timeout = timeout

    @property
    def probes(self) -> list[Probe]:
        return list(self._probes)

    async def detect(self) -> InstallationVerdict:
        """Run every probe and return the aggregated verdict."""
        results = await asyncio.gather(*(p.vote(self._timeout) for p in self._probes))
        votes = {p.name: r for p, r in zip(self._probes, results)}
        verdict = InstallationVerdict(installed=majority(results), votes=votes)
        logger.info(
            "Installation check: %s (%d/%d probes)",
            "installed" if verdict.installed else "not installed",
            verdict.passed, len(votes),
        )
        return verdict


# ── Linux probes ────────────────────────────────────────────────


def systemd_unit_probe(runner: ProcessRunner, service: str) -> Probe:
    """The systemd unit for ``service`` is registered."""
    unit = f"{service}.service"

    async def check() -> bool:
        result = await runner.capture(["systemctl", "list-unit-files", unit])
        return unit in result.text

    return Probe("service_registered", check)


def binary_on_path_probe(binary: str) -> Probe:
    """``binary`` resolves on PATH."""

    async def check() -> bool:
        return shutil.which(binary) is not None

    return Probe("binary_on_path", check)


def version_query_probe(runner: ProcessRunner, binary: str) -> Probe:
    """``<binary> --version`` prints a non-empty first line."""

    async def check() -> bool:
        result = await runner.capture([binary, "--version"])
        if not result.ok:
            raise ProbeError(f"{binary} --version exited with {result.exit_code}")
        first = result.stdout[0].strip() if result.stdout else ""
        return bool(first)

    return Probe("version_query", check)


# ── Windows probes ──────────────────────────────────────────────


def service_query_probe(runner: ProcessRunner, service: str) -> Probe:
    """``sc query <service>`` knows the service."""

    async def check() -> bool:
        result = await runner.capture(["sc", "query", service])
        output = "\n".join([*result.stdout, *result.stderr])
        return "DOES_NOT_EXIST" not in output and "1060" not in output

    return Probe("service_registered", check)


def path_exists_probe(path: str) -> Probe:
    """The installation directory exists."""

    async def check() -> bool:
        return os.path.exists(path)

    return Probe("install_root_exists", check)


def tcp_port_probe(host: str, port: int, *, timeout: float = 3.0) -> Probe:
    """Something accepts TCP connections on ``host:port``."""

    async def check() -> bool:
        _reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=timeout,
        )
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    return Probe("port_open", check)
