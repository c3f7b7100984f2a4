"""
L5 Orchestration — installation service.

The two commands the UI calls::

    await service.is_installed()   → InstallationVerdict   (no side effects)
    await service.install()        → PipelineOutcome       (one run at a time)

plus ``cancel()`` and ``deliver_credential()``.  All methods must run
on the event loop that owns the service; ``InstallerRuntime`` bridges
synchronous callers.

Only one run may be active.  A second ``install()`` while one is
running is rejected with ``InstallInProgress``, never queued or
interleaved.  A finished run (any outcome) leaves nothing behind:
the next ``install()`` starts again from step 1.
"""

from __future__ import annotations

import asyncio
import logging

from src.core.models.installation import InstallationVerdict, PipelineOutcome
from src.core.models.settings import InstallerSettings
from src.core.services.event_bus import EventBus
from src.core.services.installer.credentials import CredentialBroker
from src.core.services.installer.detection.probes import InstallationDetector
from src.core.services.installer.errors import InstallInProgress, UnsupportedPlatform
from src.core.services.installer.execution.download import DownloadOrchestrator
from src.core.services.installer.execution.process_runner import ProcessRunner
from src.core.services.installer.orchestration.sequencer import PipelineState, StepSequencer
from src.core.services.installer.plans.base import InstallationPlanProvider
from src.core.services.installer.plans.registry import select_provider
from src.core.services.installer.progress import ProgressEmitter

logger = logging.getLogger(__name__)


class InstallationService:
    """Facade over detector, sequencer and credential broker."""

    def __init__(
        self,
        provider: InstallationPlanProvider | None,
        *,
        bus: EventBus,
        runner: ProcessRunner | None = None,
        broker: CredentialBroker | None = None,
        downloader: DownloadOrchestrator | None = None,
        elevate: bool | None = None,
        unsupported_system: str = "",
    ) -> None:
        self._provider = provider
        self._unsupported_system = unsupported_system
        self._emitter = ProgressEmitter(bus)
        self._runner = runner or ProcessRunner()
        self._broker = broker or CredentialBroker(self._emitter)
        self._sequencer = StepSequencer(
            runner=self._runner,
            emitter=self._emitter,
            broker=self._broker,
            downloader=downloader or DownloadOrchestrator(self._emitter),
            elevate=elevate,
        )
        self._task: asyncio.Task[PipelineOutcome] | None = None
        self.last_outcome: PipelineOutcome | None = None

    # ── Properties ──────────────────────────────────────────────

    @property
    def provider(self) -> InstallationPlanProvider | None:
        return self._provider

    @property
    def platform_name(self) -> str:
        return self._provider.name if self._provider else "unsupported"

    @property
    def emitter(self) -> ProgressEmitter:
        return self._emitter

    @property
    def broker(self) -> CredentialBroker:
        return self._broker

    @property
    def state(self) -> PipelineState:
        return self._sequencer.state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def status(self) -> dict:
        """Snapshot for the status endpoint / command."""
        return {
            "platform": self.platform_name,
            **self._sequencer.status(),
            "running": self.running,
            "pending_credentials": len(self._broker.pending_tokens),
            "last_outcome": self.last_outcome.model_dump() if self.last_outcome else None,
        }

    # ── Commands ────────────────────────────────────────────────

    async def is_installed(self) -> InstallationVerdict:
        """Probe the system; an unsupported platform is "not installed"."""
        if self._provider is None:
            logger.info("Installation check skipped: unsupported platform")
            return InstallationVerdict(installed=False)
        detector = InstallationDetector(self._provider.probes(self._runner))
        return await detector.detect()

    def start(self) -> asyncio.Task[PipelineOutcome]:
        """Schedule a run on the current loop and return its task.

        Raises:
            InstallInProgress: A run is already active.
        """
        if self.running:
            logger.warning("Rejected install request: a run is already active")
            raise InstallInProgress()
        # Late joiners only see this run's events
        self._emitter.bus.clear()
        self._task = asyncio.get_running_loop().create_task(self._run(), name="mongosetup-install")
        return self._task

    async def install(self) -> PipelineOutcome:
        """Run the full installation and return its outcome.

        Raises:
            InstallInProgress: A run is already active.
        """
        return await self.start()

    def cancel(self) -> bool:
        """Cancel the active run; its process is killed.  False if idle."""
        if not self.running:
            return False
        logger.info("Cancelling installation")
        assert self._task is not None
        self._task.cancel()
        return True

    def deliver_credential(self, token: str, secret: str | None) -> bool:
        """Answer a credential request.  False for unknown or expired tokens."""
        return self._broker.deliver(token, secret)

    # ── Internal ────────────────────────────────────────────────

    async def _run(self) -> PipelineOutcome:
        if self._provider is None:
            error = UnsupportedPlatform(self._unsupported_system)
            self._emitter.error(error.reason)
            logger.error(error.reason)
            outcome = PipelineOutcome.failure(error.reason)
        else:
            logger.info("Starting %s installation", self._provider.name)
            outcome = await self._sequencer.run(self._provider.build_steps())
        self.last_outcome = outcome
        return outcome


def build_service(
    settings: InstallerSettings | None = None,
    bus: EventBus | None = None,
    *,
    system: str | None = None,
    **kwargs,
) -> InstallationService:
    """Create the service for this machine (or for ``system``)."""
    from src.core.services.event_bus import bus as default_bus

    settings = settings or InstallerSettings()
    try:
        provider = select_provider(settings, system=system)
        unsupported = ""
    except UnsupportedPlatform as e:
        logger.warning("%s", e.reason)
        provider = None
        unsupported = e.system
    return InstallationService(
        provider,
        bus=bus or default_bus,
        unsupported_system=unsupported,
        **kwargs,
    )
