"""
L5 Orchestration — step sequencer.

Runs one platform's ordered step list to completion or to the first
failure.  State machine::

    NOT_STARTED → RUNNING(i) → RUNNING(i+1) → ... → SUCCEEDED
                            ↘ FAILED(i, reason)
                            ↘ CANCELLED(i)

There is no step-level retry: steps depend on their predecessors
(the repository must exist before packages from it can install), so
the first failure ends the run and remaining steps are never started.

The privileged secret is requested once, right before the first step
that needs it, and reused for every later step of the same run.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Collection, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from src.core.models.installation import InstallationStep, PipelineOutcome
from src.core.observability.logging_config import unmask_secret
from src.core.services.installer.credentials import CredentialBroker
from src.core.services.installer.errors import ExitFailure, InstallError
from src.core.services.installer.execution.download import DownloadOrchestrator
from src.core.services.installer.execution.privilege import (
    is_root,
    password_rejected,
    password_stdin,
    privileged_argv,
)
from src.core.services.installer.execution.process_runner import (
    CommandResult,
    ProcessRunner,
    Termination,
)
from src.core.services.installer.progress import ProgressEmitter

logger = logging.getLogger(__name__)

WRONG_PASSWORD = "Incorrect sudo password"


class PipelineState(str, enum.Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (PipelineState.SUCCEEDED, PipelineState.FAILED, PipelineState.CANCELLED)


@dataclass
class StepContext:
    """What a running step may use: the runner, the emitter and the secret.

    Command steps are run by the sequencer through ``run()``; procedure
    steps receive the context and drive their own sub-commands.
    """

    step: InstallationStep
    total_steps: int
    runner: ProcessRunner
    emitter: ProgressEmitter
    downloader: DownloadOrchestrator
    secret: str | None = field(default=None, repr=False)
    elevate: bool = True

    def report(self, message: str, *, is_error: bool = False) -> None:
        """Publish a line tagged with this step."""
        self.emitter.step(self.step.number, self.total_steps, message, is_error=is_error)

    async def run(
        self,
        argv: Sequence[str],
        *,
        privileged: bool = False,
        check: bool = True,
        success_codes: Collection[int] | None = None,
    ) -> CommandResult:
        """Run one command, streaming its output as step progress.

        stdout lines go to ``install-log``, stderr lines to
        ``install-error``, both tagged ``(step, total_steps)``.

        Raises:
            SpawnError: The command could not be started.
            ExitFailure: ``check`` is set and the exit status is not
                in ``success_codes`` (the step's own codes by default).
        """
        argv = list(argv)
        stdin_data = None
        if privileged and self.elevate:
            argv = privileged_argv(argv)
            stdin_data = password_stdin(self.secret or "")

        stdout: list[str] = []
        stderr: list[str] = []
        termination = Termination(exit_code=None)
        async with self.runner.spawn(argv, stdin_data=stdin_data) as proc:
            async for event in proc.events():
                if isinstance(event, Termination):
                    termination = event
                    break
                if event.stream == "stdout":
                    stdout.append(event.text)
                    self.report(event.text)
                else:
                    stderr.append(event.text)
                    self.report(event.text, is_error=True)

        result = CommandResult(termination=termination, stdout=stdout, stderr=stderr)
        if success_codes is None:
            accepted = self.step.accepts(termination.exit_code)
        else:
            accepted = termination.exit_code in success_codes
        if check and not accepted:
            detail = WRONG_PASSWORD if privileged and password_rejected(stderr) else ""
            raise ExitFailure(
                self.step.number,
                self.step.description,
                exit_code=termination.exit_code,
                signal=termination.signal,
                detail=detail,
            )
        return result

    async def download(self, url: str, dest: Path) -> int:
        return await self.downloader.download(url, dest)


class StepSequencer:
    """Drives an ordered step list through the process runner."""

    def __init__(
        self,
        *,
        runner: ProcessRunner,
        emitter: ProgressEmitter,
        broker: CredentialBroker,
        downloader: DownloadOrchestrator,
        elevate: bool | None = None,
    ) -> None:
        self._runner = runner
        self._emitter = emitter
        self._broker = broker
        self._downloader = downloader
        # Root needs neither a password nor a sudo wrapper
        self._elevate = (not is_root()) if elevate is None else elevate
        self.state = PipelineState.NOT_STARTED
        self.current_step: int | None = None
        self.total_steps = 0

    def status(self) -> dict:
        """Snapshot for status displays."""
        return {
            "state": self.state.value,
            "current_step": self.current_step,
            "total_steps": self.total_steps,
        }

    async def run(self, steps: Sequence[InstallationStep]) -> PipelineOutcome:
        """Execute ``steps`` in order; return the terminal outcome.

        Fatal ``InstallError``s become a failed outcome plus an
        ``install-error`` event.  Cancelling the task running this
        coroutine kills the active process and yields a cancelled
        outcome.
        """
        ordered = sorted(steps, key=lambda s: s.index)
        if [s.index for s in ordered] != list(range(len(ordered))):
            raise ValueError("Step indices must be 0..n-1 without gaps")

        total = len(ordered)
        self.total_steps = total
        self.current_step = None
        self.state = PipelineState.RUNNING
        secret: str | None = None
        step: InstallationStep | None = None

        try:
            for step in ordered:
                self.current_step = step.index
                self._emitter.step(step.number, total, f"{step.description} - Starting", phase="started")

                if step.needs_secret and self._elevate and secret is None:
                    secret = await self._broker.request_secret()

                ctx = StepContext(
                    step=step,
                    total_steps=total,
                    runner=self._runner,
                    emitter=self._emitter,
                    downloader=self._downloader,
                    secret=secret,
                    elevate=self._elevate,
                )
                if step.procedure is not None:
                    await step.procedure(ctx)
                else:
                    await ctx.run(step.command, privileged=step.needs_secret)

                self._emitter.step(step.number, total, f"{step.description} - Completed", phase="completed")

        except InstallError as e:
            return self._fail(step, total, e.reason)

        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is None or not task.cancelling():
                raise
            task.uncancel()
            return self._cancel(step, total)

        except Exception as e:
            logger.exception("Unexpected error during installation")
            return self._fail(step, total, f"Unexpected error: {e}")

        finally:
            if secret:
                unmask_secret(secret)
            secret = None

        self.state = PipelineState.SUCCEEDED
        self._emitter.log("Installation completed successfully")
        logger.info("Installation completed: %d steps", total)
        return PipelineOutcome.success(total)

    # ── Terminal transitions ────────────────────────────────────

    def _fail(self, step: InstallationStep | None, total: int, reason: str) -> PipelineOutcome:
        self.state = PipelineState.FAILED
        if step is None:
            self._emitter.error(reason)
            return PipelineOutcome.failure(reason, total_steps=total)
        self._emitter.step(step.number, total, reason, phase="failed", is_error=True)
        logger.error("Installation failed at step %d/%d: %s", step.number, total, reason)
        return PipelineOutcome.failure(reason, failing_step_index=step.index, total_steps=total)

    def _cancel(self, step: InstallationStep | None, total: int) -> PipelineOutcome:
        self.state = PipelineState.CANCELLED
        outcome = PipelineOutcome.cancelled(
            failing_step_index=step.index if step else None,
            total_steps=total,
        )
        if step is None:
            self._emitter.error(outcome.reason)
        else:
            self._emitter.step(step.number, total, outcome.reason, phase="failed", is_error=True)
        logger.warning("Installation cancelled at step %s", step.number if step else "-")
        return outcome
