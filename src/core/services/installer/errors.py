"""
Installer errors — the failure taxonomy of one installation run.

Every fatal failure is an ``InstallError`` whose ``reason`` is the
human-readable message shown to the user.  The installation service
turns these into an ``install-error`` event plus a failed
``PipelineOutcome``; nothing above the service sees them raised,
except ``InstallInProgress``.

``ProbeError`` is deliberately not an ``InstallError``: probe failures
are soft and never leave the detector.
"""

from __future__ import annotations

from collections.abc import Sequence


class InstallError(Exception):
    """Base class for fatal installation failures."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class SpawnError(InstallError):
    """The external process could not be started."""

    def __init__(self, argv: Sequence[str], error: OSError) -> None:
        program = argv[0] if argv else "<empty>"
        super().__init__(f"Failed to start '{program}': {error}")
        self.argv = list(argv)
        self.error = error


class ExitFailure(InstallError):
    """A step's process exited non-zero or was killed by a signal."""

    def __init__(
        self,
        step_number: int,
        description: str,
        *,
        exit_code: int | None = None,
        signal: int | None = None,
        detail: str = "",
    ) -> None:
        if exit_code is not None:
            reason = (
                f"Command failed with exit code {exit_code} "
                f"during step {step_number}: {description}"
            )
        else:
            reason = (
                f"Command was terminated by a signal"
                f"{f' ({signal})' if signal is not None else ''} "
                f"during step {step_number}: {description}"
            )
        if detail:
            reason = f"{reason} ({detail})"
        super().__init__(reason)
        self.step_number = step_number
        self.exit_code = exit_code
        self.signal = signal


class CredentialTimeout(InstallError):
    """No credential response arrived in time."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Timed out after {timeout:g}s waiting for the sudo password")
        self.timeout = timeout


class CredentialCancelled(InstallError):
    """The credential request was withdrawn before it was answered."""

    def __init__(self) -> None:
        super().__init__("The password request was cancelled")


class DownloadFailure(InstallError):
    """The download could not be completed and verified."""

    def __init__(self, url: str, attempts: int, last_error: str) -> None:
        super().__init__(
            f"Download of {url} failed after {attempts} attempt"
            f"{'s' if attempts != 1 else ''}: {last_error}"
        )
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


class UnsupportedPlatform(InstallError):
    """No installation plan exists for this operating system."""

    def __init__(self, system: str) -> None:
        super().__init__(f"Unsupported operating system: {system or 'unknown'}")
        self.system = system


class InstallInProgress(InstallError):
    """Another installation run is already active."""

    def __init__(self) -> None:
        super().__init__("An installation is already running")


class ProbeError(Exception):
    """A detection probe could not reach a conclusion (counts as a "no" vote)."""
