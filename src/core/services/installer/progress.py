"""
Progress emitter — publishes installation progress to the UI boundary.

Fire-and-forget: every method returns immediately, and a failure to
deliver is logged, never raised into the pipeline.

Boundary event names::

    install-log          LogLine | StepProgress (non-error)
    install-error        ErrorLine | StepProgress (is_error)
    download-progress    DownloadProgress
    credential-request   {token}
    installer-path       {path}
"""

from __future__ import annotations

import logging

from src.core.models.installation import (
    CredentialRequest,
    DownloadProgress,
    ErrorLine,
    LogLine,
    StepPhase,
    StepProgress,
)
from src.core.services.event_bus import EventBus

logger = logging.getLogger(__name__)

INSTALL_LOG = "install-log"
INSTALL_ERROR = "install-error"
DOWNLOAD_PROGRESS = "download-progress"
CREDENTIAL_REQUEST = "credential-request"
INSTALLER_PATH = "installer-path"


class ProgressEmitter:
    """Typed front door onto the event bus."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus

    @property
    def bus(self) -> EventBus:
        return self._bus

    def emit(self, event: LogLine | ErrorLine | StepProgress | DownloadProgress) -> None:
        """Publish one progress event under its boundary name."""
        if isinstance(event, DownloadProgress):
            name = DOWNLOAD_PROGRESS
        elif isinstance(event, ErrorLine):
            name = INSTALL_ERROR
        elif isinstance(event, StepProgress) and event.is_error:
            name = INSTALL_ERROR
        else:
            name = INSTALL_LOG
        self._publish(name, event.to_payload())

    # ── Convenience ─────────────────────────────────────────────

    def log(self, message: str) -> None:
        self.emit(LogLine(message=message))

    def error(self, message: str) -> None:
        self.emit(ErrorLine(message=message))

    def step(
        self,
        step: int,
        total_steps: int,
        message: str,
        *,
        phase: StepPhase = "output",
        is_error: bool = False,
    ) -> None:
        """Publish a line tagged ``[Step step/total_steps]``."""
        logger.info("[%d/%d] %s", step, total_steps, message)
        self.emit(StepProgress(
            step=step,
            total_steps=total_steps,
            message=message,
            phase=phase,
            is_error=is_error,
        ))

    def download(self, bytes_downloaded: int, total_bytes: int) -> float:
        """Publish download progress; returns the clamped percentage."""
        percentage = 0.0
        if total_bytes > 0:
            percentage = round(bytes_downloaded / total_bytes * 100, 2)
        percentage = min(100.0, max(0.0, percentage))
        self.emit(DownloadProgress(
            bytes_downloaded=bytes_downloaded,
            total_bytes=total_bytes,
            percentage=percentage,
        ))
        return percentage

    def credential_request(self, token: str) -> None:
        self._publish(CREDENTIAL_REQUEST, CredentialRequest(token=token).to_payload(), key=token)

    def installer_path(self, path: str) -> None:
        self._publish(INSTALLER_PATH, {"path": path})

    # ── Internal ────────────────────────────────────────────────

    def _publish(self, name: str, payload: dict, key: str = "") -> None:
        try:
            self._bus.publish(name, key=key, data=payload)
        except Exception:
            logger.exception("Failed to publish %s event", name)
