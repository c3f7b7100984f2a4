"""
Installation models — steps, progress events, credentials, outcomes.

These are the value types that flow between the installation engine
and its UI boundary. Progress payloads serialize with camelCase
aliases because that is the shape the front-end consumes::

    StepProgress(step=2, total_steps=7, message="...").to_payload()
    # {"step": 2, "totalSteps": 7, "message": "...", "phase": "output", ...}
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from src.core.services.installer.orchestration.sequencer import StepContext


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


# ── Steps ───────────────────────────────────────────────────────


StepProcedure = Callable[["StepContext"], Awaitable[None]]


@dataclass(frozen=True)
class InstallationStep:
    """One atomic unit of the installation procedure.

    A step is either a command line (run through the process runner
    and judged by its exit code) or a procedure (an async callable
    that drives its own sub-commands and raises ``InstallError`` on
    failure). Steps are immutable once a plan has been built.
    """

    index: int
    description: str
    command: tuple[str, ...] = ()
    needs_secret: bool = False
    success_codes: frozenset[int] = frozenset({0})
    procedure: StepProcedure | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not self.command and self.procedure is None:
            raise ValueError(f"Step {self.index} has neither a command nor a procedure")

    @property
    def number(self) -> int:
        """1-based step number, as shown to the user."""
        return self.index + 1

    def accepts(self, exit_code: int | None) -> bool:
        """Whether an exit code counts as success for this step."""
        return exit_code is not None and exit_code in self.success_codes


# ── Progress events ─────────────────────────────────────────────


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_payload(self) -> dict[str, Any]:
        """Boundary payload (camelCase keys, no discriminator)."""
        return self.model_dump(by_alias=True, exclude={"kind"})


class LogLine(_Payload):
    """A plain informational line."""

    kind: Literal["log"] = "log"
    message: str


class ErrorLine(_Payload):
    """A plain error line."""

    kind: Literal["error"] = "error"
    message: str


StepPhase = Literal["started", "output", "completed", "failed"]


class StepProgress(_Payload):
    """A line tagged with the step that produced it."""

    kind: Literal["step"] = "step"
    step: int
    total_steps: int
    message: str
    phase: StepPhase = "output"
    is_error: bool = False


class DownloadProgress(_Payload):
    """Byte-level progress of a file transfer."""

    kind: Literal["download"] = "download"
    bytes_downloaded: int
    total_bytes: int
    percentage: float


ProgressEvent = Annotated[
    Union[LogLine, ErrorLine, StepProgress, DownloadProgress],
    Field(discriminator="kind"),
]


# ── Credentials ─────────────────────────────────────────────────


class CredentialRequest(_Payload):
    """Published to the UI when a privileged secret is needed."""

    token: str


class CredentialResponse(_Payload):
    """Delivered by the UI for exactly one request token.

    An absent secret is treated as the empty string.
    """

    token: str
    secret: str | None = None

    @property
    def value(self) -> str:
        return self.secret or ""


# ── Verdicts & outcomes ─────────────────────────────────────────


class InstallationVerdict(BaseModel):
    """Majority vote over independent installation probes."""

    installed: bool
    votes: dict[str, bool] = Field(default_factory=dict)
    checked_at: str = Field(default_factory=_now_iso)

    @property
    def passed(self) -> int:
        """Number of probes that voted "installed"."""
        return sum(1 for v in self.votes.values() if v)


class PipelineOutcome(BaseModel):
    """Terminal state of one installation run.

    ``failing_step_index`` is 0-based and ``None`` when the run failed
    before any step started (e.g. unsupported platform).
    """

    status: Literal["succeeded", "failed", "cancelled"]
    failing_step_index: int | None = None
    reason: str = ""
    steps_completed: int = 0
    total_steps: int = 0
    finished_at: str = Field(default_factory=_now_iso)

    @property
    def ok(self) -> bool:
        """Whether every step succeeded."""
        return self.status == "succeeded"

    @classmethod
    def success(cls, total_steps: int) -> PipelineOutcome:
        """Create a success outcome."""
        return cls(status="succeeded", steps_completed=total_steps, total_steps=total_steps)

    @classmethod
    def failure(
        cls,
        reason: str,
        *,
        failing_step_index: int | None = None,
        total_steps: int = 0,
    ) -> PipelineOutcome:
        """Create a failure outcome."""
        return cls(
            status="failed",
            failing_step_index=failing_step_index,
            reason=reason,
            steps_completed=failing_step_index or 0,
            total_steps=total_steps,
        )

    @classmethod
    def cancelled(
        cls,
        *,
        failing_step_index: int | None = None,
        total_steps: int = 0,
    ) -> PipelineOutcome:
        """Create a cancelled outcome."""
        return cls(
            status="cancelled",
            failing_step_index=failing_step_index,
            reason="Installation cancelled",
            steps_completed=failing_step_index or 0,
            total_steps=total_steps,
        )
