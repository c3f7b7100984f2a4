"""
Tests for domain models — steps, boundary payloads, outcomes.
"""

import pytest
from pydantic import TypeAdapter, ValidationError

from src.core.models import (
    CredentialResponse,
    DownloadProgress,
    ErrorLine,
    InstallationStep,
    InstallationVerdict,
    LogLine,
    PipelineOutcome,
    ProgressEvent,
    StepProgress,
)


class TestInstallationStep:
    def test_number_is_one_based(self):
        assert InstallationStep(index=0, description="x", command=("true",)).number == 1

    def test_needs_command_or_procedure(self):
        with pytest.raises(ValueError):
            InstallationStep(index=0, description="empty")

    def test_success_codes(self):
        step = InstallationStep(
            index=0, description="x", command=("true",), success_codes=frozenset({0, 3010}),
        )
        assert step.accepts(3010)
        assert not step.accepts(1)
        assert not step.accepts(None)

    def test_frozen(self):
        step = InstallationStep(index=0, description="x", command=("true",))
        with pytest.raises(AttributeError):
            step.index = 1  # type: ignore[misc]


class TestPayloads:
    def test_step_progress_camel_case(self):
        payload = StepProgress(step=2, total_steps=7, message="hi").to_payload()
        assert payload == {
            "step": 2,
            "totalSteps": 7,
            "message": "hi",
            "phase": "output",
            "isError": False,
        }

    def test_download_progress(self):
        payload = DownloadProgress(bytes_downloaded=5, total_bytes=10, percentage=50.0).to_payload()
        assert payload == {"bytesDownloaded": 5, "totalBytes": 10, "percentage": 50.0}

    def test_discriminated_union(self):
        adapter = TypeAdapter(ProgressEvent)
        assert isinstance(adapter.validate_python({"kind": "log", "message": "a"}), LogLine)
        assert isinstance(adapter.validate_python({"kind": "error", "message": "b"}), ErrorLine)
        event = adapter.validate_python({"kind": "step", "step": 1, "totalSteps": 2, "message": "c"})
        assert isinstance(event, StepProgress)
        with pytest.raises(ValidationError):
            adapter.validate_python({"kind": "bogus", "message": "d"})

    def test_absent_secret_is_empty(self):
        assert CredentialResponse(token="t").value == ""
        assert CredentialResponse(token="t", secret="pw").value == "pw"


class TestOutcomes:
    def test_success(self):
        outcome = PipelineOutcome.success(7)
        assert outcome.ok
        assert outcome.steps_completed == 7

    def test_failure_counts_completed_steps(self):
        outcome = PipelineOutcome.failure("boom", failing_step_index=2, total_steps=5)
        assert not outcome.ok
        assert outcome.steps_completed == 2

    def test_failure_before_any_step(self):
        outcome = PipelineOutcome.failure("Unsupported operating system: Plan9")
        assert outcome.failing_step_index is None
        assert outcome.steps_completed == 0

    def test_cancelled(self):
        outcome = PipelineOutcome.cancelled(failing_step_index=1, total_steps=3)
        assert outcome.status == "cancelled"
        assert outcome.reason == "Installation cancelled"

    def test_verdict_passed(self):
        verdict = InstallationVerdict(installed=True, votes={"a": True, "b": False, "c": True})
        assert verdict.passed == 2
