"""
Domain models — Pydantic types for the installer.

All models are re-exported here for convenient access:

    from src.core.models import InstallationStep, PipelineOutcome, InstallerSettings
"""

from src.core.models.installation import (
    CredentialRequest,
    CredentialResponse,
    DownloadProgress,
    ErrorLine,
    InstallationStep,
    InstallationVerdict,
    LogLine,
    PipelineOutcome,
    ProgressEvent,
    StepPhase,
    StepProgress,
)
from src.core.models.settings import (
    InstallerSettings,
    LinuxSettings,
    WebSettings,
    WindowsSettings,
)

__all__ = [
    # installation.py
    "CredentialRequest",
    "CredentialResponse",
    "DownloadProgress",
    "ErrorLine",
    "InstallationStep",
    "InstallationVerdict",
    # settings.py
    "InstallerSettings",
    "LinuxSettings",
    "LogLine",
    "PipelineOutcome",
    "ProgressEvent",
    "StepPhase",
    "StepProgress",
    "WebSettings",
    "WindowsSettings",
]
