"""
MongoDB installation engine — package re-exports.

    from src.core.services.installer import build_service, InstallerRuntime

Layers, leaf-first::

    execution/      process runner, privilege wrapping, download orchestrator
    detection/      installation probes + majority verdict
    plans/          per-platform step lists (ubuntu, windows) + registry
    orchestration/  step sequencer, installation service, loop runtime
"""

from src.core.services.installer.credentials import (  # noqa: F401
    CREDENTIAL_TIMEOUT_S,
    CredentialBroker,
)
from src.core.services.installer.errors import (  # noqa: F401
    CredentialCancelled,
    CredentialTimeout,
    DownloadFailure,
    ExitFailure,
    InstallError,
    InstallInProgress,
    ProbeError,
    SpawnError,
    UnsupportedPlatform,
)
from src.core.services.installer.orchestration.runtime import InstallerRuntime  # noqa: F401
from src.core.services.installer.orchestration.sequencer import (  # noqa: F401
    PipelineState,
    StepContext,
    StepSequencer,
)
from src.core.services.installer.orchestration.service import (  # noqa: F401
    InstallationService,
    build_service,
)
from src.core.services.installer.progress import ProgressEmitter  # noqa: F401
