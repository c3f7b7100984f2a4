"""
L4 Execution — ``__init__.py`` re-exports.

These modules touch the system: subprocesses, sudo, downloads.
"""

from src.core.services.installer.execution.download import (  # noqa: F401
    FALLBACK_TOTAL_BYTES,
    DownloadOrchestrator,
    partial_path,
    promote,
)
from src.core.services.installer.execution.privilege import (  # noqa: F401
    is_root,
    password_rejected,
    password_stdin,
    privileged_argv,
)
from src.core.services.installer.execution.process_runner import (  # noqa: F401
    CommandResult,
    OutputLine,
    ProcessHandle,
    ProcessRunner,
    Termination,
)
