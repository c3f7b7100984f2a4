"""
L4 Execution — privilege escalation helpers.

Security invariants:
- Password piped via stdin only (``sudo -S``)
- ``-k`` invalidates cached credentials every time
- ``-p ''`` keeps sudo's prompt out of the output stream
- Password never logged, never written to disk, never in argv
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Sequence

_SUDO_PREFIX = ("sudo", "-S", "-k", "-p", "")

_WRONG_PASSWORD_MARKERS = ("incorrect password", "sorry, try again")


def is_root() -> bool:
    """Whether the current process already has root privileges."""
    geteuid = getattr(os, "geteuid", None)
    if geteuid is None:
        return False
    try:
        return geteuid() == 0
    except OSError:
        return False


def privileged_argv(argv: Sequence[str]) -> list[str]:
    """Wrap a command so it runs through ``sudo`` reading the password from stdin."""
    return [*_SUDO_PREFIX, *argv]


def password_stdin(secret: str) -> bytes:
    """Bytes to feed ``sudo -S``."""
    return (secret + "\n").encode()


def password_rejected(stderr_lines: Iterable[str]) -> bool:
    """Detect sudo's "wrong password" diagnostics in captured stderr."""
    return any(
        marker in line.lower()
        for line in stderr_lines
        for marker in _WRONG_PASSWORD_MARKERS
    )
