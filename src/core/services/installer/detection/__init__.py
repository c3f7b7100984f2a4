"""
L3 Detection — read-only installation probes.
"""

from src.core.services.installer.detection.probes import (  # noqa: F401
    InstallationDetector,
    Probe,
    majority,
)
