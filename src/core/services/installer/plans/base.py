"""
L2 Plans — installation plan provider interface.

One provider per supported operating system.  A provider knows how
to build its ordered step list and which probes tell whether the
database is already installed.  Adding a platform means adding a
provider to the registry, never branching inside shared logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.core.models.installation import InstallationStep
from src.core.services.installer.detection.probes import Probe
from src.core.services.installer.execution.process_runner import ProcessRunner


class InstallationPlanProvider(ABC):
    """Builds the installation procedure for one platform."""

    #: Short identifier shown in status output ("ubuntu", "windows").
    name: str = ""

    @abstractmethod
    def supports(self, system: str) -> bool:
        """Whether this provider handles ``platform.system()`` == ``system``."""

    @abstractmethod
    def build_steps(self) -> list[InstallationStep]:
        """The ordered, immutable step list (indices 0..n-1)."""

    @abstractmethod
    def probes(self, runner: ProcessRunner) -> list[Probe]:
        """An odd number of independent installation probes."""

    def describe(self) -> dict:
        """Plan summary for status displays."""
        steps = self.build_steps()
        return {
            "platform": self.name,
            "total_steps": len(steps),
            "steps": [
                {"step": s.number, "description": s.description, "privileged": s.needs_secret}
                for s in steps
            ],
        }
