"""
Test helpers — scripted steps, probes and plan providers.
"""

from __future__ import annotations

import sys

from src.core.models.installation import InstallationStep
from src.core.services.event_bus import EventBus
from src.core.services.installer.detection.probes import Probe
from src.core.services.installer.plans.base import InstallationPlanProvider


def py(code: str) -> tuple[str, ...]:
    """argv running ``code`` in a fresh interpreter."""
    return (sys.executable, "-c", code)


def python_step(index: int, code: str, description: str | None = None, **kw) -> InstallationStep:
    return InstallationStep(
        index=index,
        description=description or f"Step {index + 1}",
        command=py(code),
        **kw,
    )


def const_probe(name: str, value: bool) -> Probe:
    async def check() -> bool:
        return value

    return Probe(name, check)


def failing_probe(name: str, error: Exception | None = None) -> Probe:
    async def check() -> bool:
        raise error or RuntimeError(f"{name} exploded")

    return Probe(name, check)


def payloads(bus: EventBus, event_type: str) -> list[dict]:
    """``data`` of every buffered event of ``event_type``."""
    return [e["data"] for e in bus.history(event_type)]


class ScriptedPlanProvider(InstallationPlanProvider):
    """Plan provider returning fixed steps and probes."""

    name = "scripted"

    def __init__(
        self,
        steps: list[InstallationStep] | None = None,
        probes: list[Probe] | None = None,
    ) -> None:
        self._steps = steps or []
        self._probes = probes or [
            const_probe("a", True),
            const_probe("b", True),
            const_probe("c", False),
        ]

    def supports(self, system: str) -> bool:
        return True

    def build_steps(self) -> list[InstallationStep]:
        return list(self._steps)

    def probes(self, runner) -> list[Probe]:  # type: ignore[no-untyped-def]
        return list(self._probes)
