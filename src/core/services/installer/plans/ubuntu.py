"""
L2 Plans — Ubuntu (apt + systemd).

Seven privileged shell steps: register the MongoDB apt repository,
install ``mongodb-org`` and start the ``mongod`` service.  Each step
runs as ``bash -c '<command>'`` so pipes and ``&&`` work; the sudo
wrapper is applied by the sequencer.
"""

from __future__ import annotations

import logging

from src.core.models.installation import InstallationStep
from src.core.models.settings import LinuxSettings
from src.core.services.installer.detection.probes import (
    Probe,
    binary_on_path_probe,
    systemd_unit_probe,
    version_query_probe,
)
from src.core.services.installer.execution.process_runner import ProcessRunner
from src.core.services.installer.plans.base import InstallationPlanProvider

logger = logging.getLogger(__name__)


class UbuntuPlanProvider(InstallationPlanProvider):
    """MongoDB Community from the official apt repository."""

    name = "ubuntu"

    def __init__(self, settings: LinuxSettings | None = None) -> None:
        self._settings = settings or LinuxSettings()

    def supports(self, system: str) -> bool:
        return system == "Linux"

    def commands(self) -> list[tuple[str, str]]:
        """``(description, shell command)`` pairs, in order."""
        s = self._settings
        repo_line = (
            f"deb [ arch={s.architectures} signed-by={s.keyring_path} ] "
            f"https://repo.mongodb.org/apt/ubuntu {s.codename}/mongodb-org/{s.series} multiverse"
        )
        list_name = s.sources_list.rsplit("/", 1)[-1]
        return [
            ("Updating package database", "apt-get update"),
            ("Installing dependencies", "apt-get install -y gnupg curl"),
            (
                "Importing MongoDB GPG key",
                f"curl -fsSL {s.key_url} | gpg --yes -o {s.keyring_path} --dearmor",
            ),
            (
                "Adding MongoDB repository",
                f'echo "{repo_line}" | tee {s.sources_list}',
            ),
            (
                "Updating MongoDB package database",
                f'apt-get update -o Dir::Etc::sourcelist="sources.list.d/{list_name}" '
                f'-o Dir::Etc::sourceparts="-" -o APT::Get::List-Cleanup="0"',
            ),
            (
                "Installing MongoDB packages",
                "DEBIAN_FRONTEND=noninteractive apt-get install -y mongodb-org",
            ),
            (
                "Starting MongoDB service",
                f"systemctl daemon-reload && systemctl enable {s.service_name} "
                f"&& systemctl start {s.service_name}",
            ),
        ]

    def build_steps(self) -> list[InstallationStep]:
        return [
            InstallationStep(
                index=i,
                description=description,
                command=("bash", "-c", command),
                needs_secret=True,
            )
            for i, (description, command) in enumerate(self.commands())
        ]

    def probes(self, runner: ProcessRunner) -> list[Probe]:
        binary = self._settings.service_name
        return [
            systemd_unit_probe(runner, self._settings.service_name),
            binary_on_path_probe(binary),
            version_query_probe(runner, binary),
        ]
