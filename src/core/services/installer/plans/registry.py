"""
L2 Plans — provider selection.

The provider is chosen once, from ``platform.system()``; the first
provider whose ``supports()`` accepts the system wins.
"""

from __future__ import annotations

import logging
import platform
from collections.abc import Sequence

from src.core.models.settings import InstallerSettings
from src.core.services.installer.errors import UnsupportedPlatform
from src.core.services.installer.plans.base import InstallationPlanProvider
from src.core.services.installer.plans.ubuntu import UbuntuPlanProvider
from src.core.services.installer.plans.windows import WindowsPlanProvider

logger = logging.getLogger(__name__)


def default_providers(settings: InstallerSettings | None = None) -> list[InstallationPlanProvider]:
    """Every built-in provider, configured from ``settings``."""
    settings = settings or InstallerSettings()
    return [
        UbuntuPlanProvider(settings.linux),
        WindowsPlanProvider(settings.windows),
    ]


def select_provider(
    settings: InstallerSettings | None = None,
    *,
    system: str | None = None,
    providers: Sequence[InstallationPlanProvider] | None = None,
) -> InstallationPlanProvider:
    """Pick the plan provider for ``system`` (default: this machine).

    Raises:
        UnsupportedPlatform: No provider supports the system.
    """
    system = platform.system() if system is None else system
    candidates = default_providers(settings) if providers is None else providers
    for provider in candidates:
        if provider.supports(system):
            logger.debug("Selected %s plan for %s", provider.name, system)
            return provider
    raise UnsupportedPlatform(system)
