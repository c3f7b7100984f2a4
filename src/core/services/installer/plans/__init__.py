"""
L2 Plans — one installation plan provider per platform.
"""

from src.core.services.installer.plans.base import InstallationPlanProvider  # noqa: F401
from src.core.services.installer.plans.registry import (  # noqa: F401
    default_providers,
    select_provider,
)
