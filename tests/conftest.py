"""
Shared test fixtures and configuration.

Installer tests run real child processes (``sys.executable -c ...``)
through scripted plan providers (see ``tests/helpers.py``); nothing
touches the network or needs privileges.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from src.core.models.settings import InstallerSettings
from src.core.observability import logging_config
from src.core.services.event_bus import EventBus
from src.core.services.installer.progress import ProgressEmitter


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def emitter(bus: EventBus) -> ProgressEmitter:
    return ProgressEmitter(bus)


@pytest.fixture
def settings() -> InstallerSettings:
    return InstallerSettings()


@pytest.fixture(autouse=True)
def _clear_masked_secrets():
    """Secrets registered by one test never leak into the next."""
    yield
    logging_config.clear_secrets()
