"""
Configuration loader — reads mongosetup.yml into InstallerSettings.

The config file is optional. When none is found the defaults from
``InstallerSettings`` are used; when one is named explicitly it must
exist and validate.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from src.core.models.settings import InstallerSettings

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "mongosetup.yml"

# Env var that names an explicit config file
CONFIG_ENV_VAR = "MONGOSETUP_CONFIG"


class ConfigError(Exception):
    """Raised when installer configuration is invalid or unreadable."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for mongosetup.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to mongosetup.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def resolve_config_path(explicit: Path | None = None) -> Path | None:
    """Pick the config file: explicit arg > env var > upward search."""
    if explicit is not None:
        return explicit
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env)
    return find_config_file()


def load_settings(path: Path | None = None) -> InstallerSettings:
    """Load and validate installer settings.

    Args:
        path: Explicit path to mongosetup.yml. If None, the env var
            and then an upward search are tried; if nothing is found
            the defaults are returned.

    Returns:
        Validated InstallerSettings.

    Raises:
        ConfigError: If a named file is missing, unreadable, or invalid.
    """
    explicit = path is not None or bool(os.environ.get(CONFIG_ENV_VAR))
    path = resolve_config_path(path)

    if path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILE)
        return InstallerSettings()

    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return InstallerSettings()

    logger.debug("Loading installer config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return InstallerSettings()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Accept both a flat file and one wrapped under "mongosetup:"
    settings_data = data.get("mongosetup", data)

    try:
        settings = InstallerSettings.model_validate(settings_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid installer configuration: {e}") from e

    logger.info("Loaded installer settings from %s", path)
    return settings
