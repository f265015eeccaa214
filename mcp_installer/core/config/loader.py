"""
Settings loader — reads the installer's own YAML settings.

Lookup order:
    1. explicit path (``--config``)
    2. ``MCPI_CONFIG`` environment variable
    3. ``~/.config/mcp-installer/settings.yml``
    4. built-in defaults

An explicitly named file must exist; the default location is optional.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from mcp_installer.core.engine.step_runners import StepTimeouts
from mcp_installer.core.persistence.host_config import PORT_RANGE, REQUIRED_SERVERS

logger = logging.getLogger(__name__)

ENV_CONFIG = "MCPI_CONFIG"
DEFAULT_SETTINGS_FILE = Path("~/.config/mcp-installer/settings.yml")


class ConfigError(Exception):
    """Raised when the settings file is missing, unreadable or invalid."""


class InstallerSettings(BaseModel):
    """Tunables of the installer."""

    model_config = ConfigDict(extra="forbid")

    pacing_ms: int = Field(default=500, ge=0)
    max_attempts: int = Field(default=4, ge=1)
    timeouts: StepTimeouts = Field(default_factory=StepTimeouts)
    registry_path: str | None = None
    host_config_path: str | None = None
    required_servers: dict[str, int] = Field(default_factory=lambda: dict(REQUIRED_SERVERS))
    port_range: tuple[int, int] = PORT_RANGE

    @field_validator("port_range")
    @classmethod
    def _ordered_range(cls, v: tuple[int, int]) -> tuple[int, int]:
        lo, hi = v
        if not 0 < lo <= hi < 65536:
            raise ValueError(f"invalid port range {lo}-{hi}")
        return v


def find_settings_file(
    explicit: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[Path | None, bool]:
    """Locate the settings file.

    Returns:
        ``(path, required)``: ``required`` is True when the user named the
        file, so its absence is an error.
    """
    env = os.environ if environ is None else environ
    if explicit is not None:
        return explicit, True
    if env.get(ENV_CONFIG):
        return Path(env[ENV_CONFIG]), True
    default = DEFAULT_SETTINGS_FILE.expanduser()
    return (default, False) if default.is_file() else (None, False)


def load_settings(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> InstallerSettings:
    """Load and validate installer settings.

    Raises:
        ConfigError: If a named file is missing, or any file is invalid.
    """
    path, required = find_settings_file(path, environ)
    if path is None:
        logger.debug("No settings file, using defaults")
        return InstallerSettings()

    if not path.is_file():
        if required:
            raise ConfigError(f"Settings file not found: {path}")
        return InstallerSettings()

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        settings = InstallerSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.debug("Loaded settings from %s", path)
    return settings
