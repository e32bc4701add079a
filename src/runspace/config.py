# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Configuration loading for runspace.

Config is an optional YAML mapping at $RUNSPACE_CONFIG or
~/.runspace/config.yaml. Environment variables override file values:
RUNSPACE_ENGINE, RUNSPACE_PWSH_PATH, RUNSPACE_BUFFER_SIZE.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from runspace.engine import DEFAULT_ENGINE, ENGINE_NAMES
from runspace.errors import ConfigError
from runspace.multiplexer import DEFAULT_BUFFER_SIZE

DEFAULT_CONFIG_PATH = Path("~/.runspace/config.yaml")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Settings:
    """Resolved runspace settings.

    Fields:
    - engine: Default engine name
    - pwsh_path: Executable for the pwsh engine
    - buffer_size: Output buffer bound (items)
    - log_level: Console log level for the CLI
    - events_path: JSONL run event log, or None to disable
    """

    engine: str = DEFAULT_ENGINE
    pwsh_path: str = "pwsh"
    buffer_size: int = DEFAULT_BUFFER_SIZE
    log_level: str = "WARNING"
    events_path: Optional[Path] = None

    def validate(self) -> None:
        """
        Validate settings.

        Raises:
            ConfigError: If a value is invalid
        """
        if self.engine not in ENGINE_NAMES:
            raise ConfigError(
                f"engine must be one of {', '.join(ENGINE_NAMES)}, got: {self.engine}"
            )
        if not self.pwsh_path or not str(self.pwsh_path).strip():
            raise ConfigError("pwsh_path cannot be empty")
        if isinstance(self.buffer_size, bool) or not isinstance(self.buffer_size, int):
            raise ConfigError(f"buffer_size must be an integer, got: {self.buffer_size!r}")
        if self.buffer_size <= 0:
            raise ConfigError(f"buffer_size must be positive, got: {self.buffer_size}")
        if str(self.log_level).upper() not in LOG_LEVELS:
            raise ConfigError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got: {self.log_level}"
            )

    @property
    def log_level_value(self) -> int:
        return getattr(logging, str(self.log_level).upper())


def config_path(path: Optional[str] = None) -> Path:
    """Resolve the config file path: explicit path, $RUNSPACE_CONFIG, then default."""
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get("RUNSPACE_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the raw config mapping.

    Args:
        path: Explicit config path. If given, the file must exist.

    Returns:
        Config dict (empty if no default config file exists)

    Raises:
        FileNotFoundError: If an explicit path does not exist
        ConfigError: If the file is not valid YAML or not a mapping
    """
    resolved = config_path(path)
    if not resolved.exists():
        if path or os.environ.get("RUNSPACE_CONFIG"):
            raise FileNotFoundError(f"Config file not found: {resolved}")
        return {}

    try:
        with open(resolved) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {resolved}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {resolved} must contain a YAML mapping")
    return data


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load and validate settings from defaults, config file and environment.

    Raises:
        FileNotFoundError: If an explicit path does not exist
        ConfigError: If any value is invalid
    """
    data = load_config(path)

    unknown = set(data) - {"engine", "pwsh_path", "buffer_size", "log_level", "events_path"}
    if unknown:
        raise ConfigError(f"unknown config keys: {', '.join(sorted(unknown))}")

    settings = Settings()
    if "engine" in data:
        settings.engine = data["engine"]
    if "pwsh_path" in data:
        settings.pwsh_path = data["pwsh_path"]
    if "buffer_size" in data:
        settings.buffer_size = data["buffer_size"]
    if "log_level" in data:
        settings.log_level = data["log_level"]
    if data.get("events_path"):
        settings.events_path = Path(data["events_path"]).expanduser()

    # Environment overrides
    if os.environ.get("RUNSPACE_ENGINE"):
        settings.engine = os.environ["RUNSPACE_ENGINE"]
    if os.environ.get("RUNSPACE_PWSH_PATH"):
        settings.pwsh_path = os.environ["RUNSPACE_PWSH_PATH"]
    if os.environ.get("RUNSPACE_BUFFER_SIZE"):
        try:
            settings.buffer_size = int(os.environ["RUNSPACE_BUFFER_SIZE"])
        except ValueError:
            raise ConfigError(
                f"RUNSPACE_BUFFER_SIZE must be an integer, got: {os.environ['RUNSPACE_BUFFER_SIZE']}"
            )

    settings.validate()
    return settings
