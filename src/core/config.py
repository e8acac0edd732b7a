"""
Simple Update Checker - Configuration
Settings come from defaults, an optional JSON file, the environment and the
command line, in increasing order of precedence.
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Optional

from core.errors import ConfigError
from core.notifications import DEFAULT_NTFY_SERVER

logger = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".config" / "simple_update_checker" / "config.json"
DEFAULT_DB_PATH = "programs.db"
DEFAULT_CHECK_INTERVAL = 3600

ENV_VARS = {
    "db_path": "DB_PATH",
    "check_interval": "CHECK_INTERVAL",
    "ntfy_topic": "NTFY_TOPIC",
    "ntfy_server": "NTFY_SERVER",
    "github_access_token": "GITHUB_ACCESS_TOKEN",
}


@dataclass
class Config:
    """Runtime settings of the update checker."""
    db_path: str = DEFAULT_DB_PATH
    check_interval: int = DEFAULT_CHECK_INTERVAL
    ntfy_topic: Optional[str] = None
    ntfy_server: str = DEFAULT_NTFY_SERVER
    github_access_token: Optional[str] = None
    path: Optional[Path] = None  # file the settings were read from

    @classmethod
    def load(
        cls,
        config_path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        overrides: Optional[dict] = None,
    ) -> "Config":
        """
        Build the configuration.

        Args:
            config_path: JSON file to read. Defaults to CONFIG_PATH; a missing
                default file is not an error.
            environ: Environment to read variables from. Defaults to os.environ.
            overrides: Values given on the command line, None entries are ignored.

        Raises:
            ConfigError: If the file is unreadable or a value is invalid.
        """
        config = cls()
        explicit = config_path is not None
        path = Path(config_path).expanduser() if explicit else CONFIG_PATH

        if path.exists():
            config._apply(config._read_file(path), source=str(path))
            config.path = path
        elif explicit:
            raise ConfigError(f"Config file {path} does not exist")

        environ = os.environ if environ is None else environ
        config._apply(
            {key: environ[var] for key, var in ENV_VARS.items() if environ.get(var)},
            source="environment",
        )
        config._apply(
            {key: value for key, value in (overrides or {}).items() if value is not None},
            source="command line",
        )
        config.validate()
        return config

    @staticmethod
    def _read_file(path: Path) -> dict:
        try:
            with open(path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigError(f"Failed to load config {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must contain a JSON object")
        return data

    def _apply(self, values: dict, source: str) -> None:
        known = {f.name for f in fields(self)} - {"path"}
        for key, value in values.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key '{key}' from {source}")
                continue
            if key == "check_interval":
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    raise ConfigError(
                        f"check_interval from {source} must be an integer, got {value!r}"
                    ) from None
            setattr(self, key, value)

    def validate(self) -> None:
        if self.check_interval <= 0:
            raise ConfigError(f"check_interval must be positive, got {self.check_interval}")
        if not self.db_path:
            raise ConfigError("db_path must not be empty")
