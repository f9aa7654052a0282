"""Persistent key-value defaults and credentials.

The store is a small JSON document (by default
``~/.linear-cli-agents/config.json``)::

    {"apiKey": "...", "defaults": {"teamId": "...", "teamKey": "..."}}

Writes go to a sibling temp file which is then renamed over the target, so a
reader observes either the previous complete document or the new one, never a
partial write. Commands receive a ``ConfigStore`` instance instead of reaching
for the home directory themselves.
"""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any

from .errors import ConfigError, NotAuthenticated
from .logging import get_logger

API_KEY_ENV = "LINEAR_API_KEY"
CONFIG_DIR_NAME = ".linear-cli-agents"
CONFIG_FILE_NAME = "config.json"

CONFIG_KEYS = ("default-team-id", "default-team-key")
_KEY_TO_DEFAULTS = {
    "default-team-id": "teamId",
    "default-team-key": "teamKey",
}


def default_config_path() -> Path:
    return Path.home() / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def is_valid_config_key(key: str) -> bool:
    return key in _KEY_TO_DEFAULTS


def config_key_to_defaults_key(key: str) -> str:
    try:
        return _KEY_TO_DEFAULTS[key]
    except KeyError as exc:
        raise ConfigError(
            f"Invalid config key: {key}. Valid keys: {', '.join(CONFIG_KEYS)}"
        ) from exc


class ConfigStore:
    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else default_config_path()
        self.logger = get_logger()

    def _ensure_dir(self) -> None:
        directory = self.path.parent
        if not directory.exists():
            directory.mkdir(parents=True, mode=0o700, exist_ok=True)

    def read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigError(
                f"Failed to parse config file at {self.path}. "
                "Please check the file format or delete it.",
                details={"path": str(self.path)},
            ) from exc
        if not isinstance(raw, dict):
            raise ConfigError(
                f"Config file at {self.path} must contain a JSON object",
                details={"path": str(self.path)},
            )
        return raw

    def write(self, data: dict[str, Any]) -> None:
        try:
            text = json.dumps(data, indent=2) + "\n"
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Config is not JSON serializable: {exc}") from exc
        self._ensure_dir()
        tmp = self.path.with_name(f"{self.path.name}.tmp.{time.time_ns()}")
        try:
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
                fh.flush()
                os.fsync(fh.fileno())
            tmp.replace(self.path)
        except Exception as exc:
            tmp.unlink(missing_ok=True)
            raise ConfigError(f"Failed to write config: {exc}") from exc
        self.logger.debug("config written", path=str(self.path))

    # ---- credentials --------------------------------------------------
    def get_api_key(self) -> str | None:
        env_key = os.environ.get(API_KEY_ENV)
        if env_key:
            return env_key
        key = self.read().get("apiKey")
        return str(key) if key else None

    def api_key_source(self) -> str | None:
        if os.environ.get(API_KEY_ENV):
            return "environment"
        return "config" if self.read().get("apiKey") else None

    def require_api_key(self) -> str:
        api_key = self.get_api_key()
        if not api_key:
            raise NotAuthenticated(
                f"Not authenticated. Set the {API_KEY_ENV} environment variable "
                "or store a key in the config file."
            )
        return api_key

    def save_api_key(self, api_key: str) -> None:
        config = self.read()
        config["apiKey"] = api_key
        self.write(config)

    def remove_api_key(self) -> None:
        config = self.read()
        config.pop("apiKey", None)
        self.write(config)

    # ---- defaults -----------------------------------------------------
    def get_defaults(self) -> dict[str, str]:
        config = self.read()
        defaults = dict(config.get("defaults") or {})
        legacy_team = config.get("defaultTeamId")
        if legacy_team and not defaults.get("teamId"):
            defaults["teamId"] = legacy_team
        return defaults

    def set_default(self, key: str, value: str | None) -> None:
        config = self.read()
        defaults = dict(config.get("defaults") or {})
        if value is None:
            defaults.pop(key, None)
        else:
            defaults[key] = value
        config["defaults"] = defaults
        if key == "teamId" and "defaultTeamId" in config:
            del config["defaultTeamId"]
        self.write(config)

    def remove_default(self, key: str) -> None:
        self.set_default(key, None)


__all__ = [
    "API_KEY_ENV",
    "CONFIG_KEYS",
    "ConfigStore",
    "config_key_to_defaults_key",
    "default_config_path",
    "is_valid_config_key",
]
