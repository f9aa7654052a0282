from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import yaml

from .errors import ConfigError
from .linear_api import DEFAULT_API_URL

SETTINGS_DEFAULT = "linearsuite.config.yaml"
SETTINGS_ENV = "LINEARSUITE_SETTINGS"


@dataclass
class CliSettings:
    api_url: str = DEFAULT_API_URL
    api_timeout: float = 30.0
    # 0 disables the cap on in-flight batch items
    concurrency_max_workers: int = 8
    logging_json_enabled: bool = False
    logging_level: str = "WARNING"
    config_store_path: str | None = None

    @property
    def max_workers(self) -> int | None:
        return self.concurrency_max_workers or None


def _resolve_env_var(value: Any) -> Any:
    """Resolve ``$NAME`` values from the environment (left as-is if unset)."""
    if isinstance(value, str) and value.startswith("$"):
        return os.getenv(value[1:], value)
    return value


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw.get(name, {}) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Settings section '{name}' must be a mapping")
    return cast(dict[str, Any], section)


def load_settings(path: str | Path | None = None) -> CliSettings:
    """Load CLI settings; a missing default file yields built-in defaults.

    An explicitly requested file (argument or ``LINEARSUITE_SETTINGS``) must
    exist.
    """
    explicit = path or os.environ.get(SETTINGS_ENV)
    p = Path(explicit) if explicit else Path(SETTINGS_DEFAULT)
    if not p.exists():
        if explicit:
            raise ConfigError(f"Settings file not found: {p}")
        return CliSettings()
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid settings file {p}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Settings file {p} must contain a mapping")

    api = _section(raw, "api")
    concurrency = _section(raw, "concurrency")
    logging_config = _section(raw, "logging")
    store = _section(raw, "config_store")

    try:
        max_workers = int(concurrency.get("max_workers", 8))
        timeout = float(api.get("timeout", 30))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid numeric value in {p}: {exc}") from exc
    if max_workers < 0:
        raise ConfigError("concurrency.max_workers must be >= 0")

    store_path = _resolve_env_var(store.get("path"))
    return CliSettings(
        api_url=str(_resolve_env_var(api.get("url", DEFAULT_API_URL))),
        api_timeout=timeout,
        concurrency_max_workers=max_workers,
        logging_json_enabled=bool(logging_config.get("json_enabled", False)),
        logging_level=str(logging_config.get("level", "WARNING")),
        config_store_path=str(Path(store_path).expanduser()) if store_path else None,
    )


__all__ = ["CliSettings", "SETTINGS_DEFAULT", "load_settings"]
