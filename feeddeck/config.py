"""Configuration: config.yaml with ${ENV_VAR} substitution and env overrides.

Example config.yaml:

    api_key: ${YOUTUBE_API_KEY}
    db_path: data/feeddeck.db
    page_size: 20
    sources:
      - id: UC_x5XG1OV2P6uZZ5FSM9Ttw
        type: channel
        name: Google for Developers
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml

from feeddeck.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_DB_PATH = "data/feeddeck.db"

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


def resolve_env(value: Any) -> Any:
    """Replace ${VAR} in strings (recursively in lists/dicts) with the environment value."""
    if isinstance(value, str):
        return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, list):
        return [resolve_env(v) for v in value]
    if isinstance(value, dict):
        return {k: resolve_env(v) for k, v in value.items()}
    return value


@dataclass
class Settings:
    api_key: str = ""
    db_path: str = DEFAULT_DB_PATH
    page_size: int = 20
    column_page_size: int = 10
    request_timeout_seconds: float = 30.0
    probe_timeout_seconds: float = 5.0
    sync_timeout_seconds: float = 60.0
    retries: int = 3
    api_url: str = "https://www.googleapis.com/youtube/v3"
    shorts_url: str = "https://www.youtube.com/shorts"
    sources: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Settings:
        data = resolve_env(data or {})
        known = {f for f in cls.__dataclass_fields__}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
        settings = cls(**{k: v for k, v in data.items() if k in known})
        settings.validate()
        return settings

    def validate(self) -> None:
        for name in ("page_size", "column_page_size", "retries"):
            setattr(self, name, _coerce(name, getattr(self, name), int))
        for name in ("request_timeout_seconds", "probe_timeout_seconds", "sync_timeout_seconds"):
            setattr(self, name, _coerce(name, getattr(self, name), float))
        if not 1 <= self.page_size <= 50:
            raise ConfigError(f"page_size must be between 1 and 50, got {self.page_size}")
        if self.column_page_size < 1:
            raise ConfigError("column_page_size must be positive")
        if self.retries < 1:
            raise ConfigError("retries must be at least 1")
        if not isinstance(self.sources, list):
            raise ConfigError("sources must be a list")
        for src in self.sources:
            if not isinstance(src, dict) or not src.get("id"):
                raise ConfigError(f"source entry needs an id: {src!r}")

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigError("YOUTUBE_API_KEY is not set (env or api_key in config.yaml)")
        return self.api_key


def _coerce(name: str, value: Any, kind: type) -> Any:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e


def load_config(path: str = DEFAULT_CONFIG_PATH) -> Settings:
    """Load settings from YAML (if present) and apply environment overrides."""
    data: Dict[str, Any] = {}
    config_file = Path(path)
    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping")
    else:
        logger.debug("Config file %s not found; using defaults", path)

    settings = Settings.from_dict(data)
    if os.environ.get("YOUTUBE_API_KEY"):
        settings.api_key = os.environ["YOUTUBE_API_KEY"]
    if os.environ.get("FEEDDECK_DB"):
        settings.db_path = os.environ["FEEDDECK_DB"]
    return settings
