"""Configuration loading for cloudvars."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

# Prefix shared by all client-side pseudo-variables ("☁ url", "☁ pasted", ...)
CLOUD_PREFIX = "☁ "


@dataclass(frozen=True)
class SessionConfig:
    user: str = "player"
    project_id: str = "0"


@dataclass(frozen=True)
class CloudConfig:
    """Remote authority settings.

    An empty ``host`` means no remote authority: every variable lives in
    the local fallback store.
    """

    host: str = ""
    secure: bool = True
    special: bool = False
    local_prefix: str = CLOUD_PREFIX + "local storage"
    max_backoff_exponent: int = 5

    @property
    def has_remote(self) -> bool:
        return bool(self.host)

    @property
    def url(self) -> str | None:
        if not self.host:
            return None
        if "://" in self.host:
            return self.host
        scheme = "wss" if self.secure else "ws"
        return f"{scheme}://{self.host}"


@dataclass(frozen=True)
class StoreConfig:
    """Configuration for the local fallback store."""

    path: str = "~/.cloudvars/store.db"
    prefix: str = "[s3] "
    poll_interval_seconds: float = 0.5


@dataclass(frozen=True)
class Config:
    session: SessionConfig = field(default_factory=SessionConfig)
    cloud: CloudConfig = field(default_factory=CloudConfig)
    store: StoreConfig = field(default_factory=StoreConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with CLOUDVARS_ prefix."""
    return os.environ.get(f"CLOUDVARS_{key}", default)


def _as_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(
    session: dict[str, Any], cloud: dict[str, Any], store: dict[str, Any]
) -> None:
    """Apply environment variable overrides to the raw config sections."""
    # Session overrides
    if user := _get_env("USER"):
        session["user"] = user
    if project_id := _get_env("PROJECT_ID"):
        session["project_id"] = project_id

    # Cloud overrides; an explicitly empty host forces local mode
    host = _get_env("HOST")
    if host is not None:
        cloud["host"] = host
    if secure := _get_env("SECURE"):
        cloud["secure"] = _as_bool(secure)
    if special := _get_env("SPECIAL"):
        cloud["special"] = _as_bool(special)

    # Store overrides
    if path := _get_env("STORE_PATH"):
        store["path"] = path
    if interval := _get_env("POLL_INTERVAL"):
        store["poll_interval_seconds"] = float(interval)


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return dict(value)


def _build(cls: type, values: dict[str, Any], section: str) -> Any:
    try:
        return cls(**values)
    except TypeError as e:
        raise ConfigError(f"Invalid '{section}' config: {e}") from e


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigError(f"Config file {path} must contain a mapping")

    session = _section(data, "session")
    cloud = _section(data, "cloud")
    store = _section(data, "store")

    # Project ids are often written as bare numbers in YAML
    if "project_id" in session:
        session["project_id"] = str(session["project_id"])

    _apply_env_overrides(session, cloud, store)

    return Config(
        session=_build(SessionConfig, session, "session"),
        cloud=_build(CloudConfig, cloud, "cloud"),
        store=_build(StoreConfig, store, "store"),
    )
