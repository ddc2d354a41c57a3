"""Client, cache and manager configuration."""
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

from kbkeys.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_API_ENDPOINT = "https://keybase.io/_/api/1.0"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_CACHE_TTL = timedelta(hours=24)
CACHE_FILE_NAME = "keyring_cache.json"

_RECOGNISED_BOOL_VALUES = frozenset(
    ("1", "true", "yes", "0", "false", "no")
)


@dataclass(frozen=True)
class ClientConfig:
    """Directory client settings. Durations are in seconds."""

    endpoint: str = DEFAULT_API_ENDPOINT
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY

    def normalized(self) -> "ClientConfig":
        """Return a copy with every invalid field replaced by its default."""
        return ClientConfig(
            endpoint=self.endpoint.rstrip("/") if self.endpoint else DEFAULT_API_ENDPOINT,
            timeout=self.timeout if self.timeout > 0 else DEFAULT_TIMEOUT,
            max_retries=max(self.max_retries, 0),
            retry_delay=self.retry_delay if self.retry_delay > 0 else DEFAULT_RETRY_DELAY,
        )


@dataclass(frozen=True)
class CacheConfig:
    path: Path = field(default_factory=lambda: default_cache_path())
    ttl: timedelta = DEFAULT_CACHE_TTL


@dataclass(frozen=True)
class ManagerConfig:
    """Settings for a CacheManager.

    ``offline`` restricts every lookup to the local cache; an offline
    manager never constructs a directory client.
    """

    cache: CacheConfig = field(default_factory=CacheConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    offline: bool = False


def default_cache_path() -> Path:
    try:
        home = Path.home()
    except RuntimeError:
        home = Path(tempfile.gettempdir())
    return home / ".config" / "kbkeys" / CACHE_FILE_NAME


def default_client_config() -> ClientConfig:
    return ClientConfig()


def default_cache_config() -> CacheConfig:
    return CacheConfig()


def default_manager_config() -> ManagerConfig:
    return ManagerConfig()


def _parse_bool(value: str, default: bool) -> bool:
    """Parse a boolean setting with explicit default.

    Recognises ``true/1/yes`` and ``false/0/no`` (case-insensitive).
    Returns *default* when the value is empty or unset, and logs a warning
    for unrecognised values.
    """
    if not value:
        return default
    normalised = value.lower()
    if normalised not in _RECOGNISED_BOOL_VALUES:
        logger.warning(
            "Unrecognised boolean value %r, using default %s. "
            "Expected one of: true/1/yes or false/0/no.",
            value,
            default,
        )
        return default
    return normalised in ("1", "true", "yes")


def _parse_number(name: str, value: Any, default: float, cast: type = float) -> Any:
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except (TypeError, ValueError):
        logger.warning("Invalid value %r for %s, using default %s", value, name, default)
        return default


def _build_config(values: dict[str, Any]) -> ManagerConfig:
    client = ClientConfig(
        endpoint=str(values.get("endpoint") or DEFAULT_API_ENDPOINT),
        timeout=_parse_number("timeout", values.get("timeout"), DEFAULT_TIMEOUT),
        max_retries=_parse_number("max_retries", values.get("max_retries"), DEFAULT_MAX_RETRIES, int),
        retry_delay=_parse_number("retry_delay", values.get("retry_delay"), DEFAULT_RETRY_DELAY),
    )
    ttl_seconds = _parse_number("cache_ttl", values.get("cache_ttl"), DEFAULT_CACHE_TTL.total_seconds())
    if ttl_seconds <= 0:
        logger.warning("Non-positive cache_ttl %s, using default %s", ttl_seconds, DEFAULT_CACHE_TTL)
        ttl_seconds = DEFAULT_CACHE_TTL.total_seconds()
    cache_path = values.get("cache_path")
    cache = CacheConfig(
        path=Path(cache_path).expanduser() if cache_path else default_cache_path(),
        ttl=timedelta(seconds=ttl_seconds),
    )
    offline = values.get("offline")
    if not isinstance(offline, bool):
        offline = _parse_bool(str(offline) if offline is not None else "", False)
    return ManagerConfig(cache=cache, client=client.normalized(), offline=offline)


def load_config_from_env() -> ManagerConfig:
    """Build a ManagerConfig from ``KBKEYS_*`` environment variables."""
    env = os.environ
    return _build_config({
        "endpoint": env.get("KBKEYS_API_ENDPOINT"),
        "timeout": env.get("KBKEYS_API_TIMEOUT"),
        "max_retries": env.get("KBKEYS_MAX_RETRIES"),
        "retry_delay": env.get("KBKEYS_RETRY_DELAY"),
        "cache_path": env.get("KBKEYS_CACHE_PATH"),
        "cache_ttl": env.get("KBKEYS_CACHE_TTL"),
        "offline": env.get("KBKEYS_OFFLINE", ""),
    })


def load_config_file(path: Path) -> ManagerConfig:
    """Load a ManagerConfig from a YAML file. Raises ConfigError if invalid."""
    if not path.exists():
        raise ConfigError(f"Config not found at {path}")
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config: expected a mapping in {path}")
    return _build_config(data)

