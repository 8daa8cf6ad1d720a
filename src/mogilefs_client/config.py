"""Client configuration and loading helpers."""

import logging
import os
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import (
    DEFAULT_LINGER,
    DEFAULT_TIMEOUT,
    DEFAULT_TRACKER_PORT,
    ENV_TIMEOUT,
    ENV_TRACKERS,
)
from .errors import ConfigError

logger = logging.getLogger(__name__)


class TrackerEndpoint(BaseModel):
    """A single tracker address. Immutable and hashable."""
    model_config = ConfigDict(frozen=True)

    host: str = Field(..., min_length=1)
    port: int = Field(DEFAULT_TRACKER_PORT, ge=1, le=65535)

    @classmethod
    def parse(cls, value: Union[str, "TrackerEndpoint", dict, tuple]) -> "TrackerEndpoint":
        """
        Build an endpoint from ``host:port``, ``host``, a mapping or a pair.

        Raises:
            ConfigError: If the value cannot be interpreted
        """
        if isinstance(value, TrackerEndpoint):
            return value
        try:
            if isinstance(value, dict):
                return cls(**value)
            if isinstance(value, (tuple, list)):
                host, port = value
                return cls(host=host, port=port)
            if isinstance(value, str):
                text = value.strip()
                # [::1]:7001 style IPv6 literals
                if text.startswith("["):
                    host, _, rest = text[1:].partition("]")
                    port = rest[1:] if rest.startswith(":") else ""
                elif text.count(":") == 1:
                    host, port = text.split(":")
                else:
                    host, port = text, ""
                if port:
                    return cls(host=host, port=int(port))
                return cls(host=host)
        except (ValueError, TypeError, ValidationError) as e:
            raise ConfigError(f"Invalid tracker address {value!r}: {e}") from e
        raise ConfigError(f"Invalid tracker address {value!r}")

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


class ClientConfig(BaseModel):
    """
    Everything a MogileClient needs: tracker endpoints and one timeout.

    Endpoint order is failover priority and never changes. The timeout
    (seconds) applies to tracker connect, tracker read/write and storage
    uploads alike. ``linger`` is the SO_LINGER interval set on store
    connections so the request line is delivered before the socket closes.
    """
    model_config = ConfigDict(frozen=True)

    trackers: Tuple[TrackerEndpoint, ...]
    timeout: float = Field(DEFAULT_TIMEOUT, gt=0)
    linger: Optional[int] = Field(DEFAULT_LINGER, ge=0)

    @field_validator("trackers", mode="before")
    @classmethod
    def parse_trackers(cls, v: Any) -> Tuple[TrackerEndpoint, ...]:
        if isinstance(v, str):
            v = split_tracker_list(v)
        return tuple(TrackerEndpoint.parse(item) for item in v)

    @field_validator("trackers")
    @classmethod
    def require_trackers(cls, v: Tuple[TrackerEndpoint, ...]) -> Tuple[TrackerEndpoint, ...]:
        if not v:
            raise ValueError("at least one tracker is required")
        return v


def split_tracker_list(value: str) -> list:
    """Split a comma/whitespace separated ``host:port`` list."""
    return [item for item in value.replace(",", " ").split() if item]


def _read_config_file(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    # Accept both a bare mapping and one nested under "mogilefs:"
    return data.get("mogilefs", data)


def load_client_config(
    path: Optional[Path] = None,
    trackers: Optional[Iterable[str]] = None,
    timeout: Optional[float] = None,
) -> ClientConfig:
    """
    Resolve configuration from arguments, environment and a YAML file.

    Resolution order for each setting: explicit argument, then environment
    (MOGILEFS_TRACKERS, MOGILEFS_TIMEOUT), then the YAML file, then defaults.

    Args:
        path: Optional YAML file with ``trackers``, ``timeout`` and ``linger``
        trackers: Tracker addresses as ``host:port`` strings
        timeout: Timeout in seconds

    Returns:
        Validated ClientConfig

    Raises:
        ConfigError: If no trackers are configured or a value is invalid
    """
    settings: dict = {}
    if path is not None:
        settings.update(_read_config_file(Path(path)))
        logger.debug("Loaded client config from %s", path)

    env_trackers = os.environ.get(ENV_TRACKERS)
    if env_trackers:
        settings["trackers"] = split_tracker_list(env_trackers)
    env_timeout = os.environ.get(ENV_TIMEOUT)
    if env_timeout:
        settings["timeout"] = env_timeout

    trackers = list(trackers) if trackers else []
    if trackers:
        settings["trackers"] = trackers
    if timeout is not None:
        settings["timeout"] = timeout

    if not settings.get("trackers"):
        raise ConfigError(
            f"No trackers configured. Pass --tracker HOST:PORT, set {ENV_TRACKERS} "
            f"or list them under 'trackers:' in a config file."
        )

    try:
        return ClientConfig(**settings)
    except ValidationError as e:
        raise ConfigError(f"Invalid client configuration: {e}") from e
