"""mogilefs-client: a minimal MogileFS tracker client."""

from .client import MogileClient, build_close_fields
from .config import ClientConfig, TrackerEndpoint, load_client_config
from .constants import CLIENT_VERSION
from .errors import (
    ConfigError,
    MogileError,
    ProtocolError,
    TrackerConnectionError,
    TrackerIOError,
    UploadError,
)

__version__ = CLIENT_VERSION

__all__ = [
    "ClientConfig",
    "ConfigError",
    "MogileClient",
    "MogileError",
    "ProtocolError",
    "TrackerConnectionError",
    "TrackerEndpoint",
    "TrackerIOError",
    "UploadError",
    "build_close_fields",
    "load_client_config",
]
