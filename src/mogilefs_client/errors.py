"""Custom exceptions for mogilefs-client.

This module defines typed exceptions so callers can tell an unreachable
tracker apart from a misbehaving one or from a failed storage upload.
"""

from typing import List, Optional, Tuple


class MogileError(RuntimeError):
    """Base class for all mogilefs-client errors."""
    pass


# Tracker Errors
class TrackerConnectionError(MogileError):
    """No tracker endpoint could be reached within the timeout."""

    def __init__(self, attempts: List[Tuple[str, str]]):
        self.attempts = attempts
        if attempts:
            reasons = "; ".join(f"{endpoint}: {reason}" for endpoint, reason in attempts)
        else:
            reasons = "no trackers configured"
        super().__init__(f"Could not connect to any tracker ({reasons})")


class TrackerIOError(MogileError):
    """Socket error or premature EOF after a tracker connection was established."""
    pass


class ProtocolError(MogileError):
    """Tracker response was empty, malformed or reported an unexpected error."""

    def __init__(self, message: str, response: Optional[str] = None):
        self.response = response
        if response is not None:
            message = f"{message}: {response!r}"
        super().__init__(message)


# Storage Errors
class UploadError(MogileError):
    """HTTP PUT to a storage node failed or did not answer 201."""

    def __init__(self, url: str, status_code: Optional[int] = None, reason: Optional[str] = None):
        self.url = url
        self.status_code = status_code
        if status_code is not None:
            detail = f"storage node answered {status_code}, expected 201"
        else:
            detail = reason or "transport failure"
        super().__init__(f"Upload to {url} failed: {detail}")


# Configuration Errors
class ConfigError(MogileError):
    """Invalid or incomplete client configuration."""
    pass
