"""Tracker connections with ordered failover.

A connection is opened per call and never pooled. Endpoints are tried in
the configured order, each exactly once; the first that accepts a TCP
connection wins.
"""

import logging
import socket
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from .config import TrackerEndpoint
from .errors import TrackerConnectionError, TrackerIOError
from .protocol import Fields, TrackerResponse, build_request, parse_response

logger = logging.getLogger(__name__)

SocketFactory = Callable[..., socket.socket]


class ConnectState(str, Enum):
    """State of a failover walk over the endpoint list."""
    TRYING = "trying"
    CONNECTED = "connected"
    EXHAUSTED = "exhausted"


@dataclass
class FailoverAttempt:
    """One failed connect attempt."""
    endpoint: TrackerEndpoint
    reason: str


@dataclass
class Failover:
    """
    Explicit state machine for trying endpoints in priority order.

    TRYING(i) moves to CONNECTED on success, or to TRYING(i+1) on failure,
    and to EXHAUSTED once the last endpoint has failed.
    """
    endpoints: Sequence[TrackerEndpoint]
    index: int = 0
    state: ConnectState = ConnectState.TRYING
    attempts: List[FailoverAttempt] = field(default_factory=list)

    def __post_init__(self):
        if not self.endpoints:
            self.state = ConnectState.EXHAUSTED

    @property
    def current(self) -> TrackerEndpoint:
        if self.state is not ConnectState.TRYING:
            raise RuntimeError(f"No endpoint to try in state {self.state.value}")
        return self.endpoints[self.index]

    def succeeded(self) -> TrackerEndpoint:
        endpoint = self.current
        self.state = ConnectState.CONNECTED
        return endpoint

    def failed(self, reason: str) -> None:
        self.attempts.append(FailoverAttempt(self.current, reason))
        self.index += 1
        if self.index >= len(self.endpoints):
            self.state = ConnectState.EXHAUSTED

    def error(self) -> TrackerConnectionError:
        return TrackerConnectionError([(str(a.endpoint), a.reason) for a in self.attempts])


class TrackerConnection:
    """Blocking, line-oriented connection to one tracker."""

    def __init__(self, sock: socket.socket, endpoint: TrackerEndpoint):
        self.endpoint = endpoint
        self._sock = sock
        self._file = sock.makefile("rwb")
        self._closed = False

    def send(self, line: str) -> None:
        """Write one request line and flush it.

        Raises:
            TrackerIOError: If the socket fails
        """
        logger.debug("-> %s %s", self.endpoint, line)
        try:
            self._file.write(line.encode("utf-8") + b"\n")
            self._file.flush()
        except OSError as e:
            raise TrackerIOError(f"Write to tracker {self.endpoint} failed: {e}") from e

    def read_line(self) -> str:
        """Read exactly one response line.

        Raises:
            TrackerIOError: If the socket fails or closes before any data arrives
        """
        try:
            data = self._file.readline()
        except OSError as e:
            raise TrackerIOError(f"Read from tracker {self.endpoint} failed: {e}") from e
        if not data:
            raise TrackerIOError(f"Tracker {self.endpoint} closed the connection without a response")
        line = data.decode("utf-8", errors="replace").rstrip("\n")
        logger.debug("<- %s %s", self.endpoint, line)
        return line

    def request(self, command: str, fields: Fields = ()) -> TrackerResponse:
        """Send a command and parse the single response line."""
        self.send(build_request(command, fields))
        return parse_response(self.read_line())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._file.close()
        finally:
            self._sock.close()

    def __enter__(self) -> "TrackerConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class TrackerConnector:
    """Opens a connection to the first reachable tracker."""

    def __init__(
        self,
        endpoints: Sequence[TrackerEndpoint],
        timeout: float,
        socket_factory: SocketFactory = socket.create_connection,
    ):
        """
        Args:
            endpoints: Trackers in failover priority order
            timeout: Seconds allowed for each connect and each read/write
            socket_factory: ``socket.create_connection`` compatible callable
        """
        self.endpoints = tuple(endpoints)
        self.timeout = timeout
        self._socket_factory = socket_factory

    def connect(self, linger: Optional[int] = None) -> TrackerConnection:
        """
        Connect to the first endpoint that accepts a connection.

        Args:
            linger: Optional SO_LINGER interval in seconds for the socket

        Returns:
            An open TrackerConnection

        Raises:
            TrackerConnectionError: If every endpoint failed, listing each reason
        """
        failover = Failover(self.endpoints)
        while failover.state is ConnectState.TRYING:
            endpoint = failover.current
            logger.debug("Connecting to tracker %s", endpoint)
            try:
                sock = self._socket_factory((endpoint.host, endpoint.port), timeout=self.timeout)
            except OSError as e:
                reason = str(e) or type(e).__name__
                logger.warning("Tracker %s unreachable: %s", endpoint, reason)
                failover.failed(reason)
                continue

            try:
                sock.settimeout(self.timeout)
                if linger is not None:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, linger))
            except OSError as e:
                sock.close()
                logger.warning("Tracker %s socket setup failed: %s", endpoint, e)
                failover.failed(str(e) or type(e).__name__)
                continue

            failover.succeeded()
            return TrackerConnection(sock, endpoint)

        raise failover.error()
