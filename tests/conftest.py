"""Shared test fixtures: a scripted fake tracker and a fake HTTP transport."""

import socket
import socketserver
import threading
from typing import Dict, List, Optional

import pytest

from mogilefs_client.client import MogileClient
from mogilefs_client.config import ClientConfig, TrackerEndpoint


class FakeTracker:
    """
    Threaded TCP tracker double.

    Each accepted connection reads one request line, records it and answers
    with the next scripted response. A scripted ``None`` sends nothing.
    """

    def __init__(self, responses: Optional[List[Optional[str]]] = None):
        self.responses = list(responses or [])
        self.requests: List[str] = []
        self._cond = threading.Condition()
        tracker = self

        class Handler(socketserver.StreamRequestHandler):
            def handle(self):
                line = self.rfile.readline()
                with tracker._cond:
                    if line:
                        tracker.requests.append(line.decode().rstrip("\r\n"))
                    reply = tracker.responses.pop(0) if tracker.responses else None
                    tracker._cond.notify_all()
                if reply is not None:
                    self.wfile.write(reply.encode() + b"\r\n")
                    self.wfile.flush()

        self.server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), Handler)
        self.server.daemon_threads = True
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)

    @property
    def endpoint(self) -> TrackerEndpoint:
        host, port = self.server.server_address[:2]
        return TrackerEndpoint(host=host, port=port)

    def script(self, *responses: Optional[str]) -> None:
        with self._cond:
            self.responses.extend(responses)

    def wait_for(self, count: int, timeout: float = 5.0) -> List[str]:
        """Block until ``count`` request lines have been recorded."""
        with self._cond:
            self._cond.wait_for(lambda: len(self.requests) >= count, timeout=timeout)
            return list(self.requests)

    def start(self) -> "FakeTracker":
        self.thread.start()
        return self

    def stop(self) -> None:
        self.server.shutdown()
        self.server.server_close()


class FakeTransport:
    """HttpTransport double recording every PUT."""

    def __init__(self, status: int = 201):
        self.status = status
        self.calls: List[Dict] = []

    def put(self, url, body, headers, timeout):
        self.calls.append({
            "url": url,
            "body": body.read(),
            "length": len(body),
            "headers": dict(headers),
            "timeout": timeout,
        })
        return self.status


def parse_fields(line: str) -> Dict[str, str]:
    """Split a request line into its command-less field mapping."""
    _, _, rest = line.partition("&")
    return dict(pair.split("=", 1) for pair in rest.split("&") if pair)


@pytest.fixture
def fake_tracker():
    """Running FakeTracker; stopped after the test."""
    tracker = FakeTracker().start()
    yield tracker
    tracker.stop()


@pytest.fixture
def closed_port():
    """A localhost port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return port


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def make_client(fake_transport):
    """Factory for a client against the given endpoints using the fake transport."""
    def _make(*endpoints, timeout: float = 2.0, transport=None):
        config = ClientConfig(trackers=endpoints, timeout=timeout)
        return MogileClient(config, transport=transport or fake_transport)
    return _make
