"""Tests for tracker connections and ordered failover."""

import socket
import struct

import pytest

from mogilefs_client.config import TrackerEndpoint
from mogilefs_client.errors import TrackerConnectionError, TrackerIOError
from mogilefs_client.protocol import TrackerFailure, TrackerSuccess
from mogilefs_client.tracker import ConnectState, Failover, TrackerConnector

A = TrackerEndpoint(host="tracker-a", port=7001)
B = TrackerEndpoint(host="tracker-b", port=7002)
C = TrackerEndpoint(host="tracker-c", port=7003)


class RecordingFactory:
    """socket_factory double: refuses listed hosts, hands out socketpairs otherwise."""

    def __init__(self, refuse=()):
        self.refuse = set(refuse)
        self.calls = []
        self.peers = []

    def __call__(self, address, timeout=None):
        self.calls.append((address, timeout))
        host, _ = address
        if host in self.refuse:
            raise ConnectionRefusedError(111, f"Connection refused by {host}")
        ours, theirs = socket.socketpair()
        self.peers.append(theirs)
        return ours

    def close(self):
        for peer in self.peers:
            peer.close()


@pytest.fixture
def factory():
    f = RecordingFactory()
    yield f
    f.close()


class TestFailoverStateMachine:
    """Failover walks endpoints strictly in order."""

    def test_starts_trying_first_endpoint(self):
        failover = Failover([A, B])
        assert failover.state is ConnectState.TRYING
        assert failover.current == A

    def test_failure_advances_to_next(self):
        failover = Failover([A, B])
        failover.failed("refused")
        assert failover.state is ConnectState.TRYING
        assert failover.current == B

    def test_success_stops_walk(self):
        failover = Failover([A, B])
        assert failover.succeeded() == A
        assert failover.state is ConnectState.CONNECTED

    def test_last_failure_exhausts(self):
        failover = Failover([A, B])
        failover.failed("refused")
        failover.failed("timed out")
        assert failover.state is ConnectState.EXHAUSTED
        assert [a.endpoint for a in failover.attempts] == [A, B]
        with pytest.raises(RuntimeError):
            failover.current

    def test_empty_list_is_exhausted(self):
        assert Failover([]).state is ConnectState.EXHAUSTED

    def test_error_lists_every_attempt(self):
        failover = Failover([A, B])
        failover.failed("refused")
        failover.failed("timed out")
        error = failover.error()
        assert error.attempts == [("tracker-a:7001", "refused"), ("tracker-b:7002", "timed out")]


class TestTrackerConnector:
    """Connecting through the socket factory."""

    def test_first_reachable_endpoint_wins(self, factory):
        conn = TrackerConnector([A, B], timeout=3, socket_factory=factory).connect()
        try:
            assert conn.endpoint == A
            assert factory.calls == [(("tracker-a", 7001), 3)]
        finally:
            conn.close()

    def test_fails_over_to_second_and_stops(self, factory):
        factory.refuse = {"tracker-a"}
        conn = TrackerConnector([A, B, C], timeout=3, socket_factory=factory).connect()
        try:
            assert conn.endpoint == B
            assert [call[0][0] for call in factory.calls] == ["tracker-a", "tracker-b"]
        finally:
            conn.close()

    def test_all_refused_raises_with_each_reason(self, factory):
        factory.refuse = {"tracker-a", "tracker-b"}
        with pytest.raises(TrackerConnectionError) as exc_info:
            TrackerConnector([A, B], timeout=3, socket_factory=factory).connect()
        error = exc_info.value
        assert [endpoint for endpoint, _ in error.attempts] == ["tracker-a:7001", "tracker-b:7002"]
        assert all("refused" in reason for _, reason in error.attempts)
        assert len(factory.calls) == 2

    def test_each_endpoint_tried_once(self, factory):
        factory.refuse = {"tracker-a"}
        with pytest.raises(TrackerConnectionError):
            TrackerConnector([A], timeout=1, socket_factory=factory).connect()
        assert len(factory.calls) == 1

    def test_timeout_counts_as_failure(self):
        def timing_out(address, timeout=None):
            raise socket.timeout("timed out")

        with pytest.raises(TrackerConnectionError, match="timed out"):
            TrackerConnector([A], timeout=1, socket_factory=timing_out).connect()

    def test_real_refused_then_listening(self, closed_port, fake_tracker):
        refused = TrackerEndpoint(host="127.0.0.1", port=closed_port)
        conn = TrackerConnector([refused, fake_tracker.endpoint], timeout=2).connect()
        with conn:
            assert conn.endpoint == fake_tracker.endpoint


class TestTrackerConnection:
    """Line exchange over an open connection."""

    def test_request_round_trip(self, fake_tracker):
        fake_tracker.script("OK path=/x&devid=3")
        with TrackerConnector([fake_tracker.endpoint], timeout=2).connect() as conn:
            response = conn.request("GET_PATHS", [("domain", "d"), ("key", "k")])
        assert isinstance(response, TrackerSuccess)
        assert response.fields == {"path": "/x", "devid": "3"}
        assert fake_tracker.wait_for(1) == ["GET_PATHS&domain=d&key=k"]

    def test_failure_response(self, fake_tracker):
        fake_tracker.script("ERR unknown_key unknown_key")
        with TrackerConnector([fake_tracker.endpoint], timeout=2).connect() as conn:
            response = conn.request("GET_PATHS", [("domain", "d"), ("key", "k")])
        assert isinstance(response, TrackerFailure)
        assert response.code == "unknown_key"

    def test_eof_before_line_is_io_error(self, fake_tracker):
        fake_tracker.script(None)
        with TrackerConnector([fake_tracker.endpoint], timeout=2).connect() as conn:
            conn.send("GET_PATHS&domain=d&key=k")
            with pytest.raises(TrackerIOError, match="without a response"):
                conn.read_line()

    def test_read_timeout_is_io_error(self, factory):
        with TrackerConnector([A], timeout=0.1, socket_factory=factory).connect() as conn:
            with pytest.raises(TrackerIOError):
                conn.read_line()

    def test_close_is_idempotent(self, factory):
        conn = TrackerConnector([A], timeout=1, socket_factory=factory).connect()
        conn.close()
        conn.close()


class TestLingerOption:
    """SO_LINGER on tracker sockets."""

    def test_linger_is_set_on_socket(self, fake_tracker):
        with TrackerConnector([fake_tracker.endpoint], timeout=2).connect(linger=5) as conn:
            raw = conn._sock.getsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.calcsize("ii"))
        assert struct.unpack("ii", raw) == (1, 5)

    def test_no_linger_by_default(self, fake_tracker):
        with TrackerConnector([fake_tracker.endpoint], timeout=2).connect() as conn:
            raw = conn._sock.getsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.calcsize("ii"))
        assert struct.unpack("ii", raw)[0] == 0
