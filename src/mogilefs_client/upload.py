"""HTTP PUT of an in-memory buffer to a storage node."""

import logging
import socket
import threading
import time
from typing import Dict, Iterator, List, Optional, Protocol, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3 import HTTPConnectionPool
from urllib3.connection import HTTPConnection

from .constants import HTTP_CREATED
from .errors import UploadError

logger = logging.getLogger(__name__)

BytesLike = Union[bytes, bytearray, memoryview]

# Bytes handed to the transport per read
CHUNK_SIZE = 64 * 1024


class BufferReader:
    """
    Read-only file-like view over an in-memory buffer with a known length.

    Never yields more than ``len(self)`` bytes. When a ``deadline`` (a
    ``time.monotonic()`` value) is given, reads after it raise TimeoutError so
    a slow transfer is bounded as a whole, not only per socket operation.
    """

    def __init__(self, data: BytesLike, deadline: Optional[float] = None):
        self._view = memoryview(data).cast("B")
        self._pos = 0
        self._deadline = deadline

    def __len__(self) -> int:
        return len(self._view)

    def tell(self) -> int:
        return self._pos

    def read(self, size: int = -1) -> bytes:
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise TimeoutError("upload transfer deadline exceeded")
        remaining = len(self._view) - self._pos
        if size is None or size < 0 or size > remaining:
            size = remaining
        chunk = self._view[self._pos:self._pos + size].tobytes()
        self._pos += size
        return chunk

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read(CHUNK_SIZE)
            if not chunk:
                return
            yield chunk


class HttpTransport(Protocol):
    """Minimal HTTP client surface needed by the uploader."""

    def put(self, url: str, body: BufferReader, headers: Dict[str, str], timeout: float) -> int:
        """
        Send one PUT request and return the response status code.

        Raises:
            UploadError: On any transport-level failure
        """
        ...


class _WatchedAdapter(HTTPAdapter):
    """HTTPAdapter that remembers the sockets it opens so they can be cut off."""

    def __init__(self):
        self.sockets: List[socket.socket] = []
        super().__init__()

    def init_poolmanager(self, *args, **kwargs):
        super().init_poolmanager(*args, **kwargs)
        sockets = self.sockets

        class _Connection(HTTPConnection):
            def connect(self):
                super().connect()
                sockets.append(self.sock)

        class _Pool(HTTPConnectionPool):
            ConnectionCls = _Connection

        self.poolmanager.pool_classes_by_scheme = dict(
            self.poolmanager.pool_classes_by_scheme, http=_Pool
        )

    def abort(self) -> None:
        """Shut down every socket so a blocked send or recv returns at once."""
        for sock in self.sockets:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass


class RequestsTransport:
    """
    HttpTransport over a short-lived requests.Session.

    requests only bounds single socket operations, so a watchdog timer shuts
    the connection down once ``timeout`` seconds have passed since the start
    of the request, whatever phase it is in.
    """

    def put(self, url: str, body: BufferReader, headers: Dict[str, str], timeout: float) -> int:
        session = requests.Session()
        adapter = _WatchedAdapter()
        session.mount("http://", adapter)
        # requests never sends Expect itself; None also drops any inherited value
        session.headers["Expect"] = None
        # An empty file-like body would be sent chunked; plain bytes gets Content-Length: 0
        data = body if len(body) else b""

        expired = threading.Event()

        def _expire():
            expired.set()
            adapter.abort()

        watchdog = threading.Timer(timeout, _expire)
        watchdog.daemon = True
        watchdog.start()
        try:
            with session.put(url, data=data, headers=headers, timeout=(timeout, timeout)) as response:
                status = response.status_code
        except (requests.RequestException, OSError) as e:
            if expired.is_set():
                raise UploadError(url, reason=f"timed out after {timeout}s") from e
            raise UploadError(url, reason=str(e) or type(e).__name__) from e
        finally:
            watchdog.cancel()
            session.close()
        return status


def upload(
    data: BytesLike,
    url: str,
    timeout: float,
    transport: Optional[HttpTransport] = None,
) -> None:
    """
    PUT ``data`` to ``url`` and require a 201 answer.

    The body is streamed from memory with its exact length declared up front.

    Args:
        data: Object content
        url: Storage node URL returned by the tracker
        timeout: Seconds allowed for connecting and for the whole transfer
        transport: HTTP client to use (defaults to RequestsTransport)

    Raises:
        UploadError: On transport failure or any status other than 201
    """
    transport = transport or RequestsTransport()
    body = BufferReader(data, deadline=time.monotonic() + timeout)
    headers = {"Content-Length": str(len(body))}
    logger.debug("PUT %s (%d bytes)", url, len(body))
    status = transport.put(url, body, headers, timeout)
    logger.debug("PUT %s -> %s", url, status)
    if status != HTTP_CREATED:
        raise UploadError(url, status_code=status)
