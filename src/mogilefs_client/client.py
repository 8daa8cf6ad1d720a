"""MogileFS tracker client: existence check and two-phase store."""

import logging
from typing import Iterable, List, Optional, Tuple, Union

from .config import ClientConfig, TrackerEndpoint
from .constants import (
    CMD_CREATE_CLOSE,
    CMD_CREATE_OPEN,
    CMD_GET_PATHS,
    ERR_UNKNOWN_KEY,
    PATH_FIELD,
)
from .errors import ConfigError, ProtocolError
from .protocol import FieldValue, RawValue, TrackerSuccess, build_request, decode_field
from .tracker import SocketFactory, TrackerConnection, TrackerConnector
from .upload import BytesLike, HttpTransport, upload

logger = logging.getLogger(__name__)


def build_close_fields(
    key: str,
    open_response: TrackerSuccess,
    url: str,
    domain: str,
    storage_class: str,
) -> List[Tuple[str, FieldValue]]:
    """
    Assemble the CREATE_CLOSE fields from a CREATE_OPEN success.

    Every field the tracker returned except ``path`` (e.g. ``fid``, ``devid``)
    is echoed back with its value exactly as received. ``path`` is re-added
    last among them, encoded the same way as every other client value.
    Resulting order: key, echoed fields, path, domain, class.
    """
    fields: List[Tuple[str, FieldValue]] = [("key", key)]
    for name, value in open_response.fields.items():
        if name == PATH_FIELD:
            continue
        fields.append((name, RawValue(value)))
    fields.append((PATH_FIELD, url))
    fields.append(("domain", domain))
    fields.append(("class", storage_class))
    return fields


class MogileClient:
    """
    Client for a MogileFS tracker.

    Holds only an immutable ClientConfig; every call opens and closes its own
    tracker connection(s), so one instance can be shared between threads.
    """

    def __init__(
        self,
        config: Union[ClientConfig, Iterable[Union[str, TrackerEndpoint]]],
        timeout: Optional[float] = None,
        transport: Optional[HttpTransport] = None,
        socket_factory: Optional[SocketFactory] = None,
    ):
        """
        Args:
            config: ClientConfig, or tracker addresses in priority order
            timeout: Timeout in seconds; only valid with an address list
            transport: HTTP client for uploads (defaults to requests)
            socket_factory: Override for ``socket.create_connection``

        Raises:
            ConfigError: If ``timeout`` is given together with a ClientConfig
        """
        if isinstance(config, ClientConfig):
            if timeout is not None:
                raise ConfigError("Pass the timeout inside ClientConfig, not alongside it")
        else:
            settings = {"trackers": list(config)}
            if timeout is not None:
                settings["timeout"] = timeout
            config = ClientConfig(**settings)
        self.config = config
        self._transport = transport
        connector_kwargs = {"socket_factory": socket_factory} if socket_factory else {}
        self._connector = TrackerConnector(config.trackers, config.timeout, **connector_kwargs)

    def _connect(self, linger: Optional[int] = None) -> TrackerConnection:
        return self._connector.connect(linger=linger)

    def exists(self, key: str, domain: str) -> bool:
        """
        Check whether ``key`` exists in ``domain``.

        Returns:
            True if the tracker knows the key, False on ``ERR unknown_key``

        Raises:
            TrackerConnectionError: If no tracker is reachable
            TrackerIOError: If the exchange fails mid-way
            ProtocolError: On any other error code or a malformed response
        """
        with self._connect() as conn:
            response = conn.request(CMD_GET_PATHS, [("domain", domain), ("key", key)])

        if response.ok:
            return True
        if response.code == ERR_UNKNOWN_KEY:
            return False
        raise ProtocolError(f"{CMD_GET_PATHS} failed with {response.code}", response.raw)

    def put(self, key: str, data: Union[BytesLike, str], domain: str, storage_class: str) -> None:
        """
        Store ``data`` under ``key``.

        Reserves a location with CREATE_OPEN, uploads the bytes to the
        returned storage node URL and confirms with CREATE_CLOSE on a fresh
        connection. A failed upload leaves the reservation unconfirmed; it
        is not cleaned up.

        Raises:
            TrackerConnectionError: If no tracker is reachable
            TrackerIOError: If a tracker exchange fails mid-way
            ProtocolError: If CREATE_OPEN fails or returns no path
            UploadError: If the storage node does not answer 201
        """
        if isinstance(data, str):
            data = data.encode("utf-8")

        with self._connect(linger=self.config.linger) as conn:
            response = conn.request(
                CMD_CREATE_OPEN,
                [("domain", domain), ("class", storage_class), ("key", key)],
            )

        if not response.ok:
            raise ProtocolError(f"{CMD_CREATE_OPEN} failed with {response.code}", response.raw)
        raw_path = response.get(PATH_FIELD)
        if raw_path is None:
            raise ProtocolError("no path in response", response.raw)

        url = decode_field(raw_path)
        logger.info("Uploading %s/%s (%d bytes) to %s", domain, key, len(data), url)
        upload(data, url, self.config.timeout, transport=self._transport)

        close_fields = build_close_fields(key, response, url, domain, storage_class)
        with self._connect(linger=self.config.linger) as conn:
            conn.send(build_request(CMD_CREATE_CLOSE, close_fields))
        logger.debug("Closed %s/%s", domain, key)
