"""Wire codec for the tracker line protocol.

Requests are a single line of the form::

    COMMAND&key1=value1&key2=value2

with values percent-encoded and keys sent verbatim. Responses are a single
line starting with ``OK `` (followed by ``key=value`` pairs joined by ``&``)
or ``ERR `` (followed by an error code and a free-text message).
"""

import urllib.parse
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

from .constants import RESPONSE_ERR, RESPONSE_OK
from .errors import ProtocolError


class RawValue(str):
    """A field value that is already percent-encoded and is sent verbatim."""
    __slots__ = ()


FieldValue = Union[str, bytes, RawValue]
Fields = Union[Mapping[str, FieldValue], Iterable[Tuple[str, FieldValue]]]


def encode_field(value: Union[str, bytes]) -> str:
    """Percent-encode a field value.

    Only the unreserved set (ASCII letters, digits, ``-``, ``_``, ``.``,
    ``~``) passes through; every other byte becomes ``%XX`` with uppercase
    hex digits. Text is UTF-8 encoded first.
    """
    return urllib.parse.quote(value, safe="")


def decode_field(value: str) -> str:
    """Decode a value returned by the tracker (``+`` is a space)."""
    return urllib.parse.unquote_plus(value)


def _iter_fields(fields: Fields) -> Iterable[Tuple[str, FieldValue]]:
    if isinstance(fields, Mapping):
        return fields.items()
    return fields


def build_request(command: str, fields: Fields = ()) -> str:
    """Render a request line without the terminating newline."""
    parts = [command]
    for key, value in _iter_fields(fields):
        if isinstance(value, RawValue):
            parts.append(f"{key}={value}")
        else:
            parts.append(f"{key}={encode_field(value)}")
    return "&".join(parts)


@dataclass(frozen=True)
class TrackerRequest:
    """A tracker command and its ordered fields."""
    command: str
    fields: Tuple[Tuple[str, FieldValue], ...] = ()

    def render(self) -> str:
        return build_request(self.command, self.fields)


@dataclass(frozen=True)
class TrackerSuccess:
    """``OK`` response. Field values are kept exactly as received."""
    fields: Dict[str, str] = field(default_factory=dict)
    raw: str = ""

    ok = True

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.fields.get(name, default)

    def decoded(self, name: str) -> Optional[str]:
        value = self.fields.get(name)
        return decode_field(value) if value is not None else None


@dataclass(frozen=True)
class TrackerFailure:
    """``ERR`` response."""
    code: str
    message: str = ""
    raw: str = ""

    ok = False


TrackerResponse = Union[TrackerSuccess, TrackerFailure]


def _parse_pairs(payload: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for pair in payload.split("&"):
        if not pair:
            continue
        key, _, value = pair.partition("=")
        fields[key] = value
    return fields


def parse_response(line: str) -> TrackerResponse:
    """Parse one tracker response line.

    Raises:
        ProtocolError: If the line is empty or has an unknown prefix
    """
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]

    if not line:
        raise ProtocolError("empty response", line)

    if line.startswith(RESPONSE_OK):
        return TrackerSuccess(fields=_parse_pairs(line[len(RESPONSE_OK):]), raw=line)

    if line.startswith(RESPONSE_ERR):
        code, _, message = line[len(RESPONSE_ERR):].partition(" ")
        if not code:
            raise ProtocolError("malformed error response", line)
        return TrackerFailure(code=code, message=decode_field(message), raw=line)

    raise ProtocolError("unrecognized response", line)
