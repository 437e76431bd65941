"""Wire message for exec and log sessions.

Every websocket binary frame carries exactly one msgpack-encoded map::

    {"type": 1, "data": b"...", "microserviceUuid": "...",
     "execId": "...", "timestamp": 1718000000000}

Keys are field names, so decoders ignore fields they do not know about and
the format can grow without breaking older peers.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass

import msgpack

from .errors import ProtocolDecodeError, SizeExceeded

MAX_PAYLOAD = 1024 * 1024  # 1 MiB

_FIELD_TYPE = "type"
_FIELD_DATA = "data"
_FIELD_TARGET = "microserviceUuid"
_FIELD_SESSION = "execId"
_FIELD_TIMESTAMP = "timestamp"


class MessageType(enum.IntEnum):
    STDIN = 0
    STDOUT = 1
    STDERR = 2
    CONTROL = 3
    CLOSE = 4
    ACTIVATION = 5
    # Log streams use their own range.
    LOG_LINE = 6
    LOG_START = 7
    LOG_STOP = 8
    LOG_ERROR = 9


_KNOWN_TYPES = frozenset(int(t) for t in MessageType)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Message:
    """One decoded frame.  Immutable once built."""

    type: int
    data: bytes = b""
    target_id: str = ""
    session_id: str = ""
    timestamp: int = 0

    @classmethod
    def new(
        cls,
        msg_type: int,
        data: bytes = b"",
        target_id: str = "",
        session_id: str = "",
    ) -> Message:
        """Build a message stamped with the current time."""
        return cls(
            type=int(msg_type),
            data=bytes(data or b""),
            target_id=target_id,
            session_id=session_id,
            timestamp=now_ms(),
        )

    def is_stdin(self) -> bool:
        return self.type == MessageType.STDIN

    def is_stdout(self) -> bool:
        return self.type == MessageType.STDOUT

    def is_stderr(self) -> bool:
        return self.type == MessageType.STDERR

    def is_control(self) -> bool:
        return self.type == MessageType.CONTROL

    def is_close(self) -> bool:
        return self.type == MessageType.CLOSE

    def is_activation(self) -> bool:
        return self.type == MessageType.ACTIVATION

    def is_log_line(self) -> bool:
        return self.type == MessageType.LOG_LINE

    def is_log_start(self) -> bool:
        return self.type == MessageType.LOG_START

    def is_log_stop(self) -> bool:
        return self.type == MessageType.LOG_STOP

    def is_log_error(self) -> bool:
        return self.type == MessageType.LOG_ERROR


def encode(msg: Message) -> bytes:
    """Serialize *msg* to one msgpack frame.

    Raises:
        SizeExceeded: payload is larger than :data:`MAX_PAYLOAD`.
    """
    if len(msg.data) > MAX_PAYLOAD:
        raise SizeExceeded(
            f"payload size {len(msg.data)} exceeds maximum allowed size of {MAX_PAYLOAD} bytes"
        )
    return msgpack.packb(
        {
            _FIELD_TYPE: int(msg.type),
            _FIELD_DATA: bytes(msg.data),
            _FIELD_TARGET: msg.target_id,
            _FIELD_SESSION: msg.session_id,
            _FIELD_TIMESTAMP: int(msg.timestamp),
        },
        use_bin_type=True,
    )


def decode(raw: bytes) -> Message:
    """Parse one msgpack frame.

    Raises:
        ProtocolDecodeError: *raw* is not a msgpack map with sane field types,
            or the type is not a known :class:`MessageType`.
        SizeExceeded: payload is larger than :data:`MAX_PAYLOAD`.
    """
    try:
        fields = msgpack.unpackb(raw, raw=False)
    except (ValueError, TypeError, msgpack.UnpackException) as exc:
        raise ProtocolDecodeError(f"failed to decode MessagePack data: {exc}") from exc
    if not isinstance(fields, dict):
        raise ProtocolDecodeError(
            f"failed to decode MessagePack data: expected map, got {type(fields).__name__}"
        )

    msg_type = fields.get(_FIELD_TYPE, 0)
    if isinstance(msg_type, bool) or not isinstance(msg_type, int):
        raise ProtocolDecodeError(f"invalid message type: {msg_type!r}")
    if msg_type not in _KNOWN_TYPES:
        raise ProtocolDecodeError(f"unknown message type: {msg_type}")

    data = fields.get(_FIELD_DATA)
    if data is None:
        data = b""
    elif isinstance(data, str):
        data = data.encode("utf-8")
    elif not isinstance(data, (bytes, bytearray)):
        raise ProtocolDecodeError(f"invalid message data: {type(data).__name__}")
    if len(data) > MAX_PAYLOAD:
        raise SizeExceeded(
            f"payload size {len(data)} exceeds maximum allowed size of {MAX_PAYLOAD} bytes"
        )

    timestamp = fields.get(_FIELD_TIMESTAMP) or 0
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        raise ProtocolDecodeError(f"invalid message timestamp: {timestamp!r}")

    return Message(
        type=msg_type,
        data=bytes(data),
        target_id=_text_field(fields, _FIELD_TARGET),
        session_id=_text_field(fields, _FIELD_SESSION),
        timestamp=timestamp,
    )


def _text_field(fields: dict, key: str) -> str:
    value = fields.get(key)
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if not isinstance(value, str):
        raise ProtocolDecodeError(f"invalid {key}: {value!r}")
    return value
