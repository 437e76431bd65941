"""Websocket session layer: wire codec, transport, failure classification."""

from .classify import classify
from .errors import (
    ConnectFailure,
    LocalTerminalError,
    NotConnected,
    PolicyViolation,
    ProtocolDecodeError,
    RemoteClosure,
    SessionError,
    SizeExceeded,
)
from .message import MAX_PAYLOAD, Message, MessageType, decode, encode
from .transport import SessionTransport

__all__ = [
    "MAX_PAYLOAD",
    "ConnectFailure",
    "LocalTerminalError",
    "Message",
    "MessageType",
    "NotConnected",
    "PolicyViolation",
    "ProtocolDecodeError",
    "RemoteClosure",
    "SessionError",
    "SessionTransport",
    "SizeExceeded",
    "classify",
    "decode",
    "encode",
]
