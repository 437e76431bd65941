"""Error taxonomy for websocket sessions.

Every failure a session can hit is one of these.  ``str()`` of a closure
mirrors the text a websocket stack prints for a close frame
(``close 1008 (policy violation): <reason>``) so the classifier can work on
plain text as well as on typed errors.
"""

from __future__ import annotations

CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_NO_STATUS = 1005
CLOSE_ABNORMAL = 1006
CLOSE_POLICY_VIOLATION = 1008
CLOSE_MESSAGE_TOO_BIG = 1009
CLOSE_INTERNAL_ERROR = 1011

GRACEFUL_CLOSE_CODES = frozenset({CLOSE_NORMAL, CLOSE_GOING_AWAY, CLOSE_NO_STATUS})

_CLOSE_LABELS = {
    CLOSE_NORMAL: "normal",
    CLOSE_GOING_AWAY: "going away",
    CLOSE_NO_STATUS: "no status",
    CLOSE_ABNORMAL: "abnormal closure",
    CLOSE_POLICY_VIOLATION: "policy violation",
    CLOSE_MESSAGE_TOO_BIG: "message too big",
    CLOSE_INTERNAL_ERROR: "internal server error",
}


class SessionError(Exception):
    """Base error for exec / log session failures."""


class ConnectFailure(SessionError):
    """The websocket could not be established."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteClosure(SessionError):
    """The connection ended with a close code."""

    def __init__(self, code: int, reason: str = "") -> None:
        self.code = code
        self.reason = reason
        label = _CLOSE_LABELS.get(code, "unknown")
        text = f"close {code} ({label})"
        if reason:
            text = f"{text}: {reason}"
        super().__init__(text)

    @property
    def graceful(self) -> bool:
        return self.code in GRACEFUL_CLOSE_CODES


class PolicyViolation(RemoteClosure):
    """Close 1008: the control plane refused the session."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(CLOSE_POLICY_VIOLATION, reason)


class ProtocolDecodeError(SessionError):
    """A frame could not be decoded as a message."""


class SizeExceeded(SessionError):
    """A message payload is larger than the wire allows."""


class NotConnected(SessionError):
    """An operation needed a live connection and there was none."""


class LocalTerminalError(SessionError):
    """The local terminal could not be switched into (or out of) raw mode."""


def closure_for(code: int, reason: str = "") -> RemoteClosure:
    """Build the most specific closure error for *code*."""
    if code == CLOSE_POLICY_VIOLATION:
        return PolicyViolation(reason)
    return RemoteClosure(code, reason)
