"""Turn session failures into one actionable sentence for the operator.

Close reasons arrive as free text from the control plane, wrapped in
whatever the websocket stack adds around it.  The reason is dug out with an
ordered fallback chain, then mapped onto a fixed table of known phrases.
The chain order decides which message wins for ambiguous text, so keep it.
"""

from __future__ import annotations

import re

from .errors import (
    CLOSE_ABNORMAL,
    CLOSE_INTERNAL_ERROR,
    CLOSE_MESSAGE_TOO_BIG,
    CLOSE_POLICY_VIOLATION,
    ConnectFailure,
    RemoteClosure,
)

MSG_NO_EXEC_SESSION = (
    "No available exec session for this agent or microservice. Be sure to "
    "attach/link exec session to the agent or microservice first. If you already "
    "attached/linked exec session to the agent or microservice, please wait for "
    "the exec session to be ready."
)
MSG_NO_LOG_SESSION = (
    "No available log session for this agent or microservice. Please try again shortly."
)
MSG_ANOTHER_USER_CONNECTED = (
    "Another user is already connected to this microservice. "
    "Only one user can connect at a time."
)
MSG_TIMEOUT_WAITING_FOR_AGENT = (
    "Timeout waiting for agent connection. "
    "Please ensure the microservice/agent is running and try again."
)
MSG_AUTHENTICATION_FAILED = "Authentication failed. Please check your credentials and try again."
MSG_MICROSERVICE_NOT_RUNNING = "Microservice is not running. Please start the microservice first."
MSG_AGENT_NOT_RUNNING = "Agent is not running. Please start the agent first."
MSG_EXEC_NOT_ENABLED = (
    "Microservice exec is not enabled. Please enable exec for this microservice."
)
MSG_INSUFFICIENT_PERMISSIONS = (
    "Insufficient permissions. Required roles: SRE for Node Exec "
    "or Developer for Microservice Exec."
)
MSG_ONLY_SRE_ACCESS = (
    "Only SRE can access system microservices. Please contact your administrator."
)
MSG_POLICY_VIOLATION = "Policy violation: Access denied"
MSG_CONNECTION_LOST = "Connection lost unexpectedly"
MSG_MESSAGE_TOO_LARGE = "Message too large"
MSG_SERVER_ERROR = "Server error occurred"
MSG_FAILED_TO_CONNECT = "Failed to connect to server"

# Ordered: first phrase found wins.
_POLICY_PHRASES: tuple[tuple[str, str], ...] = (
    ("No available exec session", MSG_NO_EXEC_SESSION),
    ("No available log session", MSG_NO_LOG_SESSION),
    ("Microservice has already active exec session", MSG_ANOTHER_USER_CONNECTED),
    ("Microservice already has an active session", MSG_ANOTHER_USER_CONNECTED),
    ("Timeout waiting for agent connection", MSG_TIMEOUT_WAITING_FOR_AGENT),
    ("Authentication failed", MSG_AUTHENTICATION_FAILED),
    ("Microservice is not running", MSG_MICROSERVICE_NOT_RUNNING),
    ("Agent is not running", MSG_AGENT_NOT_RUNNING),
    ("Microservice exec is not enabled", MSG_EXEC_NOT_ENABLED),
    ("Insufficient permissions", MSG_INSUFFICIENT_PERMISSIONS),
    ("Only SRE can access system microservices", MSG_ONLY_SRE_ACCESS),
)

_SIMPLE_CODES = {
    CLOSE_ABNORMAL: MSG_CONNECTION_LOST,
    CLOSE_MESSAGE_TOO_BIG: MSG_MESSAGE_TOO_LARGE,
    CLOSE_INTERNAL_ERROR: MSG_SERVER_ERROR,
}

_CLOSE_CODE_RE = re.compile(r"close (\d{4})")
_POLICY_MARKER = f"close {CLOSE_POLICY_VIOLATION}"


def classify(err: BaseException | None) -> str:
    """Return the operator-facing sentence for *err* (``""`` for ``None``).

    Unrecognised errors come back with their original text.
    """
    if err is None:
        return ""
    text = str(err)
    code = _close_code(err, text)

    if code == CLOSE_POLICY_VIOLATION:
        reason = extract_close_reason(text)
        return _match_policy_phrase(reason) or _match_policy_phrase(text) or MSG_POLICY_VIOLATION

    if code in _SIMPLE_CODES:
        return _SIMPLE_CODES[code]

    if isinstance(err, ConnectFailure):
        if err.status_code is not None:
            return f"{MSG_FAILED_TO_CONNECT} (HTTP {err.status_code})"
        return MSG_FAILED_TO_CONNECT
    if "failed to connect" in text.lower():
        return MSG_FAILED_TO_CONNECT

    return text


def extract_close_reason(text: str) -> str:
    """Pull the server's reason out of a 1008 close error text.

    Tried in order: ``reason:`` label, ``policy violation:`` label, the last
    quoted substring, then whatever follows ``close 1008``.
    """
    idx = text.find("reason:")
    if idx != -1:
        return _trim_reason(text[idx + len("reason:"):])

    idx = text.find("policy violation:")
    if idx != -1:
        return _trim_reason(text[idx + len("policy violation:"):])

    if _POLICY_MARKER not in text:
        return ""

    parts = text.split('"')
    if len(parts) >= 3 and parts[-2]:
        return parts[-2]

    after = text[text.find(_POLICY_MARKER) + len(_POLICY_MARKER):].strip()
    after = after.removeprefix("(").removesuffix(")").strip()
    if after.startswith('"'):
        end = after.find('"', 1)
        if end != -1:
            return after[1:end]
    colon = after.find(":")
    if colon != -1:
        return _trim_reason(after[colon + 1:])
    if after and "websocket" not in after:
        return after
    return ""


def _trim_reason(reason: str) -> str:
    return reason.strip().removesuffix(".")


def _match_policy_phrase(text: str) -> str:
    if not text:
        return ""
    lowered = text.lower()
    for phrase, sentence in _POLICY_PHRASES:
        if phrase.lower() in lowered:
            return sentence
    return ""


def _close_code(err: BaseException, text: str) -> int | None:
    if isinstance(err, RemoteClosure):
        return err.code
    match = _CLOSE_CODE_RE.search(text)
    if match:
        return int(match.group(1))
    return None
