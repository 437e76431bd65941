"""Websocket transport for one exec or log session.

Owns the connection handle.  Reads and writes are independent (one reader
thread, any number of writers).  The first failure is kept as a sticky error
and the done event fires exactly once, however many threads call
:meth:`SessionTransport.close`.
"""

from __future__ import annotations

import logging
import ssl
import threading
from dataclasses import replace
from typing import Any, Callable, Mapping, Optional

from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException
from websockets.sync.client import ClientConnection, connect

from .errors import (
    CLOSE_ABNORMAL,
    CLOSE_MESSAGE_TOO_BIG,
    ConnectFailure,
    NotConnected,
    RemoteClosure,
    SessionError,
    closure_for,
)
from .message import MAX_PAYLOAD, Message, MessageType, decode, encode

logger = logging.getLogger(__name__)

HANDSHAKE_TIMEOUT = 45.0
CLOSE_TIMEOUT = 5.0
PING_INTERVAL = 30.0
PONG_TIMEOUT = 10.0
# Room for a full payload plus the msgpack envelope.
MAX_FRAME_SIZE = MAX_PAYLOAD + 64 * 1024

Connector = Callable[..., ClientConnection]


def insecure_ssl_context() -> ssl.SSLContext:
    """TLS context that accepts self-signed control plane certificates.

    Control planes are commonly installed with self-signed certificates, so
    certificate and hostname verification are switched off for sessions.
    """
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


class SessionTransport:
    """One websocket connection carrying msgpack frames for a single target."""

    def __init__(
        self,
        target_id: str,
        session_id: str = "",
        connector: Connector = connect,
        on_activity: Optional[Callable[[], None]] = None,
    ) -> None:
        self._target_id = target_id
        self._session_id = session_id
        self._connector = connector
        self._on_activity = on_activity

        self._conn: Optional[ClientConnection] = None
        self._error: Optional[SessionError] = None
        self._error_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._closed = False
        self._done = threading.Event()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def connect(self, url: str, headers: Mapping[str, str] | None = None) -> None:
        """Open the websocket.

        Raises:
            RemoteClosure: the server answered the handshake with a close frame.
            ConnectFailure: non-101 response or any other dial failure.
        """
        options: dict[str, Any] = {
            "additional_headers": dict(headers or {}),
            "open_timeout": HANDSHAKE_TIMEOUT,
            "close_timeout": CLOSE_TIMEOUT,
            "max_size": MAX_FRAME_SIZE,
            "ping_interval": PING_INTERVAL,
            "ping_timeout": PONG_TIMEOUT,
        }
        if url.startswith("wss://"):
            options["ssl"] = insecure_ssl_context()

        logger.debug("Connecting session for %s to %s", self._target_id, url)
        try:
            self._conn = self._connector(url, **options)
        except ConnectionClosed as exc:
            err: SessionError = self._closure_from(exc)
        except InvalidStatus as exc:
            status = exc.response.status_code
            err = ConnectFailure(
                f"failed to connect: server returned status {status}", status_code=status
            )
        except (WebSocketException, OSError) as exc:
            err = ConnectFailure(f"failed to connect: {exc}")
        else:
            logger.debug("Session connected for %s", self._target_id)
            return

        self._set_error(err)
        self.close()
        raise err

    def close(self) -> None:
        """Finish the session.  Only the first call does anything."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        conn = self._conn
        if conn is not None:
            try:
                self.send_message(Message.new(MessageType.CLOSE))
            except (SessionError, OSError) as exc:
                logger.debug("Close frame not sent for %s: %s", self._target_id, exc)
            try:
                conn.close()
            except (WebSocketException, OSError) as exc:
                logger.debug("Socket close failed for %s: %s", self._target_id, exc)
            self._conn = None
        self._done.set()
        logger.debug("Session closed for %s", self._target_id)

    # ------------------------------------------------------------------ #
    # I/O
    # ------------------------------------------------------------------ #

    def send_message(self, msg: Message) -> None:
        """Stamp *msg* with this session's identity and write one binary frame."""
        conn = self._conn
        if conn is None:
            raise NotConnected("not connected")
        stamped = replace(msg, target_id=self._target_id, session_id=self._session_id)
        frame = encode(stamped)
        try:
            conn.send(frame)
        except ConnectionClosed as exc:
            raise self._closure_from(exc) from exc
        self._touch()

    def read_message(self) -> Optional[Message]:
        """Block for the next frame.

        Returns ``None`` once the remote side ends the session gracefully.

        Raises:
            RemoteClosure: abnormal termination (also stored as the sticky error).
            ProtocolDecodeError: a malformed frame; the session is closed.
            SizeExceeded: an oversized payload; the session is closed.
        """
        conn = self._conn
        if conn is None:
            raise NotConnected("not connected")

        try:
            raw = conn.recv()
        except ConnectionClosed as exc:
            closure = self._closure_from(exc)
            if self._closed or closure.graceful:
                self.close()
                return None
            self._set_error(closure)
            self.close()
            raise closure from exc

        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        try:
            msg = decode(raw)
        except SessionError as exc:
            logger.debug("Dropping session for %s: %s", self._target_id, exc)
            self._set_error(exc)
            self.close()
            raise

        if msg.session_id:
            self._session_id = msg.session_id
        self._touch()
        return msg

    # ------------------------------------------------------------------ #
    # Observers
    # ------------------------------------------------------------------ #

    @property
    def target_id(self) -> str:
        return self._target_id

    @property
    def session_id(self) -> str:
        return self._session_id

    @session_id.setter
    def session_id(self, value: str) -> None:
        self._session_id = value

    @property
    def connected(self) -> bool:
        return self._conn is not None

    @property
    def error(self) -> Optional[SessionError]:
        with self._error_lock:
            return self._error

    def get_error(self) -> Optional[SessionError]:
        return self.error

    @property
    def done(self) -> threading.Event:
        return self._done

    def get_done(self) -> threading.Event:
        return self._done

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _set_error(self, err: SessionError) -> None:
        with self._error_lock:
            if self._error is None:
                self._error = err

    def _touch(self) -> None:
        if self._on_activity is not None:
            self._on_activity()

    @staticmethod
    def _closure_from(exc: ConnectionClosed) -> RemoteClosure:
        rcvd = exc.rcvd
        if rcvd is None:
            sent = exc.sent
            if sent is not None and sent.code == CLOSE_MESSAGE_TOO_BIG:
                # We refused an oversized frame and the peer never answered.
                return closure_for(sent.code, sent.reason)
            # No close frame from the peer: the TCP stream just ended.
            return closure_for(CLOSE_ABNORMAL)
        return closure_for(rcvd.code, rcvd.reason)
