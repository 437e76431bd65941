"""Renders a live log tail from a session transport.

States: IDLE → STREAMING → DONE

One reader thread consumes LOG_* frames; start() blocks until the stream
stops, the server reports an error, or the connection ends.
"""

from __future__ import annotations

import enum
import logging
import sys
import threading
from typing import BinaryIO, Optional

from edgeattach.session.errors import LocalTerminalError, RemoteClosure, SessionError
from edgeattach.session.transport import SessionTransport

logger = logging.getLogger(__name__)

DEFAULT_ERROR_TEXT = "Log streaming error occurred"


class LogStreamState(enum.Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    DONE = "done"


def render_log_line(data: bytes) -> bytes:
    """Return *data* terminated by exactly the newline it needs."""
    if not data:
        return b"\n"
    if data.endswith(b"\n"):
        return data
    return data + b"\n"


class LogStreamController:
    def __init__(self, transport: SessionTransport, output: Optional[BinaryIO] = None) -> None:
        self._transport = transport
        self._output = output if output is not None else sys.stdout.buffer
        self.state = LogStreamState.IDLE
        self._cancel = threading.Event()
        self._out_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._cleanup_lock = threading.Lock()
        self._cleaned_up = False
        self._failure: Optional[SessionError] = None

    def start(self) -> None:
        """Stream until the log session ends.

        Raises:
            SessionError: the connection terminated abnormally.
        """
        if self.state is not LogStreamState.IDLE:
            raise RuntimeError(f"log stream already {self.state.value}")
        self.state = LogStreamState.STREAMING
        try:
            reader = threading.Thread(target=self._read_loop, name="log-stream", daemon=True)
            reader.start()

            initial = self._transport.error
            if initial is not None:
                self._end(initial)

            self._cancel.wait()
        finally:
            self._cleanup()

        if self._failure is not None:
            raise self._failure

    def stop(self) -> None:
        self._end()
        self._cleanup()

    def _read_loop(self) -> None:
        while not self._cancel.is_set():
            try:
                msg = self._transport.read_message()
            except SessionError as exc:
                self._end(None if self._cancel.is_set() else exc)
                return
            if msg is None:
                self._end()
                return

            if msg.is_log_line():
                try:
                    self._write(render_log_line(msg.data))
                except OSError as exc:
                    self._end(LocalTerminalError(f"failed to write log output: {exc}"))
                    return
            elif msg.is_log_start():
                logger.debug("Log stream started for %s", self._transport.target_id)
            elif msg.is_log_stop():
                logger.debug("Log stream stopped for %s", self._transport.target_id)
                self._end()
                return
            elif msg.is_log_error():
                text = msg.data.decode("utf-8", errors="replace") or DEFAULT_ERROR_TEXT
                try:
                    self._write(f"Error: {text}\n".encode("utf-8"))
                except OSError as exc:
                    logger.debug("Log error not written: %s", exc)
                self._end()
                return
            else:
                logger.debug("Ignoring frame type %d on log stream", msg.type)

    def _write(self, data: bytes) -> None:
        with self._out_lock:
            self._output.write(data)
            self._output.flush()

    def _end(self, err: Optional[SessionError] = None) -> None:
        with self._state_lock:
            if err is not None and self._failure is None:
                if not (isinstance(err, RemoteClosure) and err.graceful):
                    self._failure = err
        self._cancel.set()

    def _cleanup(self) -> None:
        with self._cleanup_lock:
            if self._cleaned_up:
                return
            self._cleaned_up = True
            self._cancel.set()
            self._transport.close()
            self.state = LogStreamState.DONE
