"""Interactive terminal attached to a remote exec session.

States: IDLE → RAW → CLOSING → CLOSED

  start() puts the local terminal in raw mode and runs three threads that
  share one cancellation event:
    output: remote STDOUT/STDERR frames → local output
    input:  local keystrokes → STDIN frames, byte by byte
    resize: local resize events (logged, never forwarded)
  Whichever side ends the session first sets the event; start() then cleans
  up exactly once and returns (or raises the first hard error).

The remote side owns echo and line editing.  Only two sequences are handled
locally: Ctrl+C twice within a second and Ctrl+D on an empty line.
"""

from __future__ import annotations

import enum
import logging
import os
import queue
import sys
import threading
import time
from typing import BinaryIO, Callable, Optional

from edgeattach.session.errors import LocalTerminalError, SessionError
from edgeattach.session.message import Message, MessageType
from edgeattach.session.transport import SessionTransport

from .rawmode import RawMode
from .resize import ResizeWatcher, create_resize_watcher

logger = logging.getLogger(__name__)

CTRL_C = 0x03
CTRL_D = 0x04
ESC = 0x1B
DOUBLE_CTRL_C_WINDOW = 1.0  # seconds
INPUT_BUFFER_LIMIT = 1024

_LINE_ENDINGS = (0x0A, 0x0D)
_BACKSPACES = (0x08, 0x7F)


class TerminalState(enum.Enum):
    IDLE = "idle"
    RAW = "raw"
    CLOSING = "closing"
    CLOSED = "closed"


def _read_stdin_byte() -> bytes:
    return os.read(sys.stdin.fileno(), 1)


class TerminalController:
    """Full-duplex raw terminal bridged onto a :class:`SessionTransport`."""

    def __init__(
        self,
        transport: SessionTransport,
        read_key: Optional[Callable[[], bytes]] = None,
        output: Optional[BinaryIO] = None,
        raw_mode: Optional[RawMode] = None,
        resize_watcher: Optional[ResizeWatcher] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self._read_key = read_key or _read_stdin_byte
        self._output = output if output is not None else sys.stdout.buffer
        self._raw = raw_mode or RawMode()
        self._resize = resize_watcher or create_resize_watcher()
        self._clock = clock

        self.state = TerminalState.IDLE
        self._cancel = threading.Event()
        self._out_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._cleanup_lock = threading.Lock()
        self._cleaned_up = False
        self._failure: Optional[SessionError] = None

        self._input_buffer = bytearray()
        self._cursor = 0
        self._in_escape = False
        self._last_ctrl_c: Optional[float] = None
        self._resize_events: queue.Queue[tuple[int, int]] = queue.Queue(maxsize=8)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Run the session until it ends.

        Raises:
            LocalTerminalError: raw mode could not be entered.
            SessionError: the first hard error seen by any thread.
        """
        if self.state is not TerminalState.IDLE:
            raise RuntimeError(f"terminal session already {self.state.value}")
        try:
            self._raw.enter()
        except LocalTerminalError:
            self._cleanup()
            raise
        self.state = TerminalState.RAW

        try:
            self._resize.start(self._on_resize)
            self._spawn(self._resize_loop, "resize")
            self._spawn(self._output_loop, "output")

            initial = self._transport.error
            if initial is not None:
                self._fail(initial)
            else:
                self._spawn(self._input_loop, "input")

            self._cancel.wait()
        finally:
            self._cleanup()

        if self._failure is not None:
            raise self._failure

    def stop(self) -> None:
        """End the session from any thread.  Idempotent."""
        self._finish()
        self._cleanup()

    @property
    def input_buffer(self) -> bytes:
        return bytes(self._input_buffer)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def handle_input(self, data: bytes) -> bool:
        """Process one chunk of keyboard input.

        Returns True when the chunk ends the session.
        """
        if not data:
            return False

        first = data[0]
        if first == CTRL_C:
            now = self._clock()
            if self._last_ctrl_c is not None and now - self._last_ctrl_c < DOUBLE_CTRL_C_WINDOW:
                self._write(b"\r\nExiting...\r\n")
                return True
            self._last_ctrl_c = now
            self._clear_input()
            self._write(b"\r\x1b[K^C\r\n")
            return False

        if first == CTRL_D and not self._input_buffer:
            self._write(b"exit\r\n")
            return True

        self._track_input(data)
        self._transport.send_message(Message.new(MessageType.STDIN, data))
        return False

    # ------------------------------------------------------------------ #
    # Threads
    # ------------------------------------------------------------------ #

    def _output_loop(self) -> None:
        while not self._cancel.is_set():
            try:
                msg = self._transport.read_message()
            except SessionError as exc:
                if not self._cancel.is_set():
                    self._fail(exc)
                return

            if msg is None or msg.is_close():
                self._finish()
                return
            if msg.is_stdout() or msg.is_stderr():
                try:
                    self._write(msg.data)
                except OSError as exc:
                    self._fail(LocalTerminalError(f"failed to write to terminal: {exc}"))
                    return
            else:
                logger.debug("Ignoring frame type %d", msg.type)

    def _input_loop(self) -> None:
        while not self._cancel.is_set():
            try:
                data = self._read_key()
            except OSError as exc:
                if not self._cancel.is_set():
                    self._fail(LocalTerminalError(f"failed to read from terminal: {exc}"))
                return
            if not data:
                logger.debug("Terminal input closed")
                return
            if self._cancel.is_set():
                return
            try:
                if self.handle_input(data):
                    self._finish()
                    return
            except SessionError as exc:
                if not self._cancel.is_set():
                    self._fail(exc)
                return
            except OSError as exc:
                # Local echo (^C, exit) could not be written.
                self._fail(LocalTerminalError(f"failed to write to terminal: {exc}"))
                return

    def _resize_loop(self) -> None:
        while not self._cancel.is_set():
            try:
                columns, rows = self._resize_events.get(timeout=0.2)
            except queue.Empty:
                continue
            logger.debug("Local terminal resized to %dx%d", columns, rows)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _spawn(self, target: Callable[[], None], name: str) -> None:
        thread = threading.Thread(target=target, name=f"terminal-{name}", daemon=True)
        thread.start()

    def _on_resize(self, columns: int, rows: int) -> None:
        try:
            self._resize_events.put_nowait((columns, rows))
        except queue.Full:
            pass

    def _write(self, data: bytes) -> None:
        with self._out_lock:
            self._output.write(data)
            self._output.flush()

    def _track_input(self, data: bytes) -> None:
        for byte in data:
            if self._in_escape:
                # CSI/SS3 introducers keep the sequence open; a final byte ends it.
                if byte not in (ord("["), ord("O")) and 0x40 <= byte <= 0x7E:
                    self._in_escape = False
                continue
            if byte == ESC:
                self._in_escape = True
            elif byte in _LINE_ENDINGS:
                self._input_buffer.clear()
            elif byte in _BACKSPACES:
                if self._input_buffer:
                    self._input_buffer.pop()
            elif byte >= 0x20 and len(self._input_buffer) < INPUT_BUFFER_LIMIT:
                self._input_buffer.append(byte)
        self._cursor = len(self._input_buffer)

    def _clear_input(self) -> None:
        self._input_buffer.clear()
        self._cursor = 0
        self._in_escape = False

    def _fail(self, err: SessionError) -> None:
        with self._state_lock:
            if self._failure is None:
                self._failure = err
        self._finish()

    def _finish(self) -> None:
        with self._state_lock:
            if self.state is TerminalState.RAW:
                self.state = TerminalState.CLOSING
        self._cancel.set()

    def _cleanup(self) -> None:
        with self._cleanup_lock:
            if self._cleaned_up:
                return
            self._cleaned_up = True
            self._cancel.set()
            self._transport.close()
            self._resize.stop()
            self._raw.restore()
            self.state = TerminalState.CLOSED
