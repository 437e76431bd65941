"""Terminal resize notifications.

Backends:
  - signal: SIGWINCH handler (POSIX, main thread only)
  - none: no-op where the signal does not exist
"""

from __future__ import annotations

import logging
import shutil
import signal
import threading
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)

ResizeCallback = Callable[[int, int], None]


class ResizeWatcher(ABC):
    """Reports (columns, rows) whenever the local terminal changes size."""

    @abstractmethod
    def start(self, callback: ResizeCallback) -> None:
        """Begin delivering resize events to *callback*."""

    @abstractmethod
    def stop(self) -> None:
        """Stop delivering events and undo any handler installation."""


class NullResizeWatcher(ResizeWatcher):
    """No-op watcher for platforms without resize signals."""

    def start(self, callback: ResizeCallback) -> None:
        pass

    def stop(self) -> None:
        pass


class SignalResizeWatcher(ResizeWatcher):
    """SIGWINCH-driven watcher."""

    def __init__(self) -> None:
        self._previous = None
        self._installed = False

    def start(self, callback: ResizeCallback) -> None:
        if threading.current_thread() is not threading.main_thread():
            # signal.signal() only works on the main thread.
            logger.debug("Resize watcher not installed: not on the main thread")
            return

        def _on_winch(signum, frame) -> None:
            size = shutil.get_terminal_size()
            callback(size.columns, size.lines)

        self._previous = signal.signal(signal.SIGWINCH, _on_winch)
        self._installed = True

    def stop(self) -> None:
        if not self._installed:
            return
        self._installed = False
        try:
            signal.signal(signal.SIGWINCH, self._previous or signal.SIG_DFL)
        except ValueError as exc:
            logger.debug("Resize handler not restored: %s", exc)


def create_resize_watcher() -> ResizeWatcher:
    """Factory: pick the watcher this platform supports."""
    if hasattr(signal, "SIGWINCH"):
        return SignalResizeWatcher()
    return NullResizeWatcher()
