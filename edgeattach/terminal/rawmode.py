"""Raw-mode switching for the local terminal."""

from __future__ import annotations

import logging
import os
import sys

from edgeattach.session.errors import LocalTerminalError

if os.name == "posix":
    import termios
    import tty
else:
    termios = None
    tty = None

logger = logging.getLogger(__name__)


class RawMode:
    """Put a terminal into raw mode and put it back afterwards."""

    def __init__(self, fd: int | None = None) -> None:
        self._fd = fd
        self._saved: list | None = None

    @property
    def active(self) -> bool:
        return self._saved is not None

    def enter(self) -> None:
        """Capture the current mode and switch to raw.

        Raises:
            LocalTerminalError: not a terminal, or no termios on this platform.
        """
        if termios is None:
            raise LocalTerminalError("raw terminal mode is not supported on this platform")
        fd = sys.stdin.fileno() if self._fd is None else self._fd
        if not os.isatty(fd):
            raise LocalTerminalError("failed to set terminal to raw mode: stdin is not a terminal")
        try:
            saved = termios.tcgetattr(fd)
            tty.setraw(fd)
        except (termios.error, OSError) as exc:
            raise LocalTerminalError(f"failed to set terminal to raw mode: {exc}") from exc
        self._fd = fd
        self._saved = saved

    def restore(self) -> None:
        """Restore the captured mode.  Never raises."""
        if self._saved is None:
            return
        saved, self._saved = self._saved, None
        try:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, saved)
        except (termios.error, OSError) as exc:
            logger.debug("Terminal mode restore failed: %s", exc)
