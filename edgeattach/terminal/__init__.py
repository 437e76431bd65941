"""Local terminal side of an interactive exec session."""

from .controller import TerminalController, TerminalState
from .rawmode import RawMode
from .resize import NullResizeWatcher, ResizeWatcher, SignalResizeWatcher, create_resize_watcher

__all__ = [
    "NullResizeWatcher",
    "RawMode",
    "ResizeWatcher",
    "SignalResizeWatcher",
    "TerminalController",
    "TerminalState",
    "create_resize_watcher",
]
