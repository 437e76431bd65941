"""Live log tails for agents and microservices."""

from .config import LogConfigError, LogTailConfig
from .stream import LogStreamController, LogStreamState, render_log_line

__all__ = [
    "LogConfigError",
    "LogStreamController",
    "LogStreamState",
    "LogTailConfig",
    "render_log_line",
]
