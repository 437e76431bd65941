"""Control plane REST access and per-process resource caches."""

from .cache import AgentCache, AgentSync, ClientCache, ResourceCaches
from .client import (
    ControllerAuthError,
    ControllerClient,
    ControllerConnectionError,
    ControllerError,
    ControllerNotFoundError,
    get_base_url,
)

__all__ = [
    "AgentCache",
    "AgentSync",
    "ClientCache",
    "ControllerAuthError",
    "ControllerClient",
    "ControllerConnectionError",
    "ControllerError",
    "ControllerNotFoundError",
    "ResourceCaches",
    "get_base_url",
]
