"""Websocket URLs for exec and log sessions.

Built from the control plane's REST base URL (``http(s)://host:port/api/v3``)
by swapping the scheme for ``ws(s)`` and appending the resource path.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from edgeattach.logs.config import LogTailConfig


def to_ws_url(base_url: str) -> str:
    """Rewrite an ``http(s)://`` base URL to ``ws(s)://``."""
    url = base_url.rstrip("/")
    if url.startswith("https://"):
        return url.replace("https://", "wss://", 1)
    if url.startswith("http://"):
        return url.replace("http://", "ws://", 1)
    if not url.startswith(("ws://", "wss://")):
        url = "ws://" + url
    return url


def exec_url(base_url: str, target_id: str) -> str:
    return f"{to_ws_url(base_url)}/microservices/exec/{target_id}"


def agent_logs_url(base_url: str, agent_id: str, log_config: LogTailConfig | None = None) -> str:
    return _with_query(f"{to_ws_url(base_url)}/iofog/{agent_id}/logs", log_config)


def microservice_logs_url(
    base_url: str,
    microservice_id: str,
    log_config: LogTailConfig | None = None,
    system: bool = False,
) -> str:
    prefix = "/microservices/system" if system else "/microservices"
    return _with_query(f"{to_ws_url(base_url)}{prefix}/{microservice_id}/logs", log_config)


def _with_query(url: str, log_config: LogTailConfig | None) -> str:
    if log_config is None:
        return url
    query = log_config.query_string()
    return f"{url}?{query}" if query else url
