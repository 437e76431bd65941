"""Exec and log executors.

Each executor resolves its target through the namespace's cached control
plane client, opens one websocket session and hands it to the matching
controller.  Session failures come back as :class:`AttachError` carrying the
classified, human-readable message.
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Any, Callable, Optional

from websockets.sync.client import connect

from edgeattach.controlplane.cache import ResourceCaches
from edgeattach.controlplane.client import (
    ControllerClient,
    ControllerError,
    ControllerNotFoundError,
)
from edgeattach.logs.config import LogConfigError, LogTailConfig
from edgeattach.logs.stream import LogStreamController
from edgeattach.session import endpoints
from edgeattach.session.classify import classify
from edgeattach.session.errors import SessionError
from edgeattach.session.registry import SessionRecord, SessionRegistry
from edgeattach.session.transport import Connector, SessionTransport
from edgeattach.terminal.controller import TerminalController

logger = logging.getLogger(__name__)

_NAME_PART = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_NO_APPLICATION = "Invalid application id"

RUNNING = "RUNNING"

# transport -> object with a blocking start()
ControllerFactory = Callable[[SessionTransport], Any]


class AttachError(Exception):
    """User-facing failure; the message is ready to print."""


def parse_fq_name(fq_name: str, resource_type: str) -> tuple[str, str]:
    """Split ``app/name`` (or a bare ``name``) into ``(app, name)``."""
    parts = fq_name.split("/") if fq_name else []
    if len(parts) not in (1, 2):
        raise AttachError(f"Invalid {resource_type} name {fq_name}")
    labels = ["application", resource_type] if len(parts) == 2 else [resource_type]
    for label, part in zip(labels, parts):
        if not _NAME_PART.match(part):
            raise AttachError(
                f"Invalid {label} name {part!r}: use lowercase letters, digits and '-'"
            )
    if len(parts) == 1:
        return "", parts[0]
    return parts[0], parts[1]


# ---------------------------------------------------------------------------
# Exec
# ---------------------------------------------------------------------------


def exec_microservice(
    caches: ResourceCaches,
    namespace: str,
    fq_name: str,
    connector: Connector = connect,
    registry: Optional[SessionRegistry] = None,
    controller: ControllerFactory = TerminalController,
) -> None:
    """Attach the local terminal to a microservice's exec session."""
    app, name = parse_fq_name(fq_name, "microservice")
    client = caches.client(namespace)
    msvc, _ = _find_microservice(client, app, name)
    url = endpoints.exec_url(client.base_url, msvc["uuid"])
    _run_session(client, url, msvc["uuid"], controller, connector, registry)


def exec_agent(
    caches: ResourceCaches,
    namespace: str,
    agent_name: str,
    connector: Connector = connect,
    registry: Optional[SessionRegistry] = None,
    controller: ControllerFactory = TerminalController,
) -> None:
    """Attach the local terminal to an agent through its debug microservice."""
    client = caches.client(namespace)
    try:
        agent = client.get_agent_by_name(agent_name)
    except ControllerError as exc:
        raise AttachError(f"Failed to get Agent by name: {exc}") from exc

    agent_uuid = agent["uuid"]
    msvc, _ = _find_microservice(client, f"system-{agent_uuid}", f"debug-{agent_uuid}")
    url = endpoints.exec_url(client.base_url, msvc["uuid"])
    _run_session(client, url, msvc["uuid"], controller, connector, registry)


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------


def agent_logs(
    caches: ResourceCaches,
    namespace: str,
    agent_name: str,
    log_config: Optional[LogTailConfig] = None,
    connector: Connector = connect,
    registry: Optional[SessionRegistry] = None,
    controller: ControllerFactory = LogStreamController,
) -> None:
    """Tail an agent's logs until the stream ends."""
    log_config = _checked(log_config)
    caches.sync_agents(namespace)
    stored = {a.name: a for a in caches.store.get_namespace(namespace).agents}
    record = stored.get(agent_name)
    if record is None:
        raise AttachError(f"Agent {agent_name} not found in namespace {namespace}")
    if record.local:
        raise AttachError(f"Agent {agent_name} is local; read its container logs directly")

    client = caches.client(namespace)
    try:
        agent = client.get_agent_by_name(agent_name)
    except ControllerError as exc:
        raise AttachError(f"failed to get Agent by name: {exc}") from exc

    url = endpoints.agent_logs_url(client.base_url, agent["uuid"], log_config)
    _run_session(client, url, agent["uuid"], controller, connector, registry)


def microservice_logs(
    caches: ResourceCaches,
    namespace: str,
    fq_name: str,
    log_config: Optional[LogTailConfig] = None,
    connector: Connector = connect,
    registry: Optional[SessionRegistry] = None,
    controller: ControllerFactory = LogStreamController,
) -> None:
    """Tail a running microservice's logs until the stream ends."""
    log_config = _checked(log_config)
    app, name = parse_fq_name(fq_name, "microservice")
    client = caches.client(namespace)
    msvc, system = _find_microservice(client, app, name)

    status = (msvc.get("status") or {}).get("status", "")
    if status != RUNNING:
        raise AttachError("The microservice is not currently running")

    url = endpoints.microservice_logs_url(client.base_url, msvc["uuid"], log_config, system=system)
    _run_session(client, url, msvc["uuid"], controller, connector, registry)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _checked(log_config: Optional[LogTailConfig]) -> LogTailConfig:
    log_config = log_config or LogTailConfig()
    try:
        log_config.validate()
    except LogConfigError as exc:
        raise AttachError(str(exc)) from exc
    return log_config


def _find_microservice(client: ControllerClient, app: str, name: str) -> tuple[dict, bool]:
    """Return ``(microservice, is_system)``, falling back to system applications."""
    try:
        return client.get_microservice_by_name(app, name), False
    except ControllerError as exc:
        if not isinstance(exc, ControllerNotFoundError) and _NO_APPLICATION not in str(exc):
            raise AttachError(str(exc)) from exc
        logger.debug("%s/%s not found among applications, trying system: %s", app, name, exc)
    try:
        return client.get_system_microservice_by_name(app, name), True
    except ControllerError as exc:
        raise AttachError(str(exc)) from exc


def _run_session(
    client: ControllerClient,
    url: str,
    target_id: str,
    controller: ControllerFactory,
    connector: Connector,
    registry: Optional[SessionRegistry],
) -> None:
    registry = registry if registry is not None else SessionRegistry()
    record = SessionRecord(session_id=uuid.uuid4().hex, target_id=target_id)
    transport = SessionTransport(target_id, connector=connector, on_activity=record.touch)
    registry.add(record)
    try:
        transport.connect(url, {"Authorization": f"Bearer {client.access_token}"})
        controller(transport).start()
    except SessionError as exc:
        raise AttachError(classify(exc)) from exc
    finally:
        transport.close()
        registry.remove(record.session_id)

    err = transport.error
    if err is not None:
        raise AttachError(classify(err)) from err
