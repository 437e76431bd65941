"""Per-process caches of control plane clients and agent lists.

Each cache is an actor: one daemon worker thread drains a FIFO queue of
``(namespace, reply_queue)`` requests, so its map is only ever touched by
that thread and at most one login or listing is in flight.  Callers block on
their private reply queue.  An empty namespace key means "invalidate".
"""

from __future__ import annotations

import logging
import queue
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable

from edgeattach.config import AgentRecord, NamespaceStore

from .client import ControllerAuthError, ControllerClient, get_base_url

logger = logging.getLogger(__name__)

INVALIDATE = ""

LoginFunc = Callable[..., ControllerClient]

_STOP = object()


class _Actor(ABC):
    """A worker thread serving keyed requests one at a time."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._requests: queue.Queue = queue.Queue()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _submit(self, key: str) -> Any:
        if self._closed:
            raise RuntimeError(f"{self._name} is closed")
        reply: queue.Queue = queue.Queue(maxsize=1)
        self._requests.put((key, reply))
        ok, value = reply.get()
        if not ok:
            raise value
        return value

    def _run(self) -> None:
        while True:
            item = self._requests.get()
            if item is _STOP:
                self._shutdown()
                return
            key, reply = item
            try:
                reply.put((True, self._handle(key)))
            except Exception as exc:
                # Re-raised on the caller's thread by _submit().
                logger.debug("%s request for %r failed: %s", self._name, key, exc)
                reply.put((False, exc))

    @abstractmethod
    def _handle(self, key: str) -> Any:
        """Serve one request on the worker thread."""

    def _shutdown(self) -> None:
        """Release owned resources; runs on the worker thread after the last request."""

    def close(self, timeout: float = 5.0) -> None:
        if self._closed:
            return
        self._closed = True
        self._requests.put(_STOP)
        self._thread.join(timeout)


class ClientCache(_Actor):
    """Logged-in :class:`ControllerClient` per namespace."""

    def __init__(self, store: NamespaceStore, login: LoginFunc = ControllerClient.session_login) -> None:
        self._store = store
        self._login = login
        self._clients: dict[str, ControllerClient] = {}
        super().__init__("client-cache")

    def get(self, namespace: str) -> ControllerClient:
        """Return the namespace's client with a freshly renewed session."""
        if not namespace:
            raise ValueError("namespace must not be empty")
        return self._submit(namespace)

    def invalidate(self) -> None:
        self._submit(INVALIDATE)

    def _shutdown(self) -> None:
        for client in self._clients.values():
            client.close()
        self._clients.clear()

    def _handle(self, namespace: str) -> ControllerClient | None:
        if namespace == INVALIDATE:
            self._clients.clear()
            return None

        client = self._clients.get(namespace)
        if client is not None:
            client.refresh_session()
            logger.debug("Refreshed session for namespace %s", namespace)
        else:
            ns = self._store.get_namespace(namespace)
            base_url = get_base_url(ns.endpoint, ns.use_https)
            client = self._login(base_url, ns.user.email, ns.user.raw_password, ns.user.refresh_token)
            self._clients[namespace] = client
            logger.debug("Logged in to %s for namespace %s", base_url, namespace)

        self._store.update_user(namespace, client.access_token, client.refresh_token)
        self._store.flush()
        return client


class AgentCache(_Actor):
    """Backend agent list per namespace."""

    def __init__(self, clients: ClientCache) -> None:
        self._clients = clients
        self._agents: dict[str, list[dict]] = {}
        super().__init__("agent-cache")

    def get(self, namespace: str) -> list[dict]:
        if not namespace:
            raise ValueError("namespace must not be empty")
        return list(self._submit(namespace))

    def invalidate(self) -> None:
        self._submit(INVALIDATE)

    def _handle(self, namespace: str) -> list[dict]:
        if namespace == INVALIDATE:
            self._agents.clear()
            return []

        cached = self._agents.get(namespace)
        if cached is not None:
            return cached

        client = self._clients.get(namespace)
        try:
            agents = client.list_agents()
        except ControllerAuthError as exc:
            logger.debug("Agent listing rejected (%s), retrying with a new session", exc)
            client = self._clients.get(namespace)
            agents = client.list_agents()
        self._agents[namespace] = agents
        return agents


class AgentSync(_Actor):
    """Reconciles the stored agent list with the backend once per process."""

    def __init__(self, store: NamespaceStore, agents: AgentCache) -> None:
        self._store = store
        self._agents = agents
        self._complete = False
        super().__init__("agent-sync")

    @property
    def complete(self) -> bool:
        return self._complete

    def sync(self, namespace: str) -> None:
        self._submit(namespace)

    def _handle(self, namespace: str) -> None:
        if self._complete:
            return
        ns = self._store.get_namespace(namespace)
        if not ns.local_control_plane:
            backend = self._agents.get(namespace)
            self._store.replace_agents(namespace, merge_agents(ns.agents, backend))
            self._store.flush()
            logger.debug("Synced %d agent(s) for namespace %s", len(backend), namespace)
        self._complete = True


def merge_agents(stored: list[AgentRecord], backend: list[dict]) -> list[AgentRecord]:
    """Backend name/uuid/host win; stored provisioning details are kept.

    A local agent stays as it is apart from adopting its backend uuid.
    """
    local = next((a for a in stored if a.local), None)
    known = {a.name: a for a in stored if not a.local}

    merged: list[AgentRecord] = []
    for info in backend:
        name = info.get("name", "")
        uuid = info.get("uuid", "")
        if local is not None and name == local.name:
            local.uuid = uuid
            continue
        record = AgentRecord(name=name, uuid=uuid, host=info.get("host", ""))
        cached = known.get(name)
        if cached is not None:
            record.created = cached.created
            record.ssh = dict(cached.ssh)
        merged.append(record)

    if local is not None:
        merged.append(local)
    return merged


class ResourceCaches:
    """The three cache actors, built once and passed around by handle."""

    def __init__(self, store: NamespaceStore, login: LoginFunc = ControllerClient.session_login) -> None:
        self.store = store
        self.clients = ClientCache(store, login=login)
        self.agents = AgentCache(self.clients)
        self.sync = AgentSync(store, self.agents)

    def client(self, namespace: str) -> ControllerClient:
        return self.clients.get(namespace)

    def backend_agents(self, namespace: str) -> list[dict]:
        return self.agents.get(namespace)

    def sync_agents(self, namespace: str) -> None:
        self.sync.sync(namespace)

    def invalidate(self) -> None:
        self.clients.invalidate()
        self.agents.invalidate()

    def close(self) -> None:
        self.sync.close()
        self.agents.close()
        self.clients.close()

    def __enter__(self) -> ResourceCaches:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
