"""Namespace configuration store.

Stored as JSON::

    {
      "default_namespace": "default",
      "namespaces": {
        "default": {
          "endpoint": "10.0.0.5:51121",
          "use_https": false,
          "local_control_plane": false,
          "user": {"email": "...", "password": "<base64>",
                   "access_token": "...", "refresh_token": "..."},
          "agents": [{"name": "edge-1", "uuid": "...", "host": "10.0.0.7",
                      "created": "", "ssh": {}, "local": false}]
        }
      }
    }
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "EDGEATTACH_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".edgeattach" / "config.json"
DEFAULT_NAMESPACE = "default"


class NamespaceNotFound(KeyError):
    """No namespace with the requested name."""

    def __str__(self) -> str:
        return f"namespace {self.args[0]!r} not found"


def resolve_config_path(explicit: str | Path | None = None) -> Path:
    """``--config`` wins, then ``$EDGEATTACH_CONFIG``, then the home default."""
    if explicit:
        return Path(explicit).expanduser()
    env = os.environ.get(CONFIG_ENV_VAR)
    if env:
        return Path(env).expanduser()
    return DEFAULT_CONFIG_PATH


def _known(cls: type, data: dict) -> dict:
    known = set(cls.__dataclass_fields__)
    return {k: v for k, v in data.items() if k in known}


@dataclass
class UserCredentials:
    email: str = ""
    password: str = ""  # base64-encoded
    access_token: str = ""
    refresh_token: str = ""

    @property
    def raw_password(self) -> str:
        if not self.password:
            return ""
        try:
            return base64.b64decode(self.password).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            # Older files kept the password in clear text.
            return self.password

    @classmethod
    def with_password(cls, email: str, password: str) -> UserCredentials:
        encoded = base64.b64encode(password.encode("utf-8")).decode("ascii")
        return cls(email=email, password=encoded)


@dataclass
class AgentRecord:
    name: str
    uuid: str = ""
    host: str = ""
    created: str = ""
    ssh: dict = field(default_factory=dict)
    local: bool = False


@dataclass
class Namespace:
    name: str
    endpoint: str = ""
    user: UserCredentials = field(default_factory=UserCredentials)
    agents: list[AgentRecord] = field(default_factory=list)
    local_control_plane: bool = False
    use_https: bool = False

    @classmethod
    def from_dict(cls, name: str, data: dict) -> Namespace:
        user = UserCredentials(**_known(UserCredentials, data.get("user") or {}))
        agents = [AgentRecord(**_known(AgentRecord, a)) for a in data.get("agents") or []]
        rest = _known(cls, data)
        rest.pop("name", None)
        rest.pop("user", None)
        rest.pop("agents", None)
        return cls(name=name, user=user, agents=agents, **rest)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("name")
        return data


class NamespaceStore:
    """In-memory view of the config file, written back with :meth:`flush`.

    Safe to share between threads; every mutation holds one lock.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = resolve_config_path(path)
        self.default_namespace = DEFAULT_NAMESPACE
        self._namespaces: dict[str, Namespace] = {}
        self._lock = threading.RLock()

    @classmethod
    def load(cls, path: str | Path | None = None) -> NamespaceStore:
        store = cls(path)
        if not store.path.exists():
            logger.warning("Config not found at %s, starting empty", store.path)
            return store
        with open(store.path) as f:
            data = json.load(f)
        store.default_namespace = data.get("default_namespace") or DEFAULT_NAMESPACE
        for name, ns in (data.get("namespaces") or {}).items():
            store._namespaces[name] = Namespace.from_dict(name, ns)
        return store

    def namespaces(self) -> list[str]:
        with self._lock:
            return sorted(self._namespaces)

    def add_namespace(self, namespace: Namespace) -> None:
        with self._lock:
            self._namespaces[namespace.name] = namespace

    def get_namespace(self, name: str = "") -> Namespace:
        name = name or self.default_namespace
        with self._lock:
            try:
                return self._namespaces[name]
            except KeyError:
                raise NamespaceNotFound(name) from None

    def update_user(self, name: str, access_token: str, refresh_token: str) -> None:
        with self._lock:
            user = self.get_namespace(name).user
            user.access_token = access_token
            user.refresh_token = refresh_token

    def replace_agents(self, name: str, agents: list[AgentRecord]) -> None:
        with self._lock:
            self.get_namespace(name).agents = list(agents)

    def flush(self) -> None:
        """Write the whole store atomically (temp file + rename)."""
        with self._lock:
            data = {
                "default_namespace": self.default_namespace,
                "namespaces": {n: ns.to_dict() for n, ns in self._namespaces.items()},
            }
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_name(self.path.name + ".tmp")
            with open(tmp, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        logger.debug("Config written to %s", self.path)
