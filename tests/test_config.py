"""Tests for the namespace configuration store and session registry."""

from __future__ import annotations

import json
import time

import pytest

from edgeattach.config import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_PATH,
    AgentRecord,
    Namespace,
    NamespaceNotFound,
    NamespaceStore,
    UserCredentials,
    resolve_config_path,
)
from edgeattach.session.registry import SessionRecord, SessionRegistry


# ── Config store ──────────────────────────────────────────────────


class TestResolveConfigPath:
    def test_explicit_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.json"))
        assert resolve_config_path(tmp_path / "cli.json") == tmp_path / "cli.json"

    def test_env_var(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.json"))
        assert resolve_config_path() == tmp_path / "env.json"

    def test_default(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert resolve_config_path() == DEFAULT_CONFIG_PATH


class TestUserCredentials:
    def test_password_is_stored_encoded(self):
        user = UserCredentials.with_password("ops@example.com", "s3cret")
        assert user.password != "s3cret"
        assert user.raw_password == "s3cret"

    def test_empty_password(self):
        assert UserCredentials().raw_password == ""


class TestNamespaceStore:
    def test_load_missing_file(self, tmp_path):
        store = NamespaceStore.load(tmp_path / "nope.json")
        assert store.namespaces() == []
        assert store.default_namespace == "default"

    def test_flush_and_load(self, tmp_path):
        path = tmp_path / "cfg" / "config.json"
        store = NamespaceStore(path)
        store.default_namespace = "prod"
        store.add_namespace(
            Namespace(
                "prod",
                endpoint="10.0.0.5",
                user=UserCredentials.with_password("ops@example.com", "pw"),
                agents=[AgentRecord("edge-1", uuid="a1", ssh={"port": 22})],
                use_https=True,
            )
        )
        store.flush()
        assert not path.with_name("config.json.tmp").exists()

        loaded = NamespaceStore.load(path)
        ns = loaded.get_namespace()
        assert ns.name == "prod"
        assert ns.use_https is True
        assert ns.user.raw_password == "pw"
        assert ns.agents == [AgentRecord("edge-1", uuid="a1", ssh={"port": 22})]

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "namespaces": {
                "default": {
                    "endpoint": "c:51121",
                    "kubeConfig": "/tmp/kube",
                    "user": {"email": "a@b", "legacy": True},
                    "agents": [{"name": "x", "extra": 1}],
                }
            }
        }))
        ns = NamespaceStore.load(path).get_namespace("default")
        assert ns.endpoint == "c:51121"
        assert ns.user.email == "a@b"
        assert ns.agents[0].name == "x"

    def test_get_missing_namespace(self, tmp_path):
        store = NamespaceStore(tmp_path / "config.json")
        with pytest.raises(NamespaceNotFound, match="'ghost' not found"):
            store.get_namespace("ghost")
        with pytest.raises(KeyError):
            store.get_namespace("ghost")

    def test_update_user_and_replace_agents(self, tmp_path):
        store = NamespaceStore(tmp_path / "config.json")
        store.add_namespace(Namespace("default"))
        store.update_user("default", "acc", "ref")
        store.replace_agents("default", [AgentRecord("edge-9")])
        ns = store.get_namespace("default")
        assert (ns.user.access_token, ns.user.refresh_token) == ("acc", "ref")
        assert [a.name for a in ns.agents] == ["edge-9"]


# ── Session registry ──────────────────────────────────────────────


class TestSessionRegistry:
    def test_add_get_remove(self):
        registry = SessionRegistry()
        record = SessionRecord("s1", "msvc-1")
        registry.add(record)
        assert registry.get("s1") is record
        assert registry.active_count() == 1
        registry.remove("s1")
        assert registry.get("s1") is None
        registry.remove("s1")

    def test_cleanup_expired(self):
        registry = SessionRegistry()
        stale = SessionRecord("old", "m", last_activity=time.monotonic() - 1000)
        fresh = SessionRecord("new", "m")
        registry.add(stale)
        registry.add(fresh)
        assert registry.cleanup_expired(timeout=60) == ["old"]
        assert registry.active_count() == 1

    def test_touch_refreshes_activity(self):
        record = SessionRecord("s1", "m", last_activity=time.monotonic() - 1000)
        assert record.is_expired(timeout=60)
        record.touch()
        assert not record.is_expired(timeout=60)
