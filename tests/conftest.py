"""pytest configuration for edgeattach tests."""

import pytest

from fakes import FakeConnection, FakeConnector


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def connector(fake_conn) -> FakeConnector:
    return FakeConnector(fake_conn)
