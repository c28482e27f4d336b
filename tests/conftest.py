"""Shared pytest fixtures for pgdialect unit tests."""
from __future__ import annotations

import pytest

from pgdialect.adapter.postgres import PostgreSQLAdapter
from pgdialect.formatter.postgres import PostgreSQLFormatter
from tests.fixtures import FakeConnection


@pytest.fixture
def formatter() -> PostgreSQLFormatter:
    return PostgreSQLFormatter()


@pytest.fixture
def fake_connection() -> FakeConnection:
    """Scripted connection; migrations audit table and versions start empty."""
    conn = FakeConnection()
    conn.on(r"information_schema\.tables", [{"count": 0}])
    conn.on(r'MAX\("version"\)', [{"version": None}])
    return conn


@pytest.fixture
def adapter(monkeypatch: pytest.MonkeyPatch, fake_connection: FakeConnection) -> PostgreSQLAdapter:
    """Adapter whose connection is the scripted ``fake_connection``."""
    instance = PostgreSQLAdapter({"user": "test", "database": "test"})

    async def connect() -> FakeConnection:
        return fake_connection

    monkeypatch.setattr(instance, "_connect", connect)
    return instance
