"""Unit tests for PostgreSQLAdapter against a scripted in-memory connection."""

from __future__ import annotations

import asyncio
import logging

import psycopg
import pytest
from psycopg.errors import ObjectNotInPrerequisiteState

from pgdialect.adapter.postgres import PostgreSQLAdapter
from pgdialect.config import ConnectionOptions
from pgdialect.errors import InvalidArgumentError, PgDialectError
from pgdialect.query.query_expression import QueryExpression

# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_open_is_idempotent(adapter, fake_connection):
    await adapter.open()
    await adapter.open()
    assert adapter.raw_connection is fake_connection


@pytest.mark.asyncio
async def test_connect_failure_leaves_adapter_closed(monkeypatch):
    instance = PostgreSQLAdapter({"database": "missing"})

    async def refuse():
        raise psycopg.OperationalError("connection refused")

    monkeypatch.setattr(instance, "_connect", refuse)
    with pytest.raises(psycopg.OperationalError):
        await instance.open()
    assert instance.raw_connection is None


@pytest.mark.asyncio
async def test_close_swallows_and_logs_errors(adapter, fake_connection, caplog):
    caplog.set_level(logging.ERROR, logger="pgdialect")
    await adapter.connect()
    fake_connection.close_error = RuntimeError("socket already gone")
    await adapter.disconnect()
    assert adapter.raw_connection is None
    assert "trying to close database connection" in caplog.text


@pytest.mark.asyncio
async def test_close_without_connection_is_noop(adapter):
    await adapter.close()
    assert adapter.raw_connection is None


@pytest.mark.asyncio
async def test_async_context_manager(adapter, fake_connection):
    async with adapter as db:
        assert db.raw_connection is fake_connection
    assert fake_connection.closed


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def test_prepare_substitutes_placeholders(adapter):
    assert adapter.prepare("SELECT * FROM t WHERE a=? AND b=?", ["x'y", 1]) == (
        "SELECT * FROM t WHERE a='x''y' AND b=1"
    )


def test_prepare_skips_quoted_question_marks(adapter):
    assert adapter.prepare("SELECT 'why?' WHERE a=?", [None]) == "SELECT 'why?' WHERE a=NULL"


def test_prepare_without_values_returns_sql(adapter):
    assert adapter.prepare("SELECT ?") == "SELECT ?"


def test_prepare_with_missing_values_raises(adapter):
    with pytest.raises(InvalidArgumentError):
        adapter.prepare("SELECT ?, ?", [1])


@pytest.mark.asyncio
async def test_execute_raw_sql(adapter, fake_connection):
    fake_connection.on(r"FROM t WHERE", [{"a": 1}])
    rows = await adapter.execute("SELECT a FROM t WHERE b=?", [2])
    assert rows == [{"a": 1}]
    assert fake_connection.executed == ["SELECT a FROM t WHERE b=2"]


@pytest.mark.asyncio
async def test_execute_formats_query_expressions(adapter, fake_connection):
    fake_connection.on(r'FROM "Orders"', [{"id": 1}, {"id": 2}])
    rows = await adapter.execute(QueryExpression.from_table("Orders").with_take(2))
    assert rows == [{"id": 1}, {"id": 2}]
    assert fake_connection.executed == ['SELECT * FROM "Orders" LIMIT 2']


@pytest.mark.asyncio
async def test_execute_statement_without_rows(adapter, fake_connection):
    assert await adapter.execute("DELETE FROM t") == []


@pytest.mark.asyncio
async def test_execute_rejects_empty_statement(adapter, fake_connection):
    with pytest.raises(InvalidArgumentError):
        await adapter.execute("")
    assert adapter.raw_connection is None


@pytest.mark.asyncio
async def test_execute_logs_failing_statement(adapter, fake_connection, caplog):
    caplog.set_level(logging.ERROR, logger="pgdialect")
    fake_connection.fail(r"BROKEN", psycopg.errors.SyntaxError("syntax error at or near BROKEN"))
    with pytest.raises(psycopg.errors.SyntaxError):
        await adapter.execute("SELECT BROKEN")
    assert "SQL Error:SELECT BROKEN" in caplog.text


def test_format_delegates_to_formatter(adapter):
    assert adapter.format(QueryExpression.from_table("Orders")) == 'SELECT * FROM "Orders"'


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_transaction_commits(adapter, fake_connection):
    async def work():
        assert adapter.in_transaction
        await adapter.execute("UPDATE t SET a=1")
        return "done"

    assert await adapter.execute_in_transaction(work) == "done"
    assert fake_connection.executed == ["BEGIN TRANSACTION;", "UPDATE t SET a=1", "COMMIT TRANSACTION;"]
    assert not adapter.in_transaction


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(adapter, fake_connection):
    async def work():
        await adapter.execute("UPDATE t SET a=1")
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await adapter.execute_in_transaction(work)
    assert fake_connection.executed[-1] == "ROLLBACK TRANSACTION;"
    assert not fake_connection.statements("COMMIT")
    assert not adapter.in_transaction


@pytest.mark.asyncio
async def test_cancelled_transaction_rolls_back(adapter, fake_connection):
    started = asyncio.Event()

    async def work():
        await adapter.execute("UPDATE t SET a=1")
        started.set()
        await asyncio.sleep(10)

    task = asyncio.create_task(adapter.execute_in_transaction(work))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert fake_connection.executed == ["BEGIN TRANSACTION;", "UPDATE t SET a=1", "ROLLBACK TRANSACTION;"]
    assert not adapter.in_transaction


@pytest.mark.asyncio
async def test_statement_without_connection_raises(adapter):
    with pytest.raises(PgDialectError):
        await adapter._run("SELECT 1")


@pytest.mark.asyncio
async def test_nested_transaction_runs_inline(adapter, fake_connection):
    async def inner():
        await adapter.execute("UPDATE t SET a=2")

    async def outer():
        await adapter.execute_in_transaction(inner)

    await adapter.execute_in_transaction(outer)
    assert len(fake_connection.statements("BEGIN")) == 1
    assert len(fake_connection.statements("COMMIT")) == 1


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_last_identity(adapter, fake_connection):
    fake_connection.on(r"lastval", [{"lastval": 7}])
    assert await adapter.last_identity() == {"insert_id": 7}


@pytest.mark.asyncio
async def test_last_identity_without_sequence(adapter, fake_connection):
    fake_connection.fail(r"lastval", ObjectNotInPrerequisiteState("lastval is not yet defined in this session"))
    assert await adapter.last_identity() == {"insert_id": None}


@pytest.mark.asyncio
async def test_select_identity_seeds_from_max(adapter, fake_connection):
    fake_connection.on(r'MAX\("Orders"\."id"\)', [{"id": 41}])
    assert await adapter.select_identity("Orders", "id") == 42
    assert fake_connection.statements(r'CREATE TABLE "increment_id"')
    assert fake_connection.executed[-1] == (
        "INSERT INTO increment_id(entity, attribute, value) VALUES ('Orders', 'id', 42)"
    )


@pytest.mark.asyncio
async def test_select_identity_starts_at_one_for_empty_table(adapter, fake_connection):
    fake_connection.on(r'MAX\("Orders"\."id"\)', [{"id": None}])
    assert await adapter.select_identity("Orders", "id") == 1


@pytest.mark.asyncio
async def test_select_identity_increments_existing_counter(adapter, fake_connection):
    fake_connection.on(r'MAX\("version"\)', [{"version": "1.0"}])
    fake_connection.on(
        r"FROM increment_id WHERE", [{"id": 3, "entity": "Orders", "attribute": "id", "value": 10}]
    )
    assert await adapter.select_identity("Orders", "id") == 11
    assert fake_connection.executed[-1] == "UPDATE increment_id SET value=11 WHERE id=3"
    assert not fake_connection.statements(r'CREATE TABLE "increment_id"')


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_options_from_mapping():
    options = ConnectionOptions.coerce({"user": "app", "database": "shop", "port": 6432})
    assert options.port == 6432
    assert "dbname=shop" in options.conninfo
    assert "user=app" in options.conninfo
    assert "password" not in options.conninfo


def test_options_from_environment(monkeypatch):
    monkeypatch.setenv("PGDIALECT_HOST", "db.internal")
    monkeypatch.setenv("PGDIALECT_DATABASE", "orders")
    options = ConnectionOptions.coerce(None)
    assert options.host == "db.internal"
    assert options.database == "orders"


def test_options_reject_invalid_port():
    with pytest.raises(ValueError):
        ConnectionOptions(port=70000)
