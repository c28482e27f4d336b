"""PostgreSQL connection and schema adapter.

One adapter owns at most one ``psycopg.AsyncConnection``.  The connection is
opened lazily by the first statement and runs in autocommit mode; explicit
``BEGIN`` / ``COMMIT`` / ``ROLLBACK`` statements are issued by
:meth:`PostgreSQLAdapter.execute_in_transaction`.

Usage::

    adapter = PostgreSQLAdapter({"user": "app", "database": "shop"})
    rows = await adapter.execute(
        QueryExpression.from_table("Orders").with_take(10)
    )
    await adapter.migrate(Migration(applies_to="Orders", version="1.1", add=[...]))
    await adapter.close()

An adapter is not safe for concurrent use: statements issued concurrently on
one instance share its single connection and transaction marker.
"""
from __future__ import annotations

import re
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

import psycopg
from psycopg.errors import ObjectNotInPrerequisiteState
from psycopg.rows import dict_row
from pydantic import ValidationError

from pgdialect.adapter.helpers import (
    DatabaseHelper,
    IndexesHelper,
    TableHelper,
    TablesHelper,
    ViewHelper,
    ViewsHelper,
)
from pgdialect.adapter.models import FieldDescriptor, Migration, MigrationResult
from pgdialect.adapter.types import CHARACTER_TYPES, TypeMode, format_type
from pgdialect.config import ConnectionOptions
from pgdialect.errors import InvalidArgumentError, PgDialectError, UnsupportedMigrationError
from pgdialect.formatter.postgres import PostgreSQLFormatter
from pgdialect.logger import get_logger
from pgdialect.query.operands import call, field_ref
from pgdialect.query.query_expression import QueryExpression, SelectItem

logger = get_logger(__name__)

T = TypeVar("T")

MIGRATIONS_TABLE = "migrations"

_CREATE_MIGRATIONS_TABLE = (
    'CREATE TABLE migrations(id SERIAL NOT NULL, "appliesTo" varchar(80) NOT NULL, '
    '"model" varchar(120) NULL, "description" varchar(512), "version" varchar(40) NOT NULL)'
)

_INSERT_MIGRATION = (
    'INSERT INTO migrations("appliesTo", "model", "version", "description") VALUES (?,?,?,?)'
)

#: Side table used by :meth:`PostgreSQLAdapter.select_identity`.
INCREMENT_MIGRATION = Migration(
    applies_to="increment_id",
    model="increments",
    description="Increments migration (version 1.0)",
    version="1.0",
    add=[
        FieldDescriptor(name="id", type="Counter", primary=True),
        FieldDescriptor(name="entity", type="Text", size=120),
        FieldDescriptor(name="attribute", type="Text", size=120),
        FieldDescriptor(name="value", type="Integer"),
    ],
)

# a '?' placeholder, or a single-quoted literal that may itself contain '?'
_PLACEHOLDER = re.compile(r"'(?:[^']|'')*'|\?")


@dataclass
class ConnectionState:
    """Mutable per-adapter state.

    Attributes:
        connection: The open connection, or ``None`` when closed.
        transaction: True while :meth:`PostgreSQLAdapter.execute_in_transaction`
            is running.
        migrations_ready: The ``migrations`` audit table is known to exist.
    """

    connection: psycopg.AsyncConnection[Any] | None = None
    transaction: bool = False
    migrations_ready: bool = False


class PostgreSQLAdapter:
    """Executes statements and manages schema on a single PostgreSQL connection.

    Args:
        options: :class:`~pgdialect.config.ConnectionOptions`, a mapping of
            its fields, or ``None`` to read ``PGDIALECT_*`` environment
            variables.
    """

    def __init__(self, options: ConnectionOptions | dict[str, Any] | None = None) -> None:
        self.options = ConnectionOptions.coerce(options)
        self.formatter = PostgreSQLFormatter()
        self._state = ConnectionState()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @property
    def raw_connection(self) -> psycopg.AsyncConnection[Any] | None:
        return self._state.connection

    @property
    def in_transaction(self) -> bool:
        return self._state.transaction

    async def open(self) -> None:
        """Open the connection; a no-op when it is already open.

        Raises:
            psycopg.Error: If the server cannot be reached; the adapter stays closed.
        """
        if self._state.connection is not None:
            return
        start = time.perf_counter()
        try:
            self._state.connection = await self._connect()
        except Exception:
            self._state.connection = None
            raise
        logger.debug("SQL (Execution Time:%.1fms): Connect", (time.perf_counter() - start) * 1000)

    async def _connect(self) -> psycopg.AsyncConnection[Any]:
        return await psycopg.AsyncConnection.connect(self.options.conninfo, autocommit=True)

    async def close(self) -> None:
        """Close the connection.

        Never raises: teardown errors are logged and the handle is discarded.
        """
        connection = self._state.connection
        if connection is None:
            return
        try:
            await connection.close()
        except Exception:
            logger.exception("An error occurred while trying to close database connection.")
        finally:
            self._state.connection = None
            self._state.transaction = False

    connect = open
    disconnect = close

    async def __aenter__(self) -> PostgreSQLAdapter:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def format(self, query: QueryExpression | dict[str, Any] | str) -> str:
        """Format ``query`` as PostgreSQL SQL text."""
        return self.formatter.format(query)

    def prepare(self, sql: str, values: Sequence[Any] | None = None) -> str:
        """Replace each ``?`` placeholder with an escaped literal.

        Placeholders inside quoted literals are left alone.

        Raises:
            InvalidArgumentError: If there are fewer values than placeholders.
        """
        if values is None:
            return sql
        remaining = iter(values)
        missing = object()

        def substitute(match: re.Match[str]) -> str:
            token = match.group(0)
            if token != "?":
                return token
            value = next(remaining, missing)
            if value is missing:
                raise InvalidArgumentError(
                    "Statement has more placeholders than values.", argument="values"
                )
            return self.formatter.escape(value)

        return _PLACEHOLDER.sub(substitute, sql)

    async def execute(
        self,
        query: QueryExpression | dict[str, Any] | str,
        values: Sequence[Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Execute a statement and return its rows (``[]`` for row-less statements).

        Args:
            query: Raw SQL (with optional ``?`` placeholders) or a query
                expression, which is formatted first.
            values: Values for the ``?`` placeholders.

        Raises:
            InvalidArgumentError: If ``query`` does not produce SQL text.
            psycopg.Error: Whatever the server reports; the statement is logged.
        """
        sql = query if isinstance(query, str) else self.formatter.format(query)
        if not isinstance(sql, str) or not sql:
            raise InvalidArgumentError(
                "The executing command is of the wrong type or empty.", argument="query"
            )
        prepared = self.prepare(sql, values)
        await self.open()
        start = time.perf_counter()
        try:
            rows = await self._run(prepared)
        except psycopg.Error:
            logger.error("SQL Error:%s", prepared)
            raise
        logger.debug(
            "SQL (Execution Time:%.1fms):%s, Parameters:%s",
            (time.perf_counter() - start) * 1000,
            prepared,
            values,
        )
        return rows

    async def _run(self, sql: str) -> list[dict[str, Any]]:
        connection = self._state.connection
        if connection is None:
            raise PgDialectError("The database connection is not open.")
        async with connection.cursor(row_factory=dict_row) as cur:
            await cur.execute(sql)
            if cur.description is None:
                return []
            return await cur.fetchall()

    async def execute_in_transaction(self, func: Callable[[], Awaitable[T]]) -> T:
        """Run ``func`` inside ``BEGIN`` / ``COMMIT``, rolling back if it raises.

        A call made while a transaction is already running executes ``func``
        inline as part of that transaction.  Cancellation of ``func`` also
        rolls back.
        """
        await self.open()
        if self._state.transaction:
            return await func()
        await self._run("BEGIN TRANSACTION;")
        self._state.transaction = True
        try:
            result = await func()
        except BaseException:
            await self._rollback()
            raise
        else:
            await self._run("COMMIT TRANSACTION;")
            return result
        finally:
            self._state.transaction = False

    async def _rollback(self) -> None:
        # the audit table may have been created inside the rolled-back transaction
        self._state.migrations_ready = False
        try:
            await self._run("ROLLBACK TRANSACTION;")
        except psycopg.Error:
            logger.exception("An error occurred while rolling back transaction.")

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def last_identity(self) -> dict[str, Any]:
        """``{"insert_id": <last sequence value>}``; ``None`` before any sequence use."""
        await self.open()
        try:
            rows = await self._run("SELECT lastval()")
        except ObjectNotInPrerequisiteState:
            return {"insert_id": None}
        return {"insert_id": rows[0]["lastval"] if rows else None}

    async def select_identity(self, entity: str, attribute: str) -> int:
        """Next value of a software-maintained counter for ``entity.attribute``.

        The first call seeds the counter from ``MAX(attribute)`` of the
        entity's table.  Concurrent callers are not serialized.
        """
        await self.migrate(INCREMENT_MIGRATION.model_copy(deep=True))
        rows = await self.execute(
            "SELECT * FROM increment_id WHERE entity=? AND attribute=?", [entity, attribute]
        )
        if rows:
            value = int(rows[0]["value"]) + 1
            await self.execute("UPDATE increment_id SET value=? WHERE id=?", [value, rows[0]["id"]])
            return value
        query = QueryExpression.from_table(entity).with_select(
            SelectItem(expr=call("max", field_ref(f"{entity}.{attribute}")), alias=attribute)
        )
        result = await self.execute(query)
        current = result[0][attribute] if result else None
        value = int(current) + 1 if current is not None else 1
        await self.execute(
            "INSERT INTO increment_id(entity, attribute, value) VALUES (?,?,?)",
            [entity, attribute, value],
        )
        return value

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def format_type(self, field: FieldDescriptor | dict[str, Any], mode: TypeMode = None) -> str:
        if not isinstance(field, FieldDescriptor):
            field = FieldDescriptor.model_validate(field)
        return format_type(field, mode)

    def table(self, name: str) -> TableHelper:
        return TableHelper(self, name)

    def view(self, name: str) -> ViewHelper:
        return ViewHelper(self, name)

    def indexes(self, table: str) -> IndexesHelper:
        return IndexesHelper(self, table)

    def database(self, name: str) -> DatabaseHelper:
        return DatabaseHelper(self, name)

    def tables(self) -> TablesHelper:
        return TablesHelper(self)

    def views(self) -> ViewsHelper:
        return ViewsHelper(self)

    async def create_view(self, name: str, query: QueryExpression | dict[str, Any] | str) -> None:
        await self.view(name).create(query)

    async def refresh_view(self, name: str) -> None:
        """``REFRESH MATERIALIZED VIEW``."""
        await self.execute(f"REFRESH MATERIALIZED VIEW {self.formatter.escape_name(name)}")

    # ------------------------------------------------------------------
    # Migrations
    # ------------------------------------------------------------------

    async def migrate(self, migration: Migration | dict[str, Any]) -> MigrationResult:
        """Apply a versioned, additive migration at most once per version.

        1. Ensure the ``migrations`` audit table exists.
        2. Skip (``updated=True``, ``applied=False``) unless the requested
           version is newer than the highest applied one (text comparison).
        3. Create the table, or add missing columns and widen columns whose
           size changed.
        4. Record an audit row.

        Steps 3 and 4 run in one transaction.

        Raises:
            InvalidArgumentError: For a malformed descriptor, before any I/O.
            UnsupportedMigrationError: If ``remove`` or ``change`` is non-empty.
        """
        migration = self._validate_migration(migration)
        await self.open()
        await self._ensure_migrations_table()

        target = self.table(migration.applies_to)
        if await target.version() >= migration.version:
            migration.updated = True
            logger.debug(
                "Migration %s@%s already applied", migration.applies_to, migration.version
            )
            return MigrationResult(applied=False)

        async def apply() -> None:
            if not await target.exists():
                await target.create(migration.add)
            else:
                await self._alter(target, migration.add)
            await self.execute(
                _INSERT_MIGRATION,
                [migration.applies_to, migration.model, migration.version, migration.description],
            )

        await self.execute_in_transaction(apply)
        logger.info("Migration %s@%s applied", migration.applies_to, migration.version)
        return MigrationResult(applied=True)

    @staticmethod
    def _validate_migration(migration: Migration | dict[str, Any]) -> Migration:
        if not isinstance(migration, Migration):
            try:
                migration = Migration.model_validate(migration)
            except ValidationError as exc:
                raise InvalidArgumentError(
                    f"Invalid migration descriptor: {exc}", argument="migration"
                ) from exc
        if not migration.applies_to:
            raise InvalidArgumentError("Migration target table is undefined.", argument="applies_to")
        if migration.remove:
            raise UnsupportedMigrationError("remove", migration.applies_to)
        if migration.change:
            raise UnsupportedMigrationError("change", migration.applies_to)
        return migration

    async def _ensure_migrations_table(self) -> None:
        if self._state.migrations_ready:
            return
        if not await self.table(MIGRATIONS_TABLE).exists():
            await self.execute(_CREATE_MIGRATIONS_TABLE)
        self._state.migrations_ready = True

    @staticmethod
    async def _alter(target: TableHelper, fields: list[FieldDescriptor]) -> None:
        live = {column.name: column for column in await target.columns()}
        added: list[FieldDescriptor] = []
        resized: list[FieldDescriptor] = []
        for field in fields:
            if field.one_to_many:
                continue
            column = live.get(field.name)
            if column is None:
                added.append(field)
            elif field.size and field.type in CHARACTER_TYPES and column.size != field.size:
                resized.append(field)
        await target.add(added)
        await target.change(resized)
