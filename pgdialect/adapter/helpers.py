"""Schema helpers returned by :class:`~pgdialect.adapter.postgres.PostgreSQLAdapter`.

Each helper is bound to one adapter and one object name.  Helpers are cheap
to create and hold no state except :class:`IndexesHelper`, which caches the
index list for its own lifetime.
"""
from __future__ import annotations

import re
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from pgdialect.adapter.models import ColumnMetadata, FieldDescriptor, IndexDescriptor
from pgdialect.adapter.types import format_type
from pgdialect.errors import InvalidArgumentError
from pgdialect.logger import get_logger

if TYPE_CHECKING:
    from pgdialect.adapter.postgres import PostgreSQLAdapter
    from pgdialect.query.query_expression import QueryExpression

logger = get_logger(__name__)

DEFAULT_SCHEMA = "public"

_QUALIFIED_NAME = re.compile(r"(\w+)\.(\w+)")


def split_name(name: str) -> tuple[str, str]:
    """Split ``schema.object`` into its parts; the schema defaults to ``public``."""
    match = _QUALIFIED_NAME.match(name)
    if match:
        return match.group(1), match.group(2)
    return DEFAULT_SCHEMA, name


def coerce_fields(fields: Any, argument: str = "fields") -> list[FieldDescriptor]:
    """Validate a list of field descriptors (models or mappings).

    Raises:
        InvalidArgumentError: If ``fields`` is not a list or an item is malformed.
    """
    if fields is None:
        return []
    if not isinstance(fields, (list, tuple)):
        raise InvalidArgumentError(
            f"Invalid argument type. Expected a list of fields, got {type(fields).__name__}.",
            argument=argument,
        )
    try:
        return [
            f if isinstance(f, FieldDescriptor) else FieldDescriptor.model_validate(f)
            for f in fields
        ]
    except ValidationError as exc:
        raise InvalidArgumentError(f"Invalid field descriptor: {exc}", argument=argument) from exc


class TableHelper:
    """Introspection and additive DDL for one table."""

    def __init__(self, adapter: PostgreSQLAdapter, name: str) -> None:
        self._adapter = adapter
        self.name = name
        self.schema, self.table = split_name(name)

    @property
    def escaped_name(self) -> str:
        return self._adapter.formatter.escape_name(self.name)

    async def exists(self) -> bool:
        rows = await self._adapter.execute(
            "SELECT COUNT(*) AS \"count\" FROM information_schema.tables "
            "WHERE table_schema=? AND table_type='BASE TABLE' AND table_name=?",
            [self.schema, self.table],
        )
        return rows[0]["count"] > 0

    async def version(self) -> str:
        """Highest applied migration version for this table, ``'0.0'`` if none."""
        rows = await self._adapter.execute(
            'SELECT MAX("version") AS "version" FROM "migrations" WHERE "appliesTo"=?',
            [self.name],
        )
        if not rows:
            return "0.0"
        return rows[0]["version"] or "0.0"

    async def has_sequence(self) -> bool:
        """True when a column of this table defaults to ``nextval(...)``."""
        rows = await self._adapter.execute(
            "SELECT COUNT(*) AS \"count\" FROM information_schema.columns "
            "WHERE table_name=? AND table_schema=? "
            "AND (\"column_default\" ~ '^nextval\\((.*?)\\)$')",
            [self.table, self.schema],
        )
        return rows[0]["count"] > 0

    async def columns(self) -> list[ColumnMetadata]:
        """Live column metadata, read fresh on every call."""
        rows = await self._adapter.execute(
            'SELECT column_name AS "name", ordinal_position AS "ordinal", data_type AS "type", '
            'character_maximum_length AS "size", is_nullable AS "nullable", '
            'column_default AS "defaultValue" '
            "FROM information_schema.columns WHERE table_name=? AND table_schema=? "
            "ORDER BY ordinal_position",
            [self.table, self.schema],
        )
        return [
            ColumnMetadata(
                name=row["name"],
                ordinal=row["ordinal"],
                type=row["type"],
                size=row["size"],
                nullable=row["nullable"] == "YES",
                default_value=row["defaultValue"],
            )
            for row in rows
        ]

    async def create(self, fields: Sequence[FieldDescriptor | dict[str, Any]]) -> None:
        """``CREATE TABLE`` from ``fields``; navigation-only fields are skipped.

        Raises:
            InvalidArgumentError: If ``fields`` is not a list or is empty.
        """
        descriptors = coerce_fields(fields)
        if not descriptors:
            raise InvalidArgumentError(
                "Invalid argument. Fields collection cannot be empty.", argument="fields"
            )
        fmt = self._adapter.formatter
        columns = [f for f in descriptors if not f.one_to_many]
        parts = [f"{fmt.escape_name(f.name)} {format_type(f)}" for f in columns]
        keys = [fmt.escape_name(f.name) for f in columns if f.primary]
        if keys:
            parts.append(f"PRIMARY KEY({', '.join(keys)})")
        await self._adapter.execute(f"CREATE TABLE {self.escaped_name} ({', '.join(parts)})")

    async def add(self, fields: Sequence[FieldDescriptor | dict[str, Any]]) -> None:
        """``ALTER TABLE ... ADD COLUMN`` for each field; no-op for an empty list."""
        descriptors = coerce_fields(fields)
        if not descriptors:
            return
        fmt = self._adapter.formatter
        sql = ";".join(
            f"ALTER TABLE {self.escaped_name} ADD COLUMN {fmt.escape_name(f.name)} {format_type(f)}"
            for f in descriptors
        )
        await self._adapter.execute(sql)

    async def change(self, fields: Sequence[FieldDescriptor | dict[str, Any]]) -> None:
        """Alter column types and nullability; no-op for an empty list."""
        descriptors = coerce_fields(fields)
        if not descriptors:
            return
        fmt = self._adapter.formatter
        statements = [
            f"ALTER TABLE {self.escaped_name} ALTER COLUMN {fmt.escape_name(f.name)} "
            f"TYPE {format_type(f, 'type')};"
            for f in descriptors
        ]
        statements.extend(
            f"ALTER TABLE {self.escaped_name} ALTER COLUMN {fmt.escape_name(f.name)} "
            f"{'DROP NOT NULL' if f.nullable else 'SET NOT NULL'};"
            for f in descriptors
        )
        await self._adapter.execute("".join(statements))


class ViewHelper:
    """Existence check, drop and (transactional) re-creation of one view."""

    def __init__(self, adapter: PostgreSQLAdapter, name: str) -> None:
        self._adapter = adapter
        self.name = name
        self.schema, self.view = split_name(name)

    async def exists(self) -> bool:
        rows = await self._adapter.execute(
            'SELECT COUNT(*) AS "count" FROM "information_schema"."tables" '
            "WHERE \"table_schema\"=? AND \"table_type\"='VIEW' AND \"table_name\"=?",
            [self.schema, self.view],
        )
        return rows[0]["count"] > 0

    async def drop(self) -> None:
        if await self.exists():
            await self._adapter.execute(f"DROP VIEW {self._adapter.formatter.escape_name(self.name)}")

    async def create(self, query: QueryExpression | dict[str, Any] | str) -> None:
        """Replace the view with ``CREATE VIEW <name> AS <query>``.

        Drop and create run in one transaction, so a failing definition
        leaves the previous view in place.
        """
        fmt = self._adapter.formatter

        async def replace() -> None:
            await self.drop()
            await self._adapter.execute(f"CREATE VIEW {fmt.escape_name(self.name)} AS {fmt.format(query)}")

        await self._adapter.execute_in_transaction(replace)


class IndexesHelper:
    """Index management for one table.

    :meth:`list` results are cached on the helper until :meth:`drop` or
    :meth:`create` changes the table's indexes.
    """

    def __init__(self, adapter: PostgreSQLAdapter, table: str) -> None:
        self._adapter = adapter
        self.name = table
        self.schema, self.table = split_name(table)
        self._indexes: list[IndexDescriptor] | None = None

    async def list(self) -> list[IndexDescriptor]:
        if self._indexes is not None:
            return self._indexes
        rows = await self._adapter.execute(
            'SELECT i.relname AS "name", a.attname AS "column" '
            "FROM pg_class t "
            "JOIN pg_index ix ON t.oid = ix.indrelid "
            "JOIN pg_class i ON i.oid = ix.indexrelid "
            "JOIN pg_namespace n ON n.oid = t.relnamespace "
            "JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = ANY(ix.indkey) "
            "WHERE t.relkind = 'r' AND n.nspname=? AND t.relname=? "
            "ORDER BY i.relname, array_position(ix.indkey::int2[], a.attnum)",
            [self.schema, self.table],
        )
        indexes: dict[str, IndexDescriptor] = {}
        for row in rows:
            index = indexes.setdefault(row["name"], IndexDescriptor(name=row["name"]))
            index.columns.append(row["column"])
        self._indexes = list(indexes.values())
        return self._indexes

    async def create(self, name: str, columns: str | Sequence[str]) -> bool:
        """Create index ``name`` over ``columns`` unless it already matches.

        An existing index with the same name and the same ordered columns is
        left alone; one with different columns is dropped and recreated.

        Returns:
            ``True`` when the index was (re)created.
        """
        wanted = [columns] if isinstance(columns, str) else list(columns)
        if not wanted:
            raise InvalidArgumentError("An index requires at least one column.", argument="columns")
        existing = next((ix for ix in await self.list() if ix.name == name), None)
        if existing is not None:
            if existing.columns == wanted:
                return False
            await self.drop(name)
        fmt = self._adapter.formatter
        column_sql = ", ".join(fmt.escape_name(c) for c in wanted)
        await self._adapter.execute(
            f"CREATE INDEX {fmt.escape_name(name)} ON "
            f"{fmt.escape_name(self.schema)}.{fmt.escape_name(self.table)} ({column_sql})"
        )
        self._indexes = None
        return True

    async def drop(self, name: str) -> None:
        fmt = self._adapter.formatter
        await self._adapter.execute(
            f"DROP INDEX IF EXISTS {fmt.escape_name(self.schema)}.{fmt.escape_name(name)}"
        )
        self._indexes = None


class DatabaseHelper:
    """Existence check and creation of a database on the connected server."""

    def __init__(self, adapter: PostgreSQLAdapter, name: str) -> None:
        self._adapter = adapter
        self.name = name

    async def exists(self) -> bool:
        rows = await self._adapter.execute(
            'SELECT COUNT(*) AS "count" FROM pg_database WHERE datname=?', [self.name]
        )
        return rows[0]["count"] > 0

    async def create(self) -> None:
        """``CREATE DATABASE`` unless it already exists (never inside a transaction)."""
        if await self.exists():
            return
        logger.info("Creating database %s", self.name)
        await self._adapter.execute(f"CREATE DATABASE {self._adapter.formatter.escape_name(self.name)}")


class _CatalogHelper:
    table_type: str = "BASE TABLE"

    def __init__(self, adapter: PostgreSQLAdapter) -> None:
        self._adapter = adapter

    async def list(self) -> list[dict[str, Any]]:
        """``[{"name": ..., "schema": ...}]`` for every user object of this kind."""
        return await self._adapter.execute(
            'SELECT table_name AS "name", table_schema AS "schema" '
            "FROM information_schema.tables WHERE table_type=? "
            "AND table_schema NOT IN ('pg_catalog', 'information_schema') "
            "ORDER BY table_schema, table_name",
            [self.table_type],
        )


class TablesHelper(_CatalogHelper):
    table_type = "BASE TABLE"


class ViewsHelper(_CatalogHelper):
    table_type = "VIEW"
