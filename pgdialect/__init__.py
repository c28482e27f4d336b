"""pgdialect – PostgreSQL dialect adapter for engine-independent query expressions.

Public API
----------
``format_query``
    Parse a query expression (JSON text, mapping or model) and format it as
    SQL for a registered dialect.

``PostgreSQLAdapter``
    Async connection, transaction, identity and schema management
    (tables, views, indexes, versioned additive migrations).

Re-exported types
-----------------
``QueryExpression`` and its operands, ``PostgreSQLFormatter``,
``FieldDescriptor``, ``Migration``, ``ConnectionOptions`` and all error
classes.

Extensibility
-------------
Dialect formatters are registered with ``FormatterFactory``::

    from pgdialect.formatter.registry import FormatterFactory

    @FormatterFactory.register("timescale")
    class TimescaleFormatter(PostgreSQLFormatter):
        ...

Extra query methods can be added to an existing formatter class::

    PostgreSQLFormatter.register_method(
        "unaccent", lambda fmt, p0: f"unaccent({fmt.escape(p0)})"
    )
"""

from __future__ import annotations

import json
from typing import Any

from pgdialect.adapter.models import (
    ColumnMetadata,
    FieldDescriptor,
    IndexDescriptor,
    Migration,
    MigrationResult,
)
from pgdialect.adapter.postgres import PostgreSQLAdapter
from pgdialect.config import ConnectionOptions
from pgdialect.errors import (
    CompilationError,
    InvalidArgumentError,
    PgDialectError,
    UnsupportedMigrationError,
)
from pgdialect.formatter.base import SqlFormatter
from pgdialect.formatter.postgres import PostgreSQLFormatter
from pgdialect.formatter.registry import FormatterFactory, sql_method
from pgdialect.query.member import MemberResolvingEvent
from pgdialect.query.operands import (
    FieldOperand,
    MethodOperand,
    Operand,
    QueryOperand,
    ValueOperand,
    ValuesOperand,
    WhereOperand,
    call,
    field_ref,
    literal,
)
from pgdialect.query.query_expression import QueryExpression, SelectItem

__all__ = [
    # Core
    "format_query",
    "PostgreSQLAdapter",
    "ConnectionOptions",
    # Query model
    "QueryExpression",
    "SelectItem",
    "MemberResolvingEvent",
    "Operand",
    "FieldOperand",
    "ValueOperand",
    "MethodOperand",
    "QueryOperand",
    "ValuesOperand",
    "WhereOperand",
    "call",
    "field_ref",
    "literal",
    # Formatting
    "SqlFormatter",
    "PostgreSQLFormatter",
    "FormatterFactory",
    "sql_method",
    # Schema
    "FieldDescriptor",
    "ColumnMetadata",
    "IndexDescriptor",
    "Migration",
    "MigrationResult",
    # Errors
    "PgDialectError",
    "CompilationError",
    "InvalidArgumentError",
    "UnsupportedMigrationError",
]


def format_query(query: QueryExpression | dict[str, Any] | str, dialect: str = "postgres") -> str:
    """Format a query expression as SQL text::

        sql = pgdialect.format_query(
            '{"$from": {"table": "Orders"}, "$take": 10}'
        )
        # SELECT * FROM "Orders" LIMIT 10

    Args:
        query: A ``QueryExpression``, its JSON-shaped mapping, or JSON text.
        dialect: Registered dialect name.

    Raises:
        InvalidArgumentError: If ``query`` is not valid JSON or not a valid
            query expression.
        CompilationError: If the expression cannot be expressed in the dialect.
    """
    if isinstance(query, str):
        try:
            query = json.loads(query)
        except json.JSONDecodeError as exc:
            raise InvalidArgumentError(f"Invalid JSON: {exc}", argument="query") from exc
    if not isinstance(query, QueryExpression):
        try:
            query = QueryExpression.model_validate(query)
        except ValueError as exc:
            raise InvalidArgumentError(
                f"QueryExpression structure is invalid: {exc}", argument="query"
            ) from exc
    return FormatterFactory.create(dialect).format(query)
