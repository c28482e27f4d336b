"""Formatter base class: QueryExpression → SQL text.

The Template Method pattern (GoF) is used:

- ``SqlFormatter`` defines the statement skeletons (select / insert /
  update / delete), literal escaping, identifier quoting and method
  dispatch, using generic ANSI conventions.
- Dialect formatters such as
  :class:`~pgdialect.formatter.postgres.PostgreSQLFormatter` override the
  dialect-specific steps (string escaping, paging, function set).

Query methods (``{"method": "year", "args": [...]}``) are dispatched through
a :class:`~pgdialect.formatter.registry.MethodTable` built when the
formatter class is defined and bound in ``__init__``.
"""
from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID

from pgdialect.errors import CompilationError
from pgdialect.formatter.clause_builders import (
    FromClauseBuilder,
    GroupClauseBuilder,
    JoinClauseBuilder,
    OrderClauseBuilder,
    SelectClauseBuilder,
    WhereClauseBuilder,
)
from pgdialect.formatter.registry import MethodHandler, MethodTable, sql_method
from pgdialect.query.expressions import is_comparison, is_logical
from pgdialect.query.member import MemberPath, MemberResolvingEvent
from pgdialect.query.operands import (
    FieldOperand,
    MethodOperand,
    Operand,
    QueryOperand,
    ValueOperand,
    ValuesOperand,
    WhereOperand,
    as_operand,
    is_operand,
    to_operand,
)
from pgdialect.query.query_expression import QueryExpression

_BACKSLASH_ESCAPES = {
    "\0": "\\0",
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\r": "\\r",
    "\x1a": "\\Z",
    '"': '\\"',
    "'": "\\'",
    "\\": "\\\\",
}


class SqlFormatter:
    """Generic query-expression formatter.

    Attributes:
        name_format: Identifier wrapping template; ``$1`` is replaced by
            each dotted segment of a name.
    """

    name_format: ClassVar[str] = '"$1"'
    _method_table: ClassVar[MethodTable]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._method_table = MethodTable.for_class(cls, cls._method_table)

    def __init__(self) -> None:
        self._methods = self._method_table.bind(self)
        self._scopes: list[QueryExpression] = []

    # ------------------------------------------------------------------
    # Method registration
    # ------------------------------------------------------------------

    @classmethod
    def register_method(cls, name: str, handler: MethodHandler) -> None:
        """Register ``handler(formatter, *args) -> str`` for method ``name``.

        Affects instances of ``cls`` created afterwards.
        """
        cls._method_table.register(name, handler)

    @classmethod
    def supports_method(cls, name: str) -> bool:
        return name in cls._method_table

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def format(self, query: QueryExpression | dict | str) -> str:
        """Format a query expression (or raw SQL string) as SQL text.

        Raises:
            CompilationError: If the expression shape is not recognised.
        """
        if isinstance(query, str):
            return query
        if isinstance(query, dict):
            query = QueryExpression.model_validate(query)
        if not isinstance(query, QueryExpression):
            raise CompilationError(
                f"Expected a query expression or SQL string, got {type(query).__name__}."
            )
        if query.insert is not None:
            return self.format_insert(query)
        if query.update is not None:
            return self.format_update(query)
        if query.delete is not None:
            return self.format_delete(query)
        if query.from_ is not None:
            if query.take:
                return self.format_limit_select(query)
            return self.format_select(query)
        raise CompilationError("Unrecognized query expression: nothing to select, insert, update or delete.")

    def format_select(self, query: QueryExpression) -> str:
        if query.from_ is None:
            raise CompilationError("A select expression requires a collection.", clause="$from")
        with self.scope(query):
            parts = [
                SelectClauseBuilder(self).build(query),
                f"FROM {FromClauseBuilder(self).build(query.from_)}",
            ]
            for join in query.expand or []:
                parts.append(JoinClauseBuilder(self).build(join))
            where_sql = self.format_where(query.where)
            if where_sql:
                parts.append(f"WHERE {where_sql}")
            if query.group:
                parts.append(GroupClauseBuilder(self).build(query.group))
            if query.order:
                parts.append(OrderClauseBuilder(self).build(query.order))
            return " ".join(parts)

    def format_limit_select(self, query: QueryExpression) -> str:
        """ANSI paging: ``OFFSET m ROWS FETCH NEXT n ROWS ONLY``."""
        sql = self.format_select(query)
        if query.take:
            sql += f" OFFSET {query.skip or 0} ROWS FETCH NEXT {query.take} ROWS ONLY"
        return sql

    def format_insert(self, query: QueryExpression) -> str:
        if query.insert is None or not query.insert.values:
            raise CompilationError("An insert expression requires at least one value.", clause="$insert")
        with self.scope(query):
            columns = ", ".join(self.escape_name(k) for k in query.insert.values)
            values = ", ".join(self.escape(v) for v in query.insert.values.values())
            return f"INSERT INTO {self.escape_name(query.insert.into)}({columns}) VALUES ({values})"

    def format_update(self, query: QueryExpression) -> str:
        if query.update is None or not query.update.values:
            raise CompilationError("An update expression requires at least one value.", clause="$update")
        with self.scope(query):
            assignments = ", ".join(
                f"{self.escape_name(k)}={self.escape(v)}" for k, v in query.update.values.items()
            )
            sql = f"UPDATE {self.escape_name(query.update.table)} SET {assignments}"
            where_sql = self.format_where(query.where)
            return f"{sql} WHERE {where_sql}" if where_sql else sql

    def format_delete(self, query: QueryExpression) -> str:
        if not query.delete:
            raise CompilationError("A delete expression requires a table.", clause="$delete")
        with self.scope(query):
            sql = f"DELETE FROM {self.escape_name(query.delete)}"
            where_sql = self.format_where(query.where)
            return f"{sql} WHERE {where_sql}" if where_sql else sql

    def format_where(self, pred: Any) -> str:
        """Compile a predicate tree; returns ``''`` for an empty filter."""
        return WhereClauseBuilder(self).build(pred)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def format_expression(self, operand: Operand) -> str:
        """Compile a typed operand to a SQL fragment."""
        if isinstance(operand, FieldOperand):
            return self.format_field(operand)
        if isinstance(operand, ValueOperand):
            return self.escape(operand.value)
        if isinstance(operand, MethodOperand):
            return self.format_method(operand.method, operand.args)
        if isinstance(operand, QueryOperand):
            return f"({self.format(operand.query)})"
        if isinstance(operand, ValuesOperand):
            return f"({self.escape_list(operand.values)})"
        if isinstance(operand, WhereOperand):
            return self.format_where(operand.where)
        raise CompilationError(f"Unknown operand type: {type(operand).__name__}", clause="expression")

    def format_field(self, operand: FieldOperand) -> str:
        """Compile a member reference, offering nested paths to subscribers."""
        query = self.current_query
        if query is not None:
            path = MemberPath.parse(operand.field, query.collections)
            if path.nested and len(query.resolving_join_member):
                event = MemberResolvingEvent(
                    target=query,
                    fully_qualified_member=path.member,
                    object=path.collection or query.collection,
                )
                query.resolving_join_member.emit(event)
                if event.member is not None:
                    return self.escape(event.member)
        return self.escape_name(operand.field)

    def format_method(self, name: str, args: Sequence[Any]) -> str:
        """Dispatch a query method to its registered handler.

        Raises:
            CompilationError: If no handler is registered for ``name``.
        """
        handler = self._methods.get(name.lower())
        if handler is None:
            raise CompilationError(f"Unsupported method '{name}'.", clause="method")
        return handler(*[as_operand(a) for a in args])

    # ------------------------------------------------------------------
    # Escaping
    # ------------------------------------------------------------------

    def escape_name(self, name: str) -> str:
        """Quote an identifier; dotted names are quoted segment by segment."""
        parts = []
        for segment in name.split("."):
            if segment == "*":
                parts.append(segment)
            else:
                parts.append(self.name_format.replace("$1", segment.replace('"', '""')))
        return ".".join(parts)

    def escape(self, value: Any, unquoted: bool = False) -> str:
        """Escape a value or compile an operand for use in a SQL statement.

        Args:
            value: Literal value or operand.
            unquoted: Omit the surrounding quotes of string literals.
        """
        if is_operand(value):
            return self.format_expression(to_operand(value))
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        if isinstance(value, datetime):
            return self.escape_string(self.format_datetime(value), unquoted)
        if isinstance(value, date):
            return self.escape_string(value.isoformat(), unquoted)
        if isinstance(value, UUID):
            return self.escape_string(str(value), unquoted)
        if isinstance(value, (list, tuple)):
            return self.escape_list(value)
        if isinstance(value, dict):
            return self.escape_string(json.dumps(value, default=str), unquoted)
        return self.escape_string(str(value), unquoted)

    def escape_list(self, values: Sequence[Any]) -> str:
        """Comma-separated literals; nested sequences are parenthesised."""
        parts = []
        for value in values:
            if isinstance(value, (list, tuple)):
                parts.append(f"({self.escape_list(value)})")
            else:
                parts.append(self.escape(value))
        return ", ".join(parts)

    def escape_string(self, value: str, unquoted: bool = False) -> str:
        """Backslash-escape a string literal (generic convention)."""
        escaped = "".join(_BACKSLASH_ESCAPES.get(ch, ch) for ch in value)
        return escaped if unquoted else f"'{escaped}'"

    @staticmethod
    def format_datetime(value: datetime) -> str:
        """``YYYY-MM-DD HH:MM:SS.mmm`` with a ``+HH:MM`` suffix when aware."""
        text = value.strftime("%Y-%m-%d %H:%M:%S") + f".{value.microsecond // 1000:03d}"
        offset = value.utcoffset()
        if offset is not None:
            minutes = int(offset.total_seconds()) // 60
            sign = "+" if minutes >= 0 else "-"
            text += f"{sign}{abs(minutes) // 60:02d}:{abs(minutes) % 60:02d}"
        return text

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    @property
    def current_query(self) -> QueryExpression | None:
        """The innermost query expression being formatted."""
        return self._scopes[-1] if self._scopes else None

    @contextmanager
    def scope(self, query: QueryExpression) -> Iterator[QueryExpression]:
        self._scopes.append(query)
        try:
            yield query
        finally:
            self._scopes.pop()

    # ------------------------------------------------------------------
    # Helpers for method handlers
    # ------------------------------------------------------------------

    @staticmethod
    def value_of(operand: Any) -> Any:
        """The Python value of a literal operand, or ``None`` for expressions."""
        if isinstance(operand, ValueOperand):
            return operand.value
        if is_operand(operand):
            return None
        return operand

    @staticmethod
    def is_comparison(pred: Any) -> bool:
        return is_comparison(pred)

    @staticmethod
    def is_logical(pred: Any) -> bool:
        return is_logical(pred)

    # ------------------------------------------------------------------
    # Generic methods
    # ------------------------------------------------------------------

    @sql_method("count")
    def count(self, p0: Any = None) -> str:
        if p0 is None:
            return "COUNT(*)"
        return f"COUNT({self.escape(p0)})"

    @sql_method("min")
    def min(self, p0: Any) -> str:
        return f"MIN({self.escape(p0)})"

    @sql_method("max")
    def max(self, p0: Any) -> str:
        return f"MAX({self.escape(p0)})"

    @sql_method("sum")
    def sum(self, p0: Any) -> str:
        return f"SUM({self.escape(p0)})"

    @sql_method("avg", "average")
    def avg(self, p0: Any) -> str:
        return f"AVG({self.escape(p0)})"

    @sql_method("floor")
    def floor(self, p0: Any) -> str:
        return f"FLOOR({self.escape(p0)})"

    @sql_method("ceil", "ceiling")
    def ceil(self, p0: Any) -> str:
        return f"CEILING({self.escape(p0)})"

    @sql_method("round")
    def round(self, p0: Any, p1: Any = None) -> str:
        if p1 is None:
            return f"ROUND({self.escape(p0)})"
        return f"ROUND({self.escape(p0)}, {self.escape(p1)})"

    @sql_method("trim")
    def trim(self, p0: Any) -> str:
        return f"TRIM({self.escape(p0)})"

    @sql_method("toLower", "toLowerCase")
    def to_lower(self, p0: Any) -> str:
        return f"LOWER({self.escape(p0)})"

    @sql_method("toUpper", "toUpperCase")
    def to_upper(self, p0: Any) -> str:
        return f"UPPER({self.escape(p0)})"

    @sql_method("concat")
    def concat(self, *args: Any) -> str:
        return f"CONCAT({', '.join(self.escape(a) for a in args)})"

    @sql_method("length")
    def length(self, p0: Any) -> str:
        return f"LENGTH({self.escape(p0)})"

    @sql_method("add")
    def add(self, p0: Any, p1: Any) -> str:
        return f"({self.escape(p0)} + {self.escape(p1)})"

    @sql_method("subtract")
    def subtract(self, p0: Any, p1: Any) -> str:
        return f"({self.escape(p0)} - {self.escape(p1)})"

    @sql_method("multiply")
    def multiply(self, p0: Any, p1: Any) -> str:
        return f"({self.escape(p0)} * {self.escape(p1)})"

    @sql_method("divide")
    def divide(self, p0: Any, p1: Any) -> str:
        return f"({self.escape(p0)} / {self.escape(p1)})"

    @sql_method("mod")
    def mod(self, p0: Any, p1: Any) -> str:
        return f"MOD({self.escape(p0)}, {self.escape(p1)})"


SqlFormatter._method_table = MethodTable.for_class(SqlFormatter)
