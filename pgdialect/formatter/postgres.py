"""PostgreSQL formatter.

Specialises :class:`~pgdialect.formatter.base.SqlFormatter` for PostgreSQL:

- String literals double embedded single quotes; double quotes stay as-is.
- Paging uses ``LIMIT n [OFFSET m]``.
- Query methods map onto PostgreSQL functions and operators (``~`` regex
  matching, ``DATE_PART``, ``json_build_object`` ...).
"""
from __future__ import annotations

import json
import re
from datetime import date
from decimal import Decimal
from typing import Any

from pgdialect.errors import CompilationError
from pgdialect.formatter.base import SqlFormatter
from pgdialect.formatter.registry import FormatterFactory, sql_method
from pgdialect.query.member import MemberPath
from pgdialect.query.operands import (
    FieldOperand,
    MethodOperand,
    Operand,
    QueryOperand,
    ValueOperand,
    ValuesOperand,
    WhereOperand,
    as_operand,
)
from pgdialect.query.query_expression import QueryExpression, SelectItem

_UUID_SQL = (
    "uuid_in(overlay(overlay(md5(random()::text || ':' || random()::text) placing '4' from 13) "
    "placing to_hex(floor(random()*(11-8+1)+8)::int)::text from 17)::cstring)"
)

_CURRENT = {
    "date": "CURRENT_DATE",
    "datetime": "CURRENT_TIMESTAMP::timestamp",
    "timestamp": "CURRENT_TIMESTAMP",
}


@FormatterFactory.register("postgres", "postgresql")
class PostgreSQLFormatter(SqlFormatter):
    """Compiles query expressions to PostgreSQL SQL text."""

    name_format = '"$1"'

    def format_limit_select(self, query: QueryExpression) -> str:
        sql = self.format_select(query)
        if query.take:
            if query.skip:
                return f"{sql} LIMIT {query.take} OFFSET {query.skip}"
            return f"{sql} LIMIT {query.take}"
        return sql

    # ------------------------------------------------------------------
    # Escaping
    # ------------------------------------------------------------------

    def escape(self, value: Any, unquoted: bool = False) -> str:
        # empty and scalar arrays are stored as JSON text; arrays of objects keep the base rendering
        if isinstance(value, (list, tuple)) and (not value or not all(isinstance(v, dict) for v in value)):
            return self.escape_string(json.dumps(list(value), default=str), unquoted)
        return super().escape(value, unquoted)

    def escape_string(self, value: str, unquoted: bool = False) -> str:
        escaped = value.replace("'", "''")
        return escaped if unquoted else f"'{escaped}'"

    def escape_constant(self, value: Any, unquoted: bool = False) -> str:
        """Escape ``value`` and append an explicit ``::type`` cast."""
        sql = self.escape(value, unquoted)
        if value is None:
            return f"{sql}::text"
        if isinstance(value, date):
            return f"{sql}::timestamp"
        if isinstance(value, bool):
            return f"{sql}::bool"
        if isinstance(value, (int, float, Decimal)):
            return f"{sql}::float"
        return f"{sql}::text"

    # ------------------------------------------------------------------
    # Pattern matching
    # ------------------------------------------------------------------

    def _pattern(self, operand: Operand, prefix: str = "", suffix: str = "", literal: bool = False) -> str:
        if isinstance(operand, ValueOperand):
            text = str(operand.value)
            if literal:
                text = re.escape(text)
            return self.escape_string(f"{prefix}{text}{suffix}")
        parts = [self.escape(operand)]
        if prefix:
            parts.insert(0, self.escape_string(prefix))
        if suffix:
            parts.append(self.escape_string(suffix))
        return parts[0] if len(parts) == 1 else f"({' || '.join(parts)})"

    @sql_method("indexOf")
    def index_of(self, p0: Operand, p1: Operand) -> str:
        return f"(POSITION({self.escape(p1)} IN {self.escape(p0)}::text)-1)"

    @sql_method("regex", "text")
    def regex(self, p0: Operand, p1: Operand) -> str:
        return f"({self.escape(p0)} ~ {self._pattern(p1)})"

    @sql_method("startsWith")
    def starts_with(self, p0: Operand, p1: Operand) -> str:
        return f"({self.escape(p0)} ~ {self._pattern(p1, prefix='^', literal=True)})"

    @sql_method("endsWith")
    def ends_with(self, p0: Operand, p1: Operand) -> str:
        if self.value_of(p1) == "":
            return ""
        return f"({self.escape(p0)} ~ {self._pattern(p1, suffix='$', literal=True)})"

    @sql_method("contains")
    def contains(self, p0: Operand, p1: Operand) -> str:
        if self.value_of(p1) == "":
            return ""
        return f"({self.escape(p0)} ~ {self._pattern(p1, literal=True)})"

    # ------------------------------------------------------------------
    # Strings and numbers
    # ------------------------------------------------------------------

    @sql_method("substring", "substr")
    def substring(self, p0: Operand, pos: Operand, length: Operand | None = None) -> str:
        start = self.value_of(pos)
        start_sql = str(int(start) + 1) if isinstance(start, int) else f"({self.escape(pos)} + 1)"
        if length is None:
            return f"SUBSTRING({self.escape(p0)} FROM {start_sql})"
        return f"SUBSTRING({self.escape(p0)} FROM {start_sql} FOR {self.escape(length)})"

    @sql_method("length")
    def length(self, p0: Operand) -> str:
        return f"LENGTH({self.escape(p0)})"

    @sql_method("round")
    def round(self, p0: Operand, p1: Operand | None = None) -> str:
        if p1 is None:
            return f"ROUND({self.escape(p0)}::numeric)"
        return f"ROUND({self.escape(p0)}::numeric, {self.escape(p1)})"

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    def _date_part(self, part: str, p0: Operand) -> str:
        return f"DATE_PART('{part}', {self.escape(p0)}::timestamp)"

    @sql_method("day", "dayOfMonth")
    def day(self, p0: Operand) -> str:
        return self._date_part("day", p0)

    @sql_method("month")
    def month(self, p0: Operand) -> str:
        return self._date_part("month", p0)

    @sql_method("year")
    def year(self, p0: Operand) -> str:
        return self._date_part("year", p0)

    @sql_method("hour")
    def hour(self, p0: Operand) -> str:
        return self._date_part("hour", p0)

    @sql_method("minute", "minutes")
    def minute(self, p0: Operand) -> str:
        return self._date_part("minute", p0)

    @sql_method("second", "seconds")
    def second(self, p0: Operand) -> str:
        return self._date_part("second", p0)

    @sql_method("date")
    def date(self, p0: Operand) -> str:
        return f"CAST({self.escape(p0)} AS DATE)"

    @sql_method("getDate")
    def get_date(self, kind: Operand | None = None) -> str:
        """Current moment as ``date``, ``datetime`` (default) or ``timestamp``."""
        name = self.value_of(kind) if kind is not None else "datetime"
        if name not in _CURRENT:
            raise CompilationError(
                f"getDate expects one of {sorted(_CURRENT)}, got {name!r}.", clause="method"
            )
        return _CURRENT[name]

    # ------------------------------------------------------------------
    # Type conversion
    # ------------------------------------------------------------------

    @sql_method("toString")
    def to_string(self, p0: Operand) -> str:
        return f"CAST({self.escape(p0)} AS VARCHAR)"

    @sql_method("toInt")
    def to_int(self, p0: Operand) -> str:
        return f"FLOOR(CAST({self.escape(p0)} AS DECIMAL(19,8)))"

    @sql_method("toDecimal", "toDouble")
    def to_decimal(self, p0: Operand, precision: Operand | None = None, scale: Operand | None = None) -> str:
        p = self.value_of(precision) if precision is not None else None
        s = self.value_of(scale) if scale is not None else None
        return f"CAST({self.escape(p0)} AS DECIMAL({p or 19},{s or 8}))"

    @sql_method("toLong")
    def to_long(self, p0: Operand) -> str:
        return f"CAST({self.escape(p0)} AS BIGINT)"

    @sql_method("uuid")
    def uuid(self) -> str:
        """A random version-4 style UUID; not suitable for cryptographic use."""
        return _UUID_SQL

    @sql_method("toGuid")
    def to_guid(self, p0: Operand) -> str:
        return f"md5({self.escape(p0)}::text)::uuid"

    # ------------------------------------------------------------------
    # Conditional
    # ------------------------------------------------------------------

    @sql_method("cond")
    def cond(self, if_expr: Operand, then_expr: Operand, else_expr: Operand) -> str:
        """``(CASE <condition> WHEN TRUE THEN a ELSE b END)``.

        The condition is a nested query (its ``$where`` is used) or a
        comparison / logical predicate.
        """
        if isinstance(if_expr, QueryOperand):
            condition = self.format_where(if_expr.query.where)
        elif isinstance(if_expr, WhereOperand) and (
            self.is_comparison(if_expr.where) or self.is_logical(if_expr.where)
        ):
            condition = self.format_where(if_expr.where)
        elif isinstance(if_expr, ValueOperand) and (
            self.is_comparison(if_expr.value) or self.is_logical(if_expr.value)
        ):
            condition = self.format_where(if_expr.value)
        else:
            raise CompilationError(
                "Condition parameter should be a query or a comparison expression.", clause="method"
            )
        if not condition:
            raise CompilationError("Condition parameter compiles to an empty predicate.", clause="method")
        return f"(CASE {condition} WHEN TRUE THEN {self.escape(then_expr)} ELSE {self.escape(else_expr)} END)"

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    @sql_method("jsonGet")
    def json_get(self, p0: Operand) -> str:
        """Extract the text at a nested key path of a JSON column.

        ``Orders.customer.address.city`` reads key path ``address, city`` of
        column ``"Orders"."customer"``.
        """
        if not isinstance(p0, FieldOperand):
            raise CompilationError("jsonGet expects a member reference.", clause="method")
        query = self.current_query
        if query is not None:
            path = MemberPath.parse(p0.field, query.collections)
            container = [path.members[0]] if path.collection is None else [path.collection, path.members[0]]
            keys = list(path.members[1:])
        else:
            container, keys = p0.segments[:2], p0.segments[2:]
        if not keys:
            raise CompilationError(
                f"jsonGet expects a nested path, got '{p0.field}'.", clause="method"
            )
        column = self.escape_name(".".join(container))
        key_sql = ", ".join(self.escape_string(k) for k in keys)
        return f"json_extract_path_text({column}::json, {key_sql})"

    @sql_method("jsonObject")
    def json_object(self, *args: Operand) -> str:
        """``json_build_object('name', expr, ...)``.

        Each argument is a named member reference, a method call (named by
        its alias or by the method), or a literal ``{name: expr}`` mapping.
        """
        pairs: list[str] = []
        for arg in args:
            if isinstance(arg, ValueOperand) and isinstance(arg.value, dict):
                for name, expr in arg.value.items():
                    pairs.append(f"{self.escape_string(name)}, {self.escape(as_operand(expr))}")
                continue
            pairs.append(f"{self.escape_string(self._json_key(arg))}, {self.escape(arg)}")
        return f"json_build_object({', '.join(pairs)})"

    @sql_method("jsonGroupArray")
    def json_group_array(self, p0: Operand) -> str:
        if not (isinstance(p0, MethodOperand) and p0.method.lower() == "jsonobject"):
            raise CompilationError(
                "jsonGroupArray expects a jsonObject expression.", clause="method"
            )
        return f"json_agg({self.escape(p0)})"

    @sql_method("jsonArray")
    def json_array(self, p0: Operand) -> str:
        """Member reference, nested select, or literal value list as a JSON array."""
        if isinstance(p0, FieldOperand):
            return self.escape(p0)
        if isinstance(p0, QueryOperand):
            subquery: QueryExpression = p0.query
            if not subquery.select:
                raise CompilationError("jsonArray expects a select with named items.", clause="method")
            members = [self._named_member(item) for item in subquery.select]
            aggregate = MethodOperand(
                method="jsonGroupArray",
                args=[MethodOperand(method="jsonObject", args=members)],
            )
            return f"({self.format(subquery.with_select(SelectItem(expr=aggregate)))})"
        if isinstance(p0, ValuesOperand):
            return f"json_build_array({', '.join(self.escape(as_operand(v)) for v in p0.values)})"
        raise CompilationError(
            f"jsonArray does not accept a {type(p0).__name__} argument.", clause="method"
        )

    def _json_key(self, operand: Operand) -> str:
        alias = getattr(operand, "alias", None)
        if alias:
            return alias
        if isinstance(operand, FieldOperand):
            return operand.member_name
        if isinstance(operand, MethodOperand):
            if operand.method.lower() == "jsonget" and operand.args and isinstance(operand.args[0], FieldOperand):
                return operand.args[0].member_name
            return operand.method
        raise CompilationError(
            f"jsonObject cannot name a {type(operand).__name__} entry.", clause="method"
        )

    @staticmethod
    def _named_member(item: SelectItem) -> Operand:
        if item.alias and isinstance(item.expr, (FieldOperand, MethodOperand)):
            return item.expr.model_copy(update={"alias": item.alias})
        return item.expr
