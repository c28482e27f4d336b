"""Clause-level SQL builders.

Each class handles exactly one SQL clause and receives the owning
:class:`~pgdialect.formatter.base.SqlFormatter`, so every operand, literal
and identifier inside a clause goes through the formatter's (possibly
dialect-specific) ``escape`` / ``escape_name`` / method dispatch.

Classes
-------
SelectClauseBuilder   : ``SELECT [DISTINCT] <items>``
FromClauseBuilder     : ``FROM <table> [AS alias]``
JoinClauseBuilder     : ``<type> JOIN <table> ON <predicate>``
WhereClauseBuilder    : comparison / logical predicate trees
OrderClauseBuilder    : ``ORDER BY …``
GroupClauseBuilder    : ``GROUP BY …``
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pgdialect.errors import CompilationError
from pgdialect.query.expressions import ComparisonOp, LogicalOp
from pgdialect.query.operands import (
    MethodOperand,
    QueryOperand,
    ValueOperand,
    ValuesOperand,
    WhereOperand,
    is_operand,
    to_operand,
)
from pgdialect.query.query_expression import (
    FromClause,
    JoinClause,
    OrderByItem,
    QueryExpression,
    SelectItem,
)

if TYPE_CHECKING:
    from pgdialect.formatter.base import SqlFormatter


class SelectClauseBuilder:
    """Builds the ``SELECT [DISTINCT] …`` clause."""

    def __init__(self, formatter: SqlFormatter) -> None:
        self._fmt = formatter

    def build(self, query: QueryExpression) -> str:
        prefix = "SELECT DISTINCT" if query.distinct else "SELECT"
        if not query.select:
            return f"{prefix} *"
        items = [self.build_item(item) for item in query.select]
        return f"{prefix} {', '.join(items)}"

    def build_item(self, item: SelectItem) -> str:
        expr_sql = self._fmt.escape(item.expr)
        alias = item.alias or getattr(item.expr, "alias", None)
        if alias:
            return f"{expr_sql} AS {self._fmt.escape_name(alias)}"
        return expr_sql


class FromClauseBuilder:
    """Builds the ``<table> [AS alias]`` fragment following ``FROM``."""

    def __init__(self, formatter: SqlFormatter) -> None:
        self._fmt = formatter

    def build(self, frm: FromClause) -> str:
        table_sql = self._fmt.escape_name(frm.table)
        if frm.alias:
            table_sql = f"{table_sql} AS {self._fmt.escape_name(frm.alias)}"
        return table_sql


class JoinClauseBuilder:
    """Builds a single ``JOIN … ON …`` fragment."""

    def __init__(self, formatter: SqlFormatter) -> None:
        self._fmt = formatter

    def build(self, join: JoinClause) -> str:
        table_sql = self._fmt.escape_name(join.table)
        if join.alias:
            table_sql = f"{table_sql} AS {self._fmt.escape_name(join.alias)}"
        on_sql = WhereClauseBuilder(self._fmt).build(join.on)
        if not on_sql:
            raise CompilationError(
                f"Join on '{join.table}' has an empty ON predicate.", clause="$expand"
            )
        return f"{join.type} JOIN {table_sql} ON {on_sql}"


class OrderClauseBuilder:
    """Builds the ``ORDER BY …`` clause."""

    def __init__(self, formatter: SqlFormatter) -> None:
        self._fmt = formatter

    def build(self, order: list[OrderByItem]) -> str:
        parts = [f"{self._fmt.escape(o.expr)} {o.direction}" for o in order]
        return f"ORDER BY {', '.join(parts)}"


class GroupClauseBuilder:
    """Builds the ``GROUP BY …`` clause."""

    def __init__(self, formatter: SqlFormatter) -> None:
        self._fmt = formatter

    def build(self, group: list[Any]) -> str:
        return f"GROUP BY {', '.join(self._fmt.escape(g) for g in group)}"


class WhereClauseBuilder:
    """Compiles predicate dicts (``$where`` and join ``on`` nodes) to SQL.

    A predicate that compiles to an empty string (e.g. ``contains`` with an
    empty search term) is dropped from its enclosing ``$and`` / ``$or``;
    an entirely empty tree compiles to ``''`` and the caller omits the
    clause.
    """

    _CMP: dict[str, str] = {
        ComparisonOp.EQ: "=",
        ComparisonOp.NE: "<>",
        ComparisonOp.GT: ">",
        ComparisonOp.GTE: ">=",
        ComparisonOp.LT: "<",
        ComparisonOp.LTE: "<=",
    }

    def __init__(self, formatter: SqlFormatter) -> None:
        self._fmt = formatter

    def build(self, pred: Any) -> str:
        """Compile a predicate to a SQL fragment (possibly empty)."""
        if pred is None:
            return ""
        if isinstance(pred, WhereOperand):
            return self.build(pred.where)
        if isinstance(pred, MethodOperand) or (isinstance(pred, dict) and "method" in pred):
            return self._fmt.escape(to_operand(pred))
        if not isinstance(pred, dict) or len(pred) != 1:
            raise CompilationError(f"Invalid predicate shape: {pred!r}", clause="$where")
        op = next(iter(pred))
        return self._dispatch(op, pred[op])

    # ------------------------------------------------------------------
    # Operator dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, op: str, args: Any) -> str:
        if op in self._CMP:
            left, right = self._pair(op, args)
            if _is_null(right):
                if op not in (ComparisonOp.EQ, ComparisonOp.NE):
                    raise CompilationError(f"Operator '{op}' cannot compare with NULL.")
                keyword = "IS NULL" if op == ComparisonOp.EQ else "IS NOT NULL"
                return f"{self._fmt.escape(left)} {keyword}"
            return f"{self._fmt.escape(left)} {self._CMP[op]} {self._fmt.escape(right)}"

        if op in (ComparisonOp.IN, ComparisonOp.NIN):
            return self._build_in(op, args)

        if op in (ComparisonOp.TEXT, ComparisonOp.REGEX):
            left, right = self._pair(op, args)
            return self._fmt.format_method(op.lstrip("$"), [left, right])

        if op in (LogicalOp.AND, LogicalOp.OR):
            if not isinstance(args, list):
                raise CompilationError(f"'{op}' expects a list of predicates.", clause="$where")
            parts = [p for p in (self.build(a) for a in args) if p]
            if not parts:
                return ""
            if len(parts) == 1:
                return parts[0]
            keyword = " AND " if op == LogicalOp.AND else " OR "
            return keyword.join(f"({p})" for p in parts)

        if op == LogicalOp.NOT:
            inner = self.build(args[0] if isinstance(args, list) and len(args) == 1 else args)
            return f"NOT ({inner})" if inner else ""

        if op == LogicalOp.NOR:
            inner = self._dispatch(LogicalOp.OR, args)
            return f"NOT ({inner})" if inner else ""

        raise CompilationError(f"Unknown predicate operator '{op}'.", clause="$where")

    def _pair(self, op: str, args: Any) -> tuple[Any, Any]:
        if not isinstance(args, (list, tuple)) or len(args) != 2:
            raise CompilationError(f"'{op}' expects exactly two operands.", clause="$where")
        return args[0], args[1]

    def _build_in(self, op: str, args: Any) -> str:
        if not isinstance(args, (list, tuple)) or len(args) < 2:
            raise CompilationError(f"'{op}' expects an operand and a value list.", clause="$where")
        left = self._fmt.escape(args[0])
        keyword = "IN" if op == ComparisonOp.IN else "NOT IN"
        rest = args[1:]
        target: Any = rest[0] if len(rest) == 1 else list(rest)
        if is_operand(target):
            target = to_operand(target)
            if isinstance(target, QueryOperand):
                return f"{left} {keyword} ({self._fmt.format(target.query)})"
            if isinstance(target, ValuesOperand):
                target = target.values
        values = target if isinstance(target, (list, tuple)) else [target]
        if not values:
            return "FALSE" if op == ComparisonOp.IN else "TRUE"
        items = ", ".join(self._fmt.escape(v) for v in values)
        return f"{left} {keyword} ({items})"


def _is_null(operand: Any) -> bool:
    if operand is None:
        return True
    if isinstance(operand, ValueOperand):
        return operand.value is None
    return isinstance(operand, dict) and operand == {"value": None}
