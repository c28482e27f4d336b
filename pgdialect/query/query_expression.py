"""Pydantic models for the engine-independent query expression.

A ``QueryExpression`` describes one statement: a select (projection,
joins, filter, grouping, ordering, paging), an insert, an update or a
delete.  JSON keys follow the ``$select`` / ``$where`` / ``$take``
convention; Python code may use the plain attribute names instead.

Predicate nodes (``$where`` and join ``on``) remain ``dict[str, Any]``
and are interpreted by the formatter.  Every other expression slot holds a
typed :data:`~pgdialect.query.operands.Operand`.

The formatter only reads an expression.  The fluent ``with_*`` helpers
return modified copies, so an expression handed to the formatter is never
changed behind the caller's back.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from pgdialect.query.member import ResolvingMemberEmitter
from pgdialect.query.operands import (
    FieldOperand,
    Operand,
    as_operand,
    is_operand,
)

_MODEL_CONFIG = ConfigDict(extra="forbid", populate_by_name=True)


class SelectItem(BaseModel):
    """A single projected expression.

    Attributes:
        expr: A typed operand (field / value / method / query).
        alias: Optional SQL alias for the expression.
    """

    model_config = ConfigDict(extra="forbid")

    expr: Operand
    alias: str | None = None

    @property
    def name(self) -> str | None:
        """The output name: the alias, else the operand's own alias or member."""
        if self.alias:
            return self.alias
        alias = getattr(self.expr, "alias", None)
        if alias:
            return alias
        if isinstance(self.expr, FieldOperand):
            return self.expr.member_name
        return None


class FromClause(BaseModel):
    """The primary collection of a select.

    Attributes:
        table: Table or view name, optionally ``schema.table``.
        alias: Optional alias.
    """

    model_config = ConfigDict(extra="forbid")

    table: str
    alias: str | None = None


class JoinClause(BaseModel):
    """A joined collection (``$expand`` entry).

    Attributes:
        table: Joined table name.
        alias: Optional alias for the joined table.
        type: SQL join type.
        on: Join predicate, e.g. ``{"$eq": [{"field": "a.x"}, {"field": "b.y"}]}``.
    """

    model_config = ConfigDict(extra="forbid")

    table: str
    alias: str | None = None
    type: Literal["INNER", "LEFT", "RIGHT", "FULL"] = "INNER"
    on: dict[str, Any]


class OrderByItem(BaseModel):
    """A single ORDER BY expression."""

    model_config = ConfigDict(extra="forbid")

    expr: Operand
    direction: Literal["ASC", "DESC"] = "ASC"


class InsertClause(BaseModel):
    """``INSERT INTO <into> (<keys>) VALUES (<values>)``."""

    model_config = ConfigDict(extra="forbid")

    into: str
    values: dict[str, Any]


class UpdateClause(BaseModel):
    """``UPDATE <table> SET <key = value, ...>``; filtered by ``$where``."""

    model_config = ConfigDict(extra="forbid")

    table: str
    values: dict[str, Any]


class QueryExpression(BaseModel):
    """Engine-independent description of a single SQL statement.

    Attributes:
        select: Projected items; empty or ``None`` selects every column.
        from_: The primary collection.
        expand: Joined collections.
        where: Root predicate dict.
        order: Ordering items.
        group: Grouping operands.
        take: Maximum number of rows.
        skip: Rows to skip (only emitted together with ``take``).
        distinct: Emit ``SELECT DISTINCT``.
        insert: Insert target and values.
        update: Update target and values.
        delete: Delete target table.
    """

    model_config = _MODEL_CONFIG

    select: list[SelectItem] | None = Field(None, alias="$select")
    from_: FromClause | None = Field(None, alias="$from")
    expand: list[JoinClause] | None = Field(None, alias="$expand")
    where: dict[str, Any] | None = Field(None, alias="$where")
    order: list[OrderByItem] | None = Field(None, alias="$order")
    group: list[Operand] | None = Field(None, alias="$group")
    take: int | None = Field(None, alias="$take", ge=0)
    skip: int | None = Field(None, alias="$skip", ge=0)
    distinct: bool = Field(False, alias="$distinct")
    insert: InsertClause | None = Field(None, alias="$insert")
    update: UpdateClause | None = Field(None, alias="$update")
    delete: str | None = Field(None, alias="$delete")

    _resolving_join_member: ResolvingMemberEmitter = PrivateAttr(
        default_factory=ResolvingMemberEmitter
    )

    # ------------------------------------------------------------------
    # Extension hook
    # ------------------------------------------------------------------

    @property
    def resolving_join_member(self) -> ResolvingMemberEmitter:
        """Event fired while the formatter compiles a nested member path."""
        return self._resolving_join_member

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------

    @property
    def collection(self) -> str | None:
        """The name the statement's own columns are qualified with."""
        if self.from_ is not None:
            return self.from_.alias or self.from_.table
        if self.insert is not None:
            return self.insert.into
        if self.update is not None:
            return self.update.table
        return self.delete

    @property
    def collections(self) -> frozenset[str]:
        """Every table name and alias a field reference may be qualified with."""
        names: set[str] = set()
        if self.collection:
            names.add(self.collection)
        if self.from_ is not None:
            names.add(self.from_.table)
        for join in self.expand or []:
            names.add(join.alias or join.table)
            names.add(join.table)
        return frozenset(names)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_table(cls, table: str, alias: str | None = None) -> QueryExpression:
        """Start a select over ``table``."""
        return cls(from_=FromClause(table=table, alias=alias))

    @classmethod
    def insert_into(cls, table: str, values: dict[str, Any]) -> QueryExpression:
        return cls(insert=InsertClause(into=table, values=values))

    @classmethod
    def update_table(
        cls, table: str, values: dict[str, Any], where: dict[str, Any] | None = None
    ) -> QueryExpression:
        return cls(update=UpdateClause(table=table, values=values), where=where)

    @classmethod
    def delete_from(cls, table: str, where: dict[str, Any] | None = None) -> QueryExpression:
        return cls(delete=table, where=where)

    # ------------------------------------------------------------------
    # Fluent copies
    # ------------------------------------------------------------------

    def with_select(self, *items: Any) -> QueryExpression:
        """Return a copy projecting ``items``.

        Each item may be a :class:`SelectItem`, an operand (typed or raw
        dict), or a field name string.  A string without a dot is qualified
        with the collection name.
        """
        return self._copy(select=[self._select_item(i) for i in items])

    def with_join(
        self,
        table: str,
        on: dict[str, Any],
        alias: str | None = None,
        type: Literal["INNER", "LEFT", "RIGHT", "FULL"] = "INNER",
    ) -> QueryExpression:
        join = JoinClause(table=table, alias=alias, type=type, on=on)
        return self._copy(expand=[*(self.expand or []), join])

    def with_where(self, predicate: dict[str, Any]) -> QueryExpression:
        """Return a copy filtered by ``predicate``, AND-ed onto any existing filter."""
        where = predicate if not self.where else {"$and": [self.where, predicate]}
        return self._copy(where=where)

    def with_order(self, expr: Any, direction: Literal["ASC", "DESC"] = "ASC") -> QueryExpression:
        item = OrderByItem(expr=self._operand(expr), direction=direction)
        return self._copy(order=[*(self.order or []), item])

    def with_group(self, *exprs: Any) -> QueryExpression:
        return self._copy(group=[self._operand(e) for e in exprs])

    def with_take(self, take: int | None) -> QueryExpression:
        return self._copy(take=take)

    def with_skip(self, skip: int | None) -> QueryExpression:
        return self._copy(skip=skip)

    def with_distinct(self, distinct: bool = True) -> QueryExpression:
        return self._copy(distinct=distinct)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _copy(self, **update: Any) -> QueryExpression:
        copied = self.model_copy(update=update, deep=True)
        # subscribers are shared with the copy, not duplicated per copy
        copied._resolving_join_member = self._resolving_join_member
        return copied

    def _operand(self, expr: Any) -> Operand:
        if isinstance(expr, str):
            return FieldOperand(field=self._qualify(expr))
        return as_operand(expr)

    def _select_item(self, item: Any) -> SelectItem:
        if isinstance(item, SelectItem):
            return item
        if isinstance(item, str) or is_operand(item):
            return SelectItem(expr=self._operand(item))
        raise TypeError(f"Cannot project {item!r}; expected a field name or operand.")

    def _qualify(self, name: str) -> str:
        if "." in name or self.collection is None:
            return name
        return f"{self.collection}.{name}"
