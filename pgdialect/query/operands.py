"""Typed operand models for query expressions.

Every operand is a single-key JSON object whose key names its kind, so the
shape of an expression is stated where it is constructed rather than guessed
by the formatter.  Pydantic v2 discriminated-union parsing turns raw dicts
(e.g. ``{"field": "Orders.id"}``) into the matching typed model.

Usage::

    from pgdialect.query.operands import FieldOperand, call, field_ref

    # {"field": "Orders.id"} -> FieldOperand(field="Orders.id")
    expr = to_operand({"field": "Orders.id"})
    assert isinstance(expr, FieldOperand)

    year = call("year", field_ref("Orders.orderDate"), alias="orderYear")
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_validator,
)

_FORBID = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------------
# Concrete operand types
# ---------------------------------------------------------------------------


class FieldOperand(BaseModel):
    """A member reference: ``{"field": "Orders.customer"}``.

    The path is dotted; the first segment is usually the collection, the
    rest is the member.  Paths reaching through a member (``customer.name``)
    are offered to ``resolving_join_member`` subscribers before formatting.
    """

    model_config = _FORBID

    field: str
    alias: str | None = None

    @property
    def segments(self) -> list[str]:
        return self.field.split(".")

    @property
    def member_name(self) -> str:
        """The last path segment (the bare member name)."""
        return self.segments[-1]


class ValueOperand(BaseModel):
    """A literal value: ``{"value": 42}`` / ``{"value": "text"}``."""

    model_config = _FORBID

    value: Any


class MethodOperand(BaseModel):
    """A dialect method call: ``{"method": "year", "args": [...]}``."""

    model_config = _FORBID

    method: str
    args: list[Operand] = Field(default_factory=list)
    alias: str | None = None


class QueryOperand(BaseModel):
    """A nested query expression: ``{"query": {"$select": [...], ...}}``."""

    model_config = _FORBID

    query: Any

    @field_validator("query", mode="before")
    @classmethod
    def _coerce_query(cls, v: Any) -> Any:
        from pgdialect.query.query_expression import QueryExpression

        if isinstance(v, QueryExpression):
            return v
        return QueryExpression.model_validate(v)


class ValuesOperand(BaseModel):
    """A literal list of values: ``{"values": [1, 2, 3]}``."""

    model_config = _FORBID

    values: list[Any]


class WhereOperand(BaseModel):
    """A predicate used as an operand: ``{"where": {"$gt": [...]}}``.

    Only meaningful as the condition argument of ``cond``.
    """

    model_config = _FORBID

    where: dict[str, Any]


# ---------------------------------------------------------------------------
# Discriminated union
# ---------------------------------------------------------------------------

_OPERAND_TYPES: dict[str, type[BaseModel]] = {
    "field": FieldOperand,
    "value": ValueOperand,
    "method": MethodOperand,
    "query": QueryOperand,
    "values": ValuesOperand,
    "where": WhereOperand,
}


def _operand_discriminator(v: Any) -> str | None:
    """Return the tag for the Pydantic discriminated union."""
    if isinstance(v, dict):
        for key in _OPERAND_TYPES:
            if key in v:
                return key
        return None
    for key, model in _OPERAND_TYPES.items():
        if isinstance(v, model):
            return key
    return None


Operand = Annotated[
    Annotated[FieldOperand, Tag("field")]
    | Annotated[ValueOperand, Tag("value")]
    | Annotated[MethodOperand, Tag("method")]
    | Annotated[QueryOperand, Tag("query")]
    | Annotated[ValuesOperand, Tag("values")]
    | Annotated[WhereOperand, Tag("where")],
    Discriminator(_operand_discriminator),
]

#: Tuple of concrete operand classes, for ``isinstance`` checks.
OPERAND_CLASSES: tuple[type[BaseModel], ...] = tuple(_OPERAND_TYPES.values())

# Resolve forward references in recursive types.
MethodOperand.model_rebuild()

#: Parse a raw dict into a typed Operand at any call site.
OPERAND_ADAPTER: TypeAdapter[Operand] = TypeAdapter(Operand)


def is_operand(v: Any) -> bool:
    """True when ``v`` is a typed operand or a dict carrying an operand tag."""
    if isinstance(v, OPERAND_CLASSES):
        return True
    return isinstance(v, dict) and _operand_discriminator(v) is not None


def to_operand(v: dict | Operand) -> Operand:
    """Convert a raw operand dict to a typed ``Operand``, or return as-is.

    Args:
        v: A raw ``{"field": ...}`` / ``{"value": ...}`` dict, or an already
           typed ``Operand`` instance.

    Returns:
        A typed ``Operand`` instance.
    """
    if isinstance(v, OPERAND_CLASSES):
        return v  # type: ignore[return-value]
    return OPERAND_ADAPTER.validate_python(v)


def as_operand(v: Any) -> Operand:
    """Like :func:`to_operand`, but wraps plain Python values as literals."""
    if is_operand(v):
        return to_operand(v)
    return ValueOperand(value=v)


# ---------------------------------------------------------------------------
# Construction shortcuts
# ---------------------------------------------------------------------------


def field_ref(name: str, alias: str | None = None) -> FieldOperand:
    """Shortcut for ``FieldOperand(field=name, alias=alias)``."""
    return FieldOperand(field=name, alias=alias)


def literal(value: Any) -> ValueOperand:
    """Shortcut for ``ValueOperand(value=value)``."""
    return ValueOperand(value=value)


def call(method: str, *args: Any, alias: str | None = None) -> MethodOperand:
    """Build a method call; plain Python arguments become literal values."""
    return MethodOperand(method=method, args=[as_operand(a) for a in args], alias=alias)
