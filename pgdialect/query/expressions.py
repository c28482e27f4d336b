"""Operator constants and helpers for query expression predicates.

Predicates are represented as plain dicts in the ``QueryExpression`` model
(``{"$eq": [left, right]}``, ``{"$and": [...]}``).  This module defines the
allowable key sets and helpers shared by the expression model and the
formatters.
"""

from __future__ import annotations

from enum import Enum

# ---------------------------------------------------------------------------
# Predicate operator enums
# ---------------------------------------------------------------------------


class ComparisonOp(str, Enum):
    """Comparison operators."""

    EQ = "$eq"
    NE = "$ne"
    GT = "$gt"
    GTE = "$gte"
    LT = "$lt"
    LTE = "$lte"
    IN = "$in"
    NIN = "$nin"
    TEXT = "$text"
    REGEX = "$regex"


class LogicalOp(str, Enum):
    """Logical connectives."""

    AND = "$and"
    OR = "$or"
    NOT = "$not"
    NOR = "$nor"


# ---------------------------------------------------------------------------
# Key constants
# ---------------------------------------------------------------------------

#: Comparison operators: ``{"$eq": [left, right]}``.
COMPARISON_OPS: frozenset[str] = frozenset(op.value for op in ComparisonOp)

#: Logical operators: ``{"$and": [pred, ...]}`` / ``{"$not": pred}``.
LOGICAL_OPS: frozenset[str] = frozenset(op.value for op in LogicalOp)

#: Complete set of supported predicate operators.
ALL_PREDICATE_OPS: frozenset[str] = COMPARISON_OPS | LOGICAL_OPS

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def predicate_op(pred: object) -> str | None:
    """Returns the predicate operator key or ``None`` if not recognised."""
    if not isinstance(pred, dict) or len(pred) != 1:
        return None
    key = next(iter(pred))
    return key if key in ALL_PREDICATE_OPS else None


def is_comparison(pred: object) -> bool:
    """True when ``pred`` is a single-key comparison node."""
    return predicate_op(pred) in COMPARISON_OPS


def is_logical(pred: object) -> bool:
    """True when ``pred`` is a single-key logical node."""
    return predicate_op(pred) in LOGICAL_OPS
