"""Engine-independent query expression model."""
from pgdialect.query.member import MemberPath, MemberResolvingEvent, ResolvingMemberEmitter
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
    to_operand,
)
from pgdialect.query.query_expression import (
    FromClause,
    InsertClause,
    JoinClause,
    OrderByItem,
    QueryExpression,
    SelectItem,
    UpdateClause,
)

__all__ = [
    "MemberPath",
    "MemberResolvingEvent",
    "ResolvingMemberEmitter",
    "FieldOperand",
    "MethodOperand",
    "Operand",
    "QueryOperand",
    "ValueOperand",
    "ValuesOperand",
    "WhereOperand",
    "call",
    "field_ref",
    "literal",
    "to_operand",
    "FromClause",
    "InsertClause",
    "JoinClause",
    "OrderByItem",
    "QueryExpression",
    "SelectItem",
    "UpdateClause",
]
