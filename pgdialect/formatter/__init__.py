"""pgdialect formatting layer: QueryExpression → SQL text."""
from pgdialect.formatter.base import SqlFormatter
from pgdialect.formatter.postgres import PostgreSQLFormatter
from pgdialect.formatter.registry import FormatterFactory, MethodTable, sql_method

__all__ = [
    "SqlFormatter",
    "PostgreSQLFormatter",
    "FormatterFactory",
    "MethodTable",
    "sql_method",
]
