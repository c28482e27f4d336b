"""PostgreSQL connection and schema adapter."""
from pgdialect.adapter.helpers import (
    DatabaseHelper,
    IndexesHelper,
    TableHelper,
    TablesHelper,
    ViewHelper,
    ViewsHelper,
)
from pgdialect.adapter.models import (
    ColumnMetadata,
    FieldDescriptor,
    IndexDescriptor,
    Migration,
    MigrationResult,
)
from pgdialect.adapter.postgres import ConnectionState, PostgreSQLAdapter
from pgdialect.adapter.types import format_type

__all__ = [
    "PostgreSQLAdapter",
    "ConnectionState",
    "ColumnMetadata",
    "FieldDescriptor",
    "IndexDescriptor",
    "Migration",
    "MigrationResult",
    "DatabaseHelper",
    "IndexesHelper",
    "TableHelper",
    "TablesHelper",
    "ViewHelper",
    "ViewsHelper",
    "format_type",
]
