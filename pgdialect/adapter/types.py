"""Logical field types → PostgreSQL column DDL."""
from __future__ import annotations

from typing import Literal

from pgdialect.adapter.models import FieldDescriptor

TypeMode = Literal["alter", "type"] | None


def _sized(template: str, size: int | None, fallback: str) -> str:
    return template.format(size) if size and size > 0 else fallback


def column_type(field: FieldDescriptor) -> str:
    """Return the bare PostgreSQL type for ``field``; unknown types map to ``integer``."""
    size = field.size or 0
    scale = field.scale or 0
    kind = field.type
    if kind == "Boolean":
        return "boolean"
    if kind in ("Byte", "Short"):
        return "smallint"
    if kind in ("Number", "Float"):
        return "real"
    if kind == "Counter":
        return "SERIAL"
    if kind in ("Currency", "Decimal"):
        return f"decimal({size if size > 0 else 19},{scale if scale > 0 else 4})"
    if kind == "Date":
        return "date"
    if kind == "DateTime":
        return "timestamp"
    if kind == "Time":
        return "time"
    if kind == "Integer":
        return "int"
    if kind == "Duration":
        return _sized("varchar({})", size, "varchar(48)")
    if kind in ("URL", "Text"):
        return _sized("varchar({})", size, "varchar")
    if kind == "Note":
        return _sized("varchar({})", size, "text")
    if kind in ("Image", "Binary"):
        # bytea has no length modifier
        return "bytea"
    if kind == "Guid":
        return "uuid"
    if kind == "Json":
        return "json"
    return "integer"


def format_type(field: FieldDescriptor, mode: TypeMode = None) -> str:
    """Column DDL for ``field``.

    Args:
        field: The column descriptor.
        mode: ``None`` appends ``NULL`` / ``NOT NULL``; ``"alter"`` appends
            ``DROP NOT NULL`` / ``SET NOT NULL``; ``"type"`` returns the
            bare type.

    ``Counter`` columns never carry a nullability clause.
    """
    sql = column_type(field)
    if field.type == "Counter" or mode == "type":
        return sql
    if mode == "alter":
        return f"{sql} {'DROP NOT NULL' if field.nullable else 'SET NOT NULL'}"
    return f"{sql} {'NULL' if field.nullable else 'NOT NULL'}"


#: Logical types stored as ``varchar``/``text``, whose size is ``character_maximum_length``.
CHARACTER_TYPES = frozenset({"Text", "URL", "Note", "Duration"})
