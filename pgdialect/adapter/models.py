"""Pydantic models for schema descriptors, introspection results and migrations."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FieldDescriptor(BaseModel):
    """One column, as described by the caller for DDL generation.

    Attributes:
        name: Column name.
        type: Logical type name (``Text``, ``Integer``, ``Counter`` ...).
        size: Length or precision; ``None`` or ``0`` for the type default.
        scale: Decimal scale.
        nullable: Whether the column accepts NULL.
        primary: Part of the primary key.
        one_to_many: Navigation-only field; never becomes a column.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str
    type: str = "Text"
    size: int | None = None
    scale: int | None = None
    nullable: bool = True
    primary: bool = False
    one_to_many: bool = Field(False, alias="oneToMany")


class ColumnMetadata(BaseModel):
    """A live column, as reported by ``information_schema.columns``."""

    name: str
    ordinal: int
    type: str
    size: int | None = None
    nullable: bool = True
    default_value: str | None = None


class IndexDescriptor(BaseModel):
    """A live index and its ordered key columns."""

    name: str
    columns: list[str] = Field(default_factory=list)


class Migration(BaseModel):
    """A versioned, additive schema change for one table.

    Attributes:
        applies_to: Target table, optionally ``schema.table``.
        model: Logical model name recorded in the audit row.
        version: Version string; compared as text against applied versions.
        description: Free text recorded in the audit row.
        add: Fields the table must have after the migration.
        remove: Not supported; must be empty.
        change: Not supported; must be empty.
        updated: Set to ``True`` when the version was already applied.
    """

    model_config = ConfigDict(populate_by_name=True)

    applies_to: str = Field(alias="appliesTo")
    model: str | None = None
    version: str = "0.0"
    description: str | None = None
    add: list[FieldDescriptor] = Field(default_factory=list)
    remove: list[FieldDescriptor] = Field(default_factory=list)
    change: list[FieldDescriptor] = Field(default_factory=list)
    updated: bool = False

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, v: object) -> object:
        if isinstance(v, (int, float)):
            return str(v)
        return v


class MigrationResult(BaseModel):
    """Outcome of :meth:`PostgreSQLAdapter.migrate`."""

    applied: bool
