"""Custom exception hierarchy for pgdialect.

All public errors inherit from PgDialectError so callers can catch the base
class for any pgdialect-specific failure.  Errors raised by the database
driver (``psycopg.Error`` and subclasses) are never wrapped; they reach the
caller exactly as the driver raised them.
"""
from __future__ import annotations

from typing import Any


class PgDialectError(Exception):
    """Base exception for all pgdialect errors."""


class CompilationError(PgDialectError):
    """Raised when a query expression cannot be expressed as PostgreSQL SQL.

    Args:
        message: Human-readable description.
        clause: The expression clause being formatted when the error occurred.
    """

    def __init__(self, message: str, clause: str | None = None) -> None:
        super().__init__(message)
        self.clause = clause


class InvalidArgumentError(PgDialectError):
    """Raised for malformed input, before any statement reaches the server.

    Args:
        message: Human-readable description.
        argument: Name of the offending argument.
        details: Extra context for diagnostics.
    """

    def __init__(
        self,
        message: str,
        argument: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.argument = argument
        self.details: dict[str, Any] = details or {}


class UnsupportedMigrationError(InvalidArgumentError):
    """Raised when a migration asks for a non-additive schema change.

    Only ``add`` collections are supported; ``remove`` and ``change`` are
    rejected.
    """

    def __init__(self, operation: str, applies_to: str) -> None:
        super().__init__(
            f"Migration operation '{operation}' is not supported "
            f"(target: '{applies_to}'). Only additive migrations are allowed.",
            argument=operation,
            details={"operation": operation, "applies_to": applies_to},
        )
        self.operation = operation
