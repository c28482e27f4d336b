"""Formatter and method registries.

``FormatterFactory``
    Central registry for :class:`~pgdialect.formatter.base.SqlFormatter`
    implementations.  Register a formatter once; adapters and callers look
    it up by dialect name.

``MethodTable``
    Per-formatter-class dispatch table mapping query method names
    (``indexOf``, ``jsonGet``, ...) to formatter methods.  Tables are built
    when the formatter class is defined and bound when a formatter is
    constructed, so a method call is a dictionary lookup rather than a
    reflective attribute search.

Usage::

    from pgdialect.formatter.registry import FormatterFactory, sql_method

    @FormatterFactory.register("postgres")
    class PostgreSQLFormatter(SqlFormatter):

        @sql_method("length")
        def length(self, p0):
            return f"LENGTH({self.escape(p0)})"
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, ClassVar

from pgdialect.errors import CompilationError

if TYPE_CHECKING:
    from pgdialect.formatter.base import SqlFormatter

#: Type alias for an externally registered method handler.
#: ``(formatter, *args) -> sql_string``
MethodHandler = Callable[..., str]

_MARKER = "__sql_methods__"


def sql_method(*names: str) -> Callable[[Callable[..., str]], Callable[..., str]]:
    """Mark a formatter method as the handler for the given query method names.

    Names are matched case-insensitively.
    """

    def decorator(func: Callable[..., str]) -> Callable[..., str]:
        setattr(func, _MARKER, tuple(names))
        return func

    return decorator


class MethodTable:
    """Mapping from lower-cased query method names to handlers.

    A handler is either the *name* of a formatter attribute (so subclass
    overrides are honoured) or a plain callable taking the formatter as its
    first argument.
    """

    def __init__(self, entries: dict[str, str | MethodHandler] | None = None) -> None:
        self._entries: dict[str, str | MethodHandler] = dict(entries or {})

    @classmethod
    def for_class(cls, formatter_cls: type, parent: MethodTable | None = None) -> MethodTable:
        """Build the table for ``formatter_cls`` on top of its parent's table."""
        table = parent.copy() if parent is not None else cls()
        for attr, value in vars(formatter_cls).items():
            for name in getattr(value, _MARKER, ()):
                table.register(name, attr)
        return table

    def copy(self) -> MethodTable:
        return MethodTable(self._entries)

    def register(self, name: str, handler: str | MethodHandler) -> None:
        self._entries[name.lower()] = handler

    def get(self, name: str) -> str | MethodHandler | None:
        return self._entries.get(name.lower())

    def bind(self, formatter: SqlFormatter) -> dict[str, Callable[..., str]]:
        """Resolve every entry against ``formatter``."""
        bound: dict[str, Callable[..., str]] = {}
        for name, handler in self._entries.items():
            if isinstance(handler, str):
                bound[name] = getattr(formatter, handler)
            else:
                bound[name] = _partial(handler, formatter)
        return bound

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._entries


def _partial(handler: MethodHandler, formatter: Any) -> Callable[..., str]:
    def bound(*args: Any) -> str:
        return handler(formatter, *args)

    return bound


# ---------------------------------------------------------------------------
# Formatter factory
# ---------------------------------------------------------------------------


class FormatterFactory:
    """Registry mapping dialect names to :class:`SqlFormatter` classes.

    Example::

        @FormatterFactory.register("postgres")
        class PostgreSQLFormatter(SqlFormatter):
            ...

        formatter = FormatterFactory.create("postgres")
    """

    _formatters: ClassVar[dict[str, type[SqlFormatter]]] = {}

    @classmethod
    def register(cls, *names: str) -> Callable[[type[SqlFormatter]], type[SqlFormatter]]:
        """Decorator that registers a formatter class under ``names``."""

        def decorator(formatter_cls: type[SqlFormatter]) -> type[SqlFormatter]:
            for name in names:
                cls._formatters[name] = formatter_cls
            return formatter_cls

        return decorator

    @classmethod
    def create(cls, name: str) -> SqlFormatter:
        """Instantiate the formatter registered for ``name``.

        Raises:
            CompilationError: If no formatter is registered for ``name``.
        """
        formatter_cls = cls._formatters.get(name)
        if formatter_cls is None:
            registered = sorted(cls._formatters)
            raise CompilationError(
                f"Unsupported dialect: '{name}'. Registered dialects: {registered}."
            )
        return formatter_cls()

    @classmethod
    def registered_dialects(cls) -> list[str]:
        """Return the sorted list of registered dialect names."""
        return sorted(cls._formatters)
