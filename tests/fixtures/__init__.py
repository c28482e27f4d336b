"""Test fixtures: a scripted in-memory connection and the SimpleOrders schema."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

_FIXTURES_DIR = Path(__file__).parent


def load_simple_order_schema() -> dict[str, Any]:
    """Load the SimpleOrders model (``source`` table + ``fields``)."""
    return json.loads((_FIXTURES_DIR / "simple_order.json").read_text())


class FakeCursor:
    """Async cursor returning the rows scripted on its :class:`FakeConnection`."""

    def __init__(self, connection: FakeConnection) -> None:
        self._connection = connection
        self._rows: list[dict[str, Any]] | None = None

    async def __aenter__(self) -> FakeCursor:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    @property
    def description(self) -> list[str] | None:
        if self._rows is None:
            return None
        return list(self._rows[0]) if self._rows else ["?column?"]

    async def execute(self, sql: str) -> None:
        self._rows = self._connection.respond(sql)

    async def fetchall(self) -> list[dict[str, Any]]:
        return list(self._rows or [])


class FakeConnection:
    """Records executed SQL and answers statements from regex-keyed scripts.

    ``on(pattern, rows)`` scripts a result for statements matching ``pattern``
    (``re.search``); later scripts take precedence.  ``fail(pattern, exc)``
    makes matching statements raise.  Statements with no script return no
    result set.
    """

    def __init__(self) -> None:
        self.executed: list[str] = []
        self.closed = False
        self.close_error: Exception | None = None
        self._scripts: list[tuple[re.Pattern[str], Any]] = []

    def on(self, pattern: str, rows: list[dict[str, Any]]) -> FakeConnection:
        self._scripts.append((re.compile(pattern, re.S), rows))
        return self

    def fail(self, pattern: str, exc: Exception) -> FakeConnection:
        self._scripts.append((re.compile(pattern, re.S), exc))
        return self

    def respond(self, sql: str) -> list[dict[str, Any]] | None:
        self.executed.append(sql)
        for pattern, result in reversed(self._scripts):
            if pattern.search(sql):
                if isinstance(result, Exception):
                    raise result
                return [dict(row) for row in result]
        return None

    def cursor(self, row_factory: Any = None) -> FakeCursor:
        return FakeCursor(self)

    async def close(self) -> None:
        if self.close_error is not None:
            raise self.close_error
        self.closed = True

    def statements(self, pattern: str) -> list[str]:
        """Executed statements matching ``pattern``."""
        return [sql for sql in self.executed if re.search(pattern, sql, re.S)]
