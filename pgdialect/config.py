"""Connection settings for :class:`~pgdialect.adapter.postgres.PostgreSQLAdapter`.

Settings are validated by pydantic and may come from keyword arguments, a
mapping, environment variables prefixed with ``PGDIALECT_`` or a ``.env``
file::

    options = ConnectionOptions(user="app", password="secret", database="shop")
    adapter = PostgreSQLAdapter(options)

    # or, with PGDIALECT_USER / PGDIALECT_DATABASE exported
    adapter = PostgreSQLAdapter()
"""
from __future__ import annotations

from typing import Any

from psycopg.conninfo import make_conninfo
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConnectionOptions(BaseSettings):
    """Connection parameters for a single PostgreSQL database.

    Attributes:
        host: Server host name.
        port: Server port.
        user: Login role.
        password: Login password.
        database: Database name.
        connect_timeout: Seconds to wait for the server before failing.
        application_name: Reported in ``pg_stat_activity``.
    """

    model_config = SettingsConfigDict(
        env_prefix="PGDIALECT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = Field(default=5432, gt=0, lt=65536)
    user: str | None = None
    password: str | None = None
    database: str | None = None
    connect_timeout: int | None = Field(default=None, ge=0)
    application_name: str | None = None

    @property
    def conninfo(self) -> str:
        """Return a libpq connection string for these options."""
        params: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "dbname": self.database,
            "connect_timeout": self.connect_timeout,
            "application_name": self.application_name,
        }
        return make_conninfo(**{k: v for k, v in params.items() if v is not None})

    @classmethod
    def coerce(cls, options: ConnectionOptions | dict[str, Any] | None) -> ConnectionOptions:
        """Return ``options`` as a :class:`ConnectionOptions` instance."""
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        return cls(**options)
