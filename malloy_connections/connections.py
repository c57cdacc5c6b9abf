"""Built-in live connection implementations."""

from __future__ import annotations

from typing import Any, Mapping

import asyncpg

from .errors import ConnectionFactoryError
from .models import ConnectionOptions


class PostgresConnection:
    """Connection to PostgreSQL via asyncpg, established on first use."""

    kind = "postgres"

    def __init__(
        self,
        name: str,
        properties: Mapping[str, object],
        options: ConnectionOptions,
        *,
        connect_timeout: float = 5.0,
    ) -> None:
        self.name = name
        self.row_limit = options.row_limit
        self.working_directory = options.working_directory
        self._properties = dict(properties)
        self._connect_timeout = connect_timeout
        self._conn: Any | None = None

    @property
    def connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> Any:
        """Open the underlying asyncpg connection if needed and return it."""

        if self._conn is None:
            try:
                self._conn = await asyncpg.connect(**self._connect_kwargs())
            except Exception as exc:
                raise ConnectionFactoryError(f"Failed to connect to '{self.name}': {exc}") from exc
        return self._conn

    async def test(self) -> None:
        conn = await self.connect()
        try:
            await conn.fetchval("SELECT 1")
        except Exception as exc:
            raise ConnectionFactoryError(f"Connection test failed for '{self.name}': {exc}") from exc

    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await conn.close()
        except Exception:  # pragma: no cover - best effort cleanup
            pass

    def _connect_kwargs(self) -> dict[str, object]:
        props = self._properties
        kwargs: dict[str, object] = {}
        dsn = props.get("connectionString")
        if dsn:
            kwargs["dsn"] = str(dsn)
        else:
            kwargs["host"] = str(props.get("host") or "localhost")
            port = props.get("port")
            if port is not None:
                kwargs["port"] = int(port)  # type: ignore[call-overload]
            if props.get("username"):
                kwargs["user"] = str(props["username"])
            if props.get("databaseName"):
                kwargs["database"] = str(props["databaseName"])
        if props.get("password"):
            kwargs["password"] = str(props["password"])
        kwargs.setdefault("timeout", self._connect_timeout)
        return kwargs


def create_postgres_connection(
    name: str,
    properties: Mapping[str, object],
    options: ConnectionOptions,
) -> PostgresConnection:
    return PostgresConnection(name, properties, options)


__all__ = ["PostgresConnection", "create_postgres_connection"]
