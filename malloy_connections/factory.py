"""Connection factory contract and the filesystem-backed implementation."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import os
from typing import Protocol, Sequence, runtime_checkable

from .discovery import file_url_to_path, find_malloy_config
from .errors import ConnectionFactoryError, ConnectionLookupError
from .models import (
    Connection,
    ConnectionConfigEntry,
    ConnectionOptions,
    DiscoveryResult,
    EnvReference,
    SecretReference,
)
from .registry import BackendRegistry

LOG = logging.getLogger(__name__)


@runtime_checkable
class ConnectionFactory(Protocol):
    """Builds live connections from resolved configuration entries."""

    async def create(
        self,
        name: str,
        entry: ConnectionConfigEntry,
        options: ConnectionOptions,
    ) -> Connection: ...

    def reset(self) -> None:
        """Forget (and close) every live connection handed out so far."""

    def get_working_directory(self, file_url: str) -> str: ...

    def registered_kinds(self) -> Sequence[str]: ...


@runtime_checkable
class SupportsConfigDiscovery(Protocol):
    """Optional factory capability: locating project configuration files."""

    def find_malloy_config(
        self,
        file_url: str,
        workspace_roots: Sequence[str],
        global_config_directory: str | None = None,
    ) -> DiscoveryResult | None: ...


class LocalConnectionFactory:
    """Factory for processes with filesystem and environment access."""

    def __init__(self, registry: BackendRegistry | None = None) -> None:
        self._registry = registry or BackendRegistry()
        self._cache: dict[tuple[str, str, str, str], Connection] = {}
        self._closing: set[asyncio.Task[None]] = set()

    @property
    def registry(self) -> BackendRegistry:
        return self._registry

    def registered_kinds(self) -> Sequence[str]:
        return self._registry.kinds()

    async def create(
        self,
        name: str,
        entry: ConnectionConfigEntry,
        options: ConnectionOptions,
    ) -> Connection:
        spec = self._registry.get(entry.kind)
        if spec is None:
            raise ConnectionFactoryError(f"Unsupported connection backend '{entry.kind}'")
        properties = self._resolve_properties(name, entry)
        cache_key = (
            name,
            options.working_directory,
            entry.kind,
            json.dumps(properties, sort_keys=True, default=str),
        )
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            connection = spec.builder(name, properties, options)
            if inspect.isawaitable(connection):
                connection = await connection
        except ConnectionLookupError:
            raise
        except Exception as exc:
            raise ConnectionFactoryError(
                f"Could not create {entry.kind} connection '{name}': {exc}"
            ) from exc
        self._cache[cache_key] = connection
        LOG.info("Created connection", extra={"connection": name, "backend": entry.kind})
        return connection

    def reset(self) -> None:
        connections = list(self._cache.values())
        self._cache.clear()
        for connection in connections:
            self._schedule_close(connection)

    async def shutdown(self) -> None:
        """Close every cached connection and wait for pending closes."""

        connections = list(self._cache.values())
        self._cache.clear()
        pending = [connection.close() for connection in connections]
        pending.extend(self._closing)
        results = await asyncio.gather(*pending, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                LOG.warning("Failed to close connection", exc_info=result)

    def get_working_directory(self, file_url: str) -> str:
        path = file_url_to_path(file_url)
        if path is None:
            return "."
        return str(path.parent)

    def find_malloy_config(
        self,
        file_url: str,
        workspace_roots: Sequence[str],
        global_config_directory: str | None = None,
    ) -> DiscoveryResult | None:
        return find_malloy_config(file_url, workspace_roots, global_config_directory)

    def _resolve_properties(self, name: str, entry: ConnectionConfigEntry) -> dict[str, object]:
        properties: dict[str, object] = {}
        for key, value in entry.properties.items():
            if isinstance(value, EnvReference):
                resolved = os.environ.get(value.env)
                if resolved is None:
                    LOG.debug(
                        "Environment variable is unset; omitting property",
                        extra={"connection": name, "property": key, "env": value.env},
                    )
                    continue
                properties[key] = resolved
            elif isinstance(value, SecretReference):
                LOG.warning(
                    "No secret resolver for property; omitting it",
                    extra={"connection": name, "property": key},
                )
            else:
                properties[key] = value
        return properties

    def _schedule_close(self, connection: Connection) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOG.debug("No running loop; dropping connection without closing", extra={"connection": connection.name})
            return
        task = loop.create_task(connection.close())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)


__all__ = ["ConnectionFactory", "LocalConnectionFactory", "SupportsConfigDiscovery"]
