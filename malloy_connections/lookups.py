"""Lookup implementations that turn connection names into live connections."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Mapping, Protocol, runtime_checkable

from .errors import ConnectionNotFoundError
from .models import ConfigDocument, Connection, ConnectionConfigEntry, ConnectionOptions, SecretReference

if TYPE_CHECKING:
    from .factory import ConnectionFactory

LOG = logging.getLogger(__name__)

SecretResolver = Callable[[str], Awaitable[str | None]]
RowLimitGetter = Callable[[], int | None]


@runtime_checkable
class LookupConnection(Protocol):
    """Anything able to resolve a connection by name."""

    async def lookup_connection(self, name: str) -> Connection: ...


def _no_row_limit() -> int | None:
    return None


class ConfigConnectionLookup:
    """Resolves names against a document by delegating to the factory."""

    def __init__(
        self,
        document: Mapping[str, ConnectionConfigEntry],
        factory: ConnectionFactory,
        *,
        working_directory: str,
        row_limit: RowLimitGetter | None = None,
    ) -> None:
        self._document: ConfigDocument = dict(document)
        self._factory = factory
        self._working_directory = working_directory
        self._row_limit = row_limit or _no_row_limit

    @property
    def document(self) -> Mapping[str, ConnectionConfigEntry]:
        """Entries this lookup can resolve."""

        return self._document

    @property
    def working_directory(self) -> str:
        return self._working_directory

    async def lookup_connection(self, name: str) -> Connection:
        entry = self._document.get(name)
        if entry is None:
            raise ConnectionNotFoundError(name)
        resolved = await self._resolve_entry(name, entry)
        # Row limit is read here so later limit changes reach new connections.
        options = ConnectionOptions(
            working_directory=self._working_directory,
            row_limit=self._row_limit(),
        )
        return await self._factory.create(name, resolved, options)

    async def _resolve_entry(self, name: str, entry: ConnectionConfigEntry) -> ConnectionConfigEntry:
        return entry


class SettingsConnectionLookup(ConfigConnectionLookup):
    """Settings-backed lookup that resolves secret references on demand."""

    def __init__(
        self,
        document: Mapping[str, ConnectionConfigEntry],
        factory: ConnectionFactory,
        resolver: SecretResolver,
        *,
        working_directory: str,
        row_limit: RowLimitGetter | None = None,
    ) -> None:
        super().__init__(document, factory, working_directory=working_directory, row_limit=row_limit)
        self._resolver = resolver

    async def _resolve_entry(self, name: str, entry: ConnectionConfigEntry) -> ConnectionConfigEntry:
        properties: dict[str, object] = {}
        for key, value in entry.properties.items():
            if not isinstance(value, SecretReference):
                properties[key] = value
                continue
            secret = await self._resolver(value.secret_key)
            if secret is None:
                LOG.debug(
                    "Secret is unset; omitting property",
                    extra={"connection": name, "property": key},
                )
                continue
            properties[key] = secret
        return entry.with_properties(properties)


class MergedConnectionLookup:
    """Try ``primary`` first and fall back to ``secondary`` on any failure.

    The two lookups are awaited one after the other. When both fail the
    secondary's exception is the one the caller sees.
    """

    def __init__(self, primary: LookupConnection, secondary: LookupConnection) -> None:
        self._primary = primary
        self._secondary = secondary

    @property
    def primary(self) -> LookupConnection:
        return self._primary

    @property
    def secondary(self) -> LookupConnection:
        return self._secondary

    async def lookup_connection(self, name: str) -> Connection:
        try:
            return await self._primary.lookup_connection(name)
        except Exception as exc:
            LOG.debug(
                "Primary lookup failed; trying fallback",
                extra={"connection": name, "error": str(exc)},
            )
        return await self._secondary.lookup_connection(name)


class FailingConnectionLookup:
    """Lookup that rejects every name with a freshly built error."""

    def __init__(self, error: Callable[[str], Exception]) -> None:
        self._error = error

    async def lookup_connection(self, name: str) -> Connection:
        raise self._error(name)


__all__ = [
    "ConfigConnectionLookup",
    "FailingConnectionLookup",
    "LookupConnection",
    "MergedConnectionLookup",
    "RowLimitGetter",
    "SecretResolver",
    "SettingsConnectionLookup",
]
