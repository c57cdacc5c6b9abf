"""Connection manager assembling discovery, parsing and lookups per file."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping, Sequence

from .config import CONFIG_FILE_NAME, DEFAULT_ROW_LIMIT, document_from_mapping, merge_with_defaults, parse_config
from .errors import ConfigParseError, ProjectOnlyViolation
from .factory import ConnectionFactory, SupportsConfigDiscovery
from .lookups import (
    ConfigConnectionLookup,
    FailingConnectionLookup,
    LookupConnection,
    MergedConnectionLookup,
    SecretResolver,
    SettingsConnectionLookup,
)
from .models import ConfigDocument, ConnectionConfigEntry, DiscoveryResult

if TYPE_CHECKING:
    from .settings import ToolSettings

LOG = logging.getLogger(__name__)


def canonical_directory(directory: str) -> str:
    """Normalize a directory so equivalent spellings share a cache slot."""

    return os.path.normpath(directory)


@dataclass(frozen=True, slots=True)
class ConfigCacheEntry:
    """Parsed project configuration for one directory."""

    directory: str
    raw_text: str
    document: ConfigDocument
    lookup: LookupConnection


class ConfigCache:
    """Per-directory cache of parsed project configurations."""

    def __init__(self) -> None:
        self._entries: dict[str, ConfigCacheEntry] = {}

    def get(self, directory: str) -> ConfigCacheEntry | None:
        return self._entries.get(canonical_directory(directory))

    def put(self, entry: ConfigCacheEntry) -> None:
        self._entries[canonical_directory(entry.directory)] = entry

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, directory: object) -> bool:
        return isinstance(directory, str) and canonical_directory(directory) in self._entries


class ConnectionManager:
    """Decides which connections a file can see and hands out lookups for them."""

    def __init__(
        self,
        factory: ConnectionFactory,
        *,
        connections: Mapping[str, ConnectionConfigEntry | Mapping[str, object]] | None = None,
        secret_resolver: SecretResolver | None = None,
        workspace_roots: Sequence[str] = (),
        global_config_directory: str | None = None,
        project_connections_only: bool = False,
        row_limit: int = DEFAULT_ROW_LIMIT,
    ) -> None:
        self._factory = factory
        self._settings: ConfigDocument = document_from_mapping(connections or {})
        self._secret_resolver = secret_resolver
        self._workspace_roots = tuple(workspace_roots)
        self._global_config_directory = global_config_directory
        self._project_connections_only = project_connections_only
        self._current_row_limit = row_limit
        self._config_cache = ConfigCache()
        self._settings_lookups: dict[str, LookupConnection] = {}

    @property
    def factory(self) -> ConnectionFactory:
        return self._factory

    @property
    def config_cache(self) -> ConfigCache:
        return self._config_cache

    @property
    def connections_config(self) -> Mapping[str, ConnectionConfigEntry]:
        """Connections defined in tool settings (without defaults)."""

        return self._settings

    @property
    def workspace_roots(self) -> tuple[str, ...]:
        return self._workspace_roots

    @property
    def global_config_directory(self) -> str | None:
        return self._global_config_directory

    @property
    def project_connections_only(self) -> bool:
        return self._project_connections_only

    def get_connection_lookup(self, file_url: str) -> LookupConnection:
        """Return the lookup that applies to the file at ``file_url``."""

        if not isinstance(self._factory, SupportsConfigDiscovery):
            return self._settings_lookup(file_url)
        finder = self._factory.find_malloy_config

        if self._project_connections_only:
            # The global directory is never consulted in this mode.
            discovered = finder(file_url, self._workspace_roots, "")
            if discovered is None:
                return FailingConnectionLookup(lambda name: _project_only_violation(name, file_url))
            try:
                return self._project_lookup(discovered)
            except ConfigParseError as exc:
                LOG.warning(
                    "Malformed project config with projectConnectionsOnly enabled",
                    extra={"config_dir": discovered.config_dir, "error": str(exc)},
                )
                message = str(exc)
                return FailingConnectionLookup(lambda name: ConfigParseError(message))

        discovered = finder(file_url, self._workspace_roots, self._global_config_directory)
        if discovered is None:
            return self._settings_lookup(file_url)
        try:
            project = self._project_lookup(discovered)
        except ConfigParseError as exc:
            LOG.warning(
                "Ignoring malformed project config in %s",
                discovered.config_dir,
                extra={"config_dir": discovered.config_dir, "error": str(exc)},
            )
            return self._settings_lookup(file_url)
        return MergedConnectionLookup(project, self._settings_lookup(file_url))

    def set_connections_config(
        self,
        connections: Mapping[str, ConnectionConfigEntry | Mapping[str, object]],
    ) -> None:
        """Replace the settings document and drop everything derived from it."""

        self._settings = document_from_mapping(connections)
        self._config_cache.clear()
        self._settings_lookups.clear()
        self._factory.reset()
        LOG.info("Using connection config", extra={"connections": sorted(self._settings)})

    def clear_config_caches(self) -> None:
        """Forget parsed project configurations; settings are kept."""

        self._config_cache.clear()

    def apply_settings(self, settings: ToolSettings) -> None:
        """Push persisted tool settings into the manager."""

        self.set_project_connections_only(settings.project_connections_only)
        self.set_global_config_directory(settings.global_config_directory)
        self.set_current_row_limit(settings.row_limit)
        self.set_connections_config(settings.connections)

    def set_secret_resolver(self, resolver: SecretResolver | None) -> None:
        self._secret_resolver = resolver

    def set_project_connections_only(self, enabled: bool) -> None:
        self._project_connections_only = enabled

    def set_workspace_roots(self, roots: Sequence[str]) -> None:
        self._workspace_roots = tuple(roots)

    def set_global_config_directory(self, directory: str | None) -> None:
        self._global_config_directory = directory

    def set_current_row_limit(self, row_limit: int) -> None:
        self._current_row_limit = row_limit

    def get_current_row_limit(self) -> int | None:
        return self._current_row_limit

    def _project_lookup(self, discovered: DiscoveryResult) -> LookupConnection:
        directory = canonical_directory(discovered.config_dir)
        cached = self._config_cache.get(directory)
        if cached is not None and cached.raw_text == discovered.config_text:
            LOG.debug("Reusing cached project config", extra={"config_dir": directory})
            return cached.lookup
        document = parse_config(discovered.config_text)
        lookup = ConfigConnectionLookup(
            document,
            self._factory,
            working_directory=directory,
            row_limit=self.get_current_row_limit,
        )
        self._config_cache.put(
            ConfigCacheEntry(
                directory=directory,
                raw_text=discovered.config_text,
                document=document,
                lookup=lookup,
            )
        )
        return lookup

    def _settings_lookup(self, file_url: str) -> LookupConnection:
        working_directory = self._factory.get_working_directory(file_url)
        lookup = self._settings_lookups.get(working_directory)
        if lookup is not None:
            return lookup
        document = merge_with_defaults(self._settings, self._factory.registered_kinds())
        if self._secret_resolver is not None:
            lookup = SettingsConnectionLookup(
                document,
                self._factory,
                self._secret_resolver,
                working_directory=working_directory,
                row_limit=self.get_current_row_limit,
            )
        else:
            lookup = ConfigConnectionLookup(
                document,
                self._factory,
                working_directory=working_directory,
                row_limit=self.get_current_row_limit,
            )
        self._settings_lookups[working_directory] = lookup
        return lookup


def _project_only_violation(name: str, file_url: str) -> ProjectOnlyViolation:
    return ProjectOnlyViolation(
        f"Connection '{name}' is unavailable: projectConnectionsOnly is enabled "
        f"and no {CONFIG_FILE_NAME} was found for {file_url}"
    )


__all__ = [
    "ConfigCache",
    "ConfigCacheEntry",
    "ConnectionManager",
    "canonical_directory",
]
