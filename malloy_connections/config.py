"""Parsing of connection documents and merging with built-in defaults."""

from __future__ import annotations

from typing import Iterable, Mapping

from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigParseError
from .models import FLAT_ENTRIES, ConfigDocument, ConnectionConfigEntry

CONFIG_FILE_NAME = "malloy-config.json"

DEFAULT_ROW_LIMIT = 50

# Convenience alias that is always available unless the user redefines it.
ALIAS_NAME = "md"
ALIAS_ENTRY = {"is": "duckdb", "databasePath": "md:"}


class ProjectConfigFile(BaseModel):
    """Shape of a project-level ``malloy-config.json`` file."""

    connections: dict[str, ConnectionConfigEntry] = Field(default_factory=dict)


def parse_config(raw_text: str) -> ConfigDocument:
    """Parse project configuration text into a connection document."""

    try:
        parsed = ProjectConfigFile.model_validate_json(raw_text, context=FLAT_ENTRIES)
    except ValidationError as exc:
        raise ConfigParseError(f"Invalid connection configuration: {exc}") from exc
    return dict(parsed.connections)


def document_from_mapping(
    connections: Mapping[str, ConnectionConfigEntry | Mapping[str, object]],
) -> ConfigDocument:
    """Normalize a mapping of flat entries (or entries) into a document."""

    try:
        parsed = ProjectConfigFile.model_validate({"connections": dict(connections)}, context=FLAT_ENTRIES)
    except ValidationError as exc:
        raise ConfigParseError(f"Invalid connection configuration: {exc}") from exc
    return dict(parsed.connections)


def default_entries(registered_kinds: Iterable[str]) -> ConfigDocument:
    """Synthesize zero-config entries for every registered backend kind."""

    defaults: ConfigDocument = {
        kind: ConnectionConfigEntry(kind=kind) for kind in registered_kinds
    }
    defaults[ALIAS_NAME] = ConnectionConfigEntry.from_config(ALIAS_ENTRY)
    return defaults


def merge_with_defaults(
    user_document: Mapping[str, ConnectionConfigEntry],
    registered_kinds: Iterable[str],
) -> ConfigDocument:
    """Overlay the user's document on top of the synthesized defaults.

    User entries replace defaults of the same name as a whole; properties are
    never merged between the two.
    """

    merged = default_entries(registered_kinds)
    merged.update(user_document)
    return merged


__all__ = [
    "ALIAS_ENTRY",
    "ALIAS_NAME",
    "CONFIG_FILE_NAME",
    "DEFAULT_ROW_LIMIT",
    "ProjectConfigFile",
    "default_entries",
    "document_from_mapping",
    "merge_with_defaults",
    "parse_config",
]
