"""Tool settings loading helpers."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

import tomllib

from pydantic import BaseModel, Field, ValidationError

from .config import DEFAULT_ROW_LIMIT
from .models import ConfigDocument, ConnectionConfigEntry, SecretReference

LOG = logging.getLogger(__name__)

SETTINGS_FILE = Path.home() / ".config" / "malloy-connections" / "settings.toml"

_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


class ToolSettings(BaseModel):
    """Shape of the tool settings file."""

    connections: dict[str, ConnectionConfigEntry] = Field(default_factory=dict)
    project_connections_only: bool = False
    global_config_directory: str | None = None
    row_limit: int = DEFAULT_ROW_LIMIT

    def with_connection(self, name: str, entry: ConnectionConfigEntry) -> ToolSettings:
        """Return a copy with ``name`` added or replaced."""

        connections = dict(self.connections)
        connections[name] = entry
        return self.model_copy(update={"connections": connections})

    def without_connection(self, name: str) -> ToolSettings:
        """Return a copy with ``name`` removed."""

        connections = dict(self.connections)
        connections.pop(name, None)
        return self.model_copy(update={"connections": connections})


@dataclass(frozen=True, slots=True)
class LegacyConversion:
    """Result of converting a legacy connection list."""

    connections: ConfigDocument
    logs: tuple[str, ...]
    warnings: tuple[str, ...]


def load_settings() -> ToolSettings:
    """Load settings from disk; fall back to defaults if missing or unreadable."""

    try:
        data = _read_settings_file()
    except FileNotFoundError:
        return ToolSettings()
    except (tomllib.TOMLDecodeError, OSError) as exc:
        LOG.warning("Ignoring unreadable settings file", extra={"path": str(SETTINGS_FILE), "error": str(exc)})
        return ToolSettings()
    return ToolSettings(**data)


def save_settings(settings: ToolSettings) -> None:
    """Persist settings to disk, always using the connection map format."""

    SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        f"project_connections_only = {str(settings.project_connections_only).lower()}",
        f"row_limit = {settings.row_limit}",
    ]
    if settings.global_config_directory:
        lines.append(f"global_config_directory = {_toml_value(settings.global_config_directory)}")
    for name in sorted(settings.connections):
        lines.append("")
        lines.append(f"[connections.{_toml_key(name)}]")
        for key, value in settings.connections[name].as_config().items():
            if value is None:
                continue
            lines.append(f"{_toml_key(key)} = {_toml_value(value)}")
    SETTINGS_FILE.write_text("\n".join(lines) + "\n")


def convert_legacy_connections(legacy: Sequence[object]) -> LegacyConversion:
    """Convert the legacy list-of-connections format into a connection map.

    Entries carry ``name``, ``backend`` and ``id`` alongside their backend
    properties. Unnamed entries get ``<backend>-<index>``; later duplicates
    and GizmoSQL entries are dropped; ``$secret-...$`` placeholders become
    secret references keyed by the entry's id.
    """

    connections: ConfigDocument = {}
    logs: list[str] = []
    warnings: list[str] = []
    for index, raw in enumerate(legacy):
        if not isinstance(raw, Mapping):
            warnings.append(f"Dropped malformed entry at position {index}")
            continue
        backend = str(raw.get("backend") or "unknown")
        if backend == "gizmosql":
            warnings.append(f"Dropped GizmoSQL entry '{raw.get('name') or f'unnamed-{index}'}'")
            continue
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            name = f"{backend}-{index}"
            logs.append(f"Generated name '{name}' for unnamed {backend} entry")
        if name in connections:
            warnings.append(f"Dropped duplicate entry '{name}' ({backend}), keeping first occurrence")
            continue

        keychain_id = raw.get("id") or name
        properties: dict[str, object] = {}
        for key, value in raw.items():
            if key in ("name", "id", "backend"):
                continue
            if key == "additionalExtensions" and isinstance(value, list):
                properties[key] = ",".join(str(item) for item in value)
            elif isinstance(value, str) and value.startswith("$secret-") and value.endswith("$"):
                properties[key] = SecretReference(secret_key=f"connections.{keychain_id}.{key}")
            elif isinstance(value, (str, int, float, bool)):
                properties[key] = value
        connections[name] = ConnectionConfigEntry(kind=backend, properties=properties)
        logs.append(f"Converted '{name}' ({backend})")
    return LegacyConversion(connections=connections, logs=tuple(logs), warnings=tuple(warnings))


def _read_settings_file() -> dict[str, object]:
    with SETTINGS_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    only = raw.get("project_connections_only")
    if isinstance(only, bool):
        data["project_connections_only"] = only
    global_dir = raw.get("global_config_directory")
    if isinstance(global_dir, str):
        data["global_config_directory"] = global_dir
    row_limit = raw.get("row_limit")
    if isinstance(row_limit, int) and not isinstance(row_limit, bool):
        data["row_limit"] = row_limit
    connections = raw.get("connections")
    if isinstance(connections, dict):
        data["connections"] = _read_connection_map(connections)
    elif isinstance(connections, list):
        conversion = convert_legacy_connections(connections)
        for line in conversion.logs:
            LOG.info("[migration] %s", line)
        for line in conversion.warnings:
            LOG.warning("[migration] %s", line)
        data["connections"] = conversion.connections
    return data


def _read_connection_map(connections: Mapping[str, object]) -> ConfigDocument:
    parsed: ConfigDocument = {}
    for name, entry in connections.items():
        if not isinstance(entry, dict):
            LOG.warning("Skipping malformed connection entry", extra={"connection": name})
            continue
        try:
            parsed[str(name)] = ConnectionConfigEntry.from_config(entry)
        except ValidationError as exc:
            LOG.warning("Skipping invalid connection entry", extra={"connection": name, "error": str(exc)})
    return parsed


def _toml_key(key: str) -> str:
    return key if _BARE_KEY.match(key) else json.dumps(key)


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        items = ", ".join(
            f"{_toml_key(str(key))} = {_toml_value(item)}"
            for key, item in value.items()
            if item is not None
        )
        return "{ " + items + " }" if items else "{}"
    raise TypeError(f"Cannot write {type(value).__name__} to TOML")


__all__ = [
    "LegacyConversion",
    "SETTINGS_FILE",
    "ToolSettings",
    "convert_legacy_connections",
    "load_settings",
    "save_settings",
]
