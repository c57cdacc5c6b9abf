"""Tests for tool settings helpers."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from malloy_connections import settings as settings_module
from malloy_connections.models import ConnectionConfigEntry, SecretReference
from malloy_connections.settings import ToolSettings, convert_legacy_connections, load_settings, save_settings


def test_load_settings_returns_defaults_when_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings_module, "SETTINGS_FILE", tmp_path / "settings.toml")

    result = load_settings()

    assert result == ToolSettings()
    assert result.row_limit == 50


def test_load_settings_reads_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings_path = tmp_path / "settings.toml"
    settings_path.write_text(
        """
project_connections_only = true
global_config_directory = "~/.config/malloy"
row_limit = 200

[connections.warehouse]
is = "postgres"
host = "db.internal"
port = 5432
password = { secretKey = "connections.abc.password" }
username = { env = "PGUSER" }
"""
    )
    monkeypatch.setattr(settings_module, "SETTINGS_FILE", settings_path)

    result = load_settings()

    assert result.project_connections_only is True
    assert result.global_config_directory == "~/.config/malloy"
    assert result.row_limit == 200
    entry = result.connections["warehouse"]
    assert entry.kind == "postgres"
    assert entry.properties["port"] == 5432
    assert entry.properties["password"] == SecretReference(secret_key="connections.abc.password")


def test_load_settings_handles_toml_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings_path = tmp_path / "settings.toml"
    settings_path.write_text("row_limit = [unterminated")
    monkeypatch.setattr(settings_module, "SETTINGS_FILE", settings_path)

    result = load_settings()

    assert result == ToolSettings()


def test_load_settings_skips_invalid_entries(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    settings_path = tmp_path / "settings.toml"
    settings_path.write_text(
        """
[connections.good]
is = "postgres"

[connections.missing_kind]
host = "localhost"
"""
    )
    monkeypatch.setattr(settings_module, "SETTINGS_FILE", settings_path)

    with caplog.at_level(logging.WARNING, logger="malloy_connections.settings"):
        result = load_settings()

    assert set(result.connections) == {"good"}
    assert any(getattr(record, "connection", None) == "missing_kind" for record in caplog.records)


def test_load_settings_migrates_legacy_list(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings_path = tmp_path / "settings.toml"
    settings_path.write_text(
        """
[[connections]]
name = "pg"
backend = "postgres"
id = "1234"
host = "localhost"
password = "$secret-1234$"
"""
    )
    monkeypatch.setattr(settings_module, "SETTINGS_FILE", settings_path)

    result = load_settings()

    entry = result.connections["pg"]
    assert entry.kind == "postgres"
    assert entry.properties["host"] == "localhost"
    assert entry.properties["password"] == SecretReference(secret_key="connections.1234.password")


def test_save_settings_persists_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings_path = tmp_path / "nested" / "settings.toml"
    monkeypatch.setattr(settings_module, "SETTINGS_FILE", settings_path)
    original = ToolSettings(
        project_connections_only=True,
        global_config_directory="~/malloy",
        row_limit=10,
        connections={
            "my db": ConnectionConfigEntry.from_config(
                {"is": "postgres", "host": "localhost", "password": {"secretKey": "k"}, "ssl": True}
            )
        },
    )

    save_settings(original)

    content = settings_path.read_text()
    assert "project_connections_only = true" in content
    assert '[connections."my db"]' in content
    assert 'password = { secretKey = "k" }' in content
    assert load_settings() == original


def test_with_connection_and_without_connection() -> None:
    settings = ToolSettings()

    added = settings.with_connection("pg", ConnectionConfigEntry(kind="postgres"))
    removed = added.without_connection("pg")

    assert set(added.connections) == {"pg"}
    assert removed.connections == {}
    assert settings.connections == {}


def test_convert_legacy_connections_names_and_deduplicates() -> None:
    conversion = convert_legacy_connections(
        [
            {"backend": "duckdb", "workingDirectory": "/data"},
            {"name": "bq", "backend": "bigquery", "projectId": "p1"},
            {"name": "bq", "backend": "bigquery", "projectId": "p2"},
            {"name": "gizmo", "backend": "gizmosql"},
            {"name": "duck", "backend": "duckdb", "additionalExtensions": ["spatial", "httpfs"]},
            {"name": "pg", "backend": "postgres", "password": "$secret-abc$", "nested": {"x": 1}},
            "not-an-entry",
        ]
    )

    connections = conversion.connections
    assert set(connections) == {"duckdb-0", "bq", "duck", "pg"}
    assert connections["bq"].properties == {"projectId": "p1"}
    assert connections["duck"].properties == {"additionalExtensions": "spatial,httpfs"}
    assert connections["pg"].properties == {"password": SecretReference(secret_key="connections.pg.password")}
    assert "Generated name 'duckdb-0' for unnamed duckdb entry" in conversion.logs
    assert len(conversion.warnings) == 3
