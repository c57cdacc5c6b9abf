"""Tests for parsing connection documents and merging defaults."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from malloy_connections.config import (
    ALIAS_NAME,
    document_from_mapping,
    merge_with_defaults,
    parse_config,
)
from malloy_connections.errors import ConfigParseError
from malloy_connections.models import ConnectionConfigEntry, EnvReference, SecretReference


def test_parse_config_reads_entries() -> None:
    document = parse_config('{"connections": {"mydb": {"is": "duckdb", "databasePath": "data.db"}}}')

    assert set(document) == {"mydb"}
    assert document["mydb"].kind == "duckdb"
    assert document["mydb"].properties == {"databasePath": "data.db"}


def test_parse_config_recognizes_references() -> None:
    document = parse_config(
        """
        {"connections": {"pg": {
            "is": "postgres",
            "port": 5432,
            "host": {"env": "PGHOST"},
            "password": {"secretKey": "connections.pg.password"},
            "options": {"ssl": true}
        }}}
        """
    )

    properties = document["pg"].properties
    assert properties["port"] == 5432
    assert properties["host"] == EnvReference(env="PGHOST")
    assert properties["password"] == SecretReference(secret_key="connections.pg.password")
    assert properties["options"] == {"ssl": True}


def test_parse_config_allows_empty_document() -> None:
    assert parse_config("{}") == {}


@pytest.mark.parametrize(
    "raw_text",
    [
        "{bad json",
        '{"connections": {"mydb": {"host": "localhost"}}}',
        '{"connections": {"mydb": {"is": ""}}}',
        '{"connections": []}',
        '{"connections": {"mydb": {"kind": "duckdb", "host": "h"}}}',
    ],
)
def test_parse_config_rejects_malformed_text(raw_text: str) -> None:
    with pytest.raises(ConfigParseError):
        parse_config(raw_text)


def test_entry_round_trips_flat_representation() -> None:
    flat = {"is": "postgres", "host": "db", "password": {"secretKey": "k"}, "user": {"env": "PGUSER"}}

    entry = ConnectionConfigEntry.from_config(flat)

    assert entry.as_config() == flat


def test_flat_entry_requires_is_field() -> None:
    with pytest.raises(ValidationError, match="requires an 'is' field"):
        ConnectionConfigEntry.from_config({"kind": "duckdb", "host": "h"})

    with pytest.raises(ConfigParseError):
        document_from_mapping({"mydb": {"kind": "duckdb"}})


def test_user_entry_wins_over_registered_default() -> None:
    user = {"duckdb": ConnectionConfigEntry.from_config({"is": "duckdb", "databasePath": "local.db"})}

    merged = merge_with_defaults(user, ["duckdb", "postgres"])

    assert merged["duckdb"] == user["duckdb"]
    assert merged["postgres"] == ConnectionConfigEntry(kind="postgres")


def test_merge_adds_alias_entry() -> None:
    merged = merge_with_defaults({}, [])

    assert set(merged) == {ALIAS_NAME}
    assert merged[ALIAS_NAME].as_config() == {"is": "duckdb", "databasePath": "md:"}


def test_user_can_override_alias() -> None:
    user = {ALIAS_NAME: ConnectionConfigEntry(kind="postgres")}

    merged = merge_with_defaults(user, ["duckdb"])

    assert merged[ALIAS_NAME].kind == "postgres"


def test_merge_does_not_mutate_inputs() -> None:
    user = {"mine": ConnectionConfigEntry(kind="postgres")}
    kinds = ["postgres"]

    first = merge_with_defaults(user, kinds)
    second = merge_with_defaults(user, kinds)

    assert first == second
    assert user == {"mine": ConnectionConfigEntry(kind="postgres")}


def test_document_from_mapping_accepts_flat_entries() -> None:
    document = document_from_mapping({"settingsonly": {"is": "postgres", "host": "localhost"}})

    assert document["settingsonly"].properties == {"host": "localhost"}


def test_document_from_mapping_rejects_bad_entries() -> None:
    with pytest.raises(ConfigParseError):
        document_from_mapping({"broken": {"host": "localhost"}})
