"""Shared models used across discovery, lookups and the connection manager."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Mapping, Protocol, Union, runtime_checkable

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationInfo,
    model_validator,
)

# Validation context for data read from disk, where every entry must be flat.
FLAT_ENTRIES: dict[str, bool] = {"flat_entries": True}


class EnvReference(BaseModel):
    """Property value read from an environment variable at connection time."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    env: str


class SecretReference(BaseModel):
    """Property value stored in an external secret store."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    secret_key: str = Field(alias="secretKey")


# Order matters: references are tried before plain objects so that
# {"env": ...} and {"secretKey": ...} never end up as literal dicts.
PropertyValue = Annotated[
    Union[
        EnvReference,
        SecretReference,
        StrictBool,
        StrictInt,
        StrictFloat,
        StrictStr,
        list[Any],
        dict[str, Any],
        None,
    ],
    Field(union_mode="left_to_right"),
]


class ConnectionConfigEntry(BaseModel):
    """Declarative description of a single named connection."""

    model_config = ConfigDict(populate_by_name=True)

    kind: str = Field(alias="is", min_length=1)
    properties: dict[str, PropertyValue] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _split_flat_entry(cls, data: Any, info: ValidationInfo) -> Any:
        # On disk an entry is flat: {"is": "postgres", "host": ...}.
        if not isinstance(data, Mapping):
            return data
        if "is" in data:
            flat = dict(data)
            kind = flat.pop("is")
            return {"is": kind, "properties": flat}
        if info.context and info.context.get("flat_entries"):
            raise ValueError("connection entry requires an 'is' field")
        return data

    @classmethod
    def from_config(cls, data: Mapping[str, object]) -> ConnectionConfigEntry:
        """Build an entry from its flat on-disk representation."""

        return cls.model_validate(dict(data), context=FLAT_ENTRIES)

    def as_config(self) -> dict[str, object]:
        """Return the flat on-disk representation of the entry."""

        flat: dict[str, object] = {"is": self.kind}
        for key, value in self.properties.items():
            if isinstance(value, BaseModel):
                flat[key] = value.model_dump(by_alias=True)
            else:
                flat[key] = value
        return flat

    def with_properties(self, properties: Mapping[str, object]) -> ConnectionConfigEntry:
        """Return a copy of the entry carrying a new property map."""

        return ConnectionConfigEntry(kind=self.kind, properties=dict(properties))


ConfigDocument = dict[str, ConnectionConfigEntry]


@dataclass(frozen=True, slots=True)
class DiscoveryResult:
    """Project configuration text together with the directory it was found in."""

    config_text: str
    config_dir: str


@dataclass(frozen=True, slots=True)
class ConnectionOptions:
    """Creation-time options handed to a connection factory."""

    working_directory: str
    row_limit: int | None = None


@runtime_checkable
class Connection(Protocol):
    """Live handle to a queryable backend, owned by its factory."""

    name: str
    kind: str

    async def test(self) -> None:
        """Raise if the backend cannot be reached."""

    async def close(self) -> None:
        """Release any resources held by the connection."""


__all__ = [
    "ConfigDocument",
    "Connection",
    "ConnectionConfigEntry",
    "ConnectionOptions",
    "DiscoveryResult",
    "EnvReference",
    "FLAT_ENTRIES",
    "PropertyValue",
    "SecretReference",
]
