"""Exceptions raised while resolving connections."""

from __future__ import annotations


class ConnectionLookupError(RuntimeError):
    """Base error for connection resolution failures."""


class ConfigParseError(ConnectionLookupError):
    """Raised when configuration text cannot be parsed."""


class ConnectionNotFoundError(ConnectionLookupError, LookupError):
    """Raised when a connection name is not defined in a document."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No connection found with name '{name}'")
        self.name = name


class ProjectOnlyViolation(ConnectionLookupError):
    """Raised for every lookup when projectConnectionsOnly has no project file to use."""


class ConnectionFactoryError(ConnectionLookupError):
    """Raised when a live connection cannot be created."""


__all__ = [
    "ConfigParseError",
    "ConnectionFactoryError",
    "ConnectionLookupError",
    "ConnectionNotFoundError",
    "ProjectOnlyViolation",
]
