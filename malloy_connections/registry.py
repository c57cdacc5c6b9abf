"""Registry of backend kinds that connections can be built for."""

from __future__ import annotations

import importlib.metadata as metadata
import inspect
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping

from .connections import create_postgres_connection
from .models import Connection, ConnectionOptions

LOG = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "malloy_connections.backends"

ConnectionBuilder = Callable[[str, Mapping[str, object], ConnectionOptions], Connection]


@dataclass(frozen=True, slots=True)
class BackendSpec:
    """A backend kind together with the callable that builds its connections."""

    kind: str
    display_name: str
    builder: ConnectionBuilder


BUILTIN_BACKENDS: tuple[BackendSpec, ...] = (
    BackendSpec(kind="postgres", display_name="Postgres", builder=create_postgres_connection),
)


class BackendRegistry:
    """Collects built-in backends and those published through entry points."""

    def __init__(
        self,
        *,
        entry_point_group: str = ENTRY_POINT_GROUP,
        builtin_backends: Iterable[BackendSpec] | None = None,
    ) -> None:
        self._entry_point_group = entry_point_group
        self._builtin_backends = list(BUILTIN_BACKENDS if builtin_backends is None else builtin_backends)
        self._backends: dict[str, BackendSpec] | None = None

    def discover(self) -> list[BackendSpec]:
        """Enumerate backends from entry points, then fill gaps with built-ins."""

        return list(self._discover().values())

    def _discover(self) -> dict[str, BackendSpec]:
        eps = metadata.entry_points()
        group = eps.select(group=self._entry_point_group)
        discovered: dict[str, BackendSpec] = {}
        for entry_point in sorted(group, key=lambda ep: ep.name):
            try:
                spec = self._load_spec(entry_point)
            except Exception:
                LOG.exception("Skipping backend that failed to load", extra={"entry_point": entry_point.name})
                continue
            discovered[spec.kind] = spec
        for builtin in self._builtin_backends:
            discovered.setdefault(builtin.kind, builtin)
        self._backends = {kind: discovered[kind] for kind in sorted(discovered)}
        return self._backends

    def register(self, spec: BackendSpec) -> None:
        """Register (or replace) a backend explicitly."""

        backends = self._ensure_discovered()
        backends[spec.kind] = spec

    def kinds(self) -> tuple[str, ...]:
        """Registered backend kinds."""

        return tuple(self._ensure_discovered())

    def get(self, kind: str) -> BackendSpec | None:
        return self._ensure_discovered().get(kind)

    def _ensure_discovered(self) -> dict[str, BackendSpec]:
        if self._backends is None:
            return self._discover()
        return self._backends

    def _load_spec(self, entry_point: metadata.EntryPoint) -> BackendSpec:
        obj = entry_point.load()
        if inspect.isclass(obj) or inspect.isfunction(obj):
            obj = obj()
        if not isinstance(obj, BackendSpec):
            raise TypeError(f"Entry point '{entry_point.name}' did not provide a BackendSpec")
        return obj


__all__ = [
    "BUILTIN_BACKENDS",
    "BackendRegistry",
    "BackendSpec",
    "ConnectionBuilder",
    "ENTRY_POINT_GROUP",
]
