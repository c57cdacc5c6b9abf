"""Connection resolution for Malloy files: project config, settings and defaults."""

from __future__ import annotations

from .config import CONFIG_FILE_NAME, merge_with_defaults, parse_config
from .discovery import find_malloy_config
from .errors import (
    ConfigParseError,
    ConnectionFactoryError,
    ConnectionLookupError,
    ConnectionNotFoundError,
    ProjectOnlyViolation,
)
from .factory import ConnectionFactory, LocalConnectionFactory, SupportsConfigDiscovery
from .lookups import (
    ConfigConnectionLookup,
    FailingConnectionLookup,
    LookupConnection,
    MergedConnectionLookup,
    SecretResolver,
    SettingsConnectionLookup,
)
from .manager import ConfigCache, ConfigCacheEntry, ConnectionManager
from .models import (
    ConfigDocument,
    Connection,
    ConnectionConfigEntry,
    ConnectionOptions,
    DiscoveryResult,
    EnvReference,
    SecretReference,
)
from .registry import BackendRegistry, BackendSpec
from .settings import ToolSettings, load_settings, save_settings

__version__ = "0.1.0"

__all__ = [
    "BackendRegistry",
    "BackendSpec",
    "CONFIG_FILE_NAME",
    "ConfigCache",
    "ConfigCacheEntry",
    "ConfigConnectionLookup",
    "ConfigDocument",
    "ConfigParseError",
    "Connection",
    "ConnectionConfigEntry",
    "ConnectionFactory",
    "ConnectionFactoryError",
    "ConnectionLookupError",
    "ConnectionManager",
    "ConnectionNotFoundError",
    "ConnectionOptions",
    "DiscoveryResult",
    "EnvReference",
    "FailingConnectionLookup",
    "LocalConnectionFactory",
    "LookupConnection",
    "MergedConnectionLookup",
    "ProjectOnlyViolation",
    "SecretReference",
    "SecretResolver",
    "SettingsConnectionLookup",
    "SupportsConfigDiscovery",
    "ToolSettings",
    "__version__",
    "find_malloy_config",
    "load_settings",
    "merge_with_defaults",
    "parse_config",
]
