"""Locate the project-level connection configuration for a file."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Sequence
from urllib.parse import urlparse
from urllib.request import url2pathname

from .config import CONFIG_FILE_NAME
from .models import DiscoveryResult

LOG = logging.getLogger(__name__)


def find_malloy_config(
    file_url: str,
    workspace_roots: Sequence[str],
    global_config_directory: str | None = None,
) -> DiscoveryResult | None:
    """Return the configuration that applies to ``file_url``, if any.

    Only the owning workspace root (or the file's own directory when no root
    owns it) is checked, followed by the optional global directory.
    Intermediate directories between the root and the file are never
    searched. Read failures of any kind are reported as ``None``.
    """

    file_path = file_url_to_path(file_url)
    if file_path is None:
        return None
    root = owning_root(file_path.parent, workspace_roots)
    result = _read_config(root)
    if result is None and global_config_directory:
        result = _read_config(Path(global_config_directory))
    if result is not None:
        LOG.debug("Found project config", extra={"config_dir": result.config_dir})
    return result


def file_url_to_path(file_url: str) -> Path | None:
    """Convert a ``file:`` URL to an absolute path, or ``None`` if it is not one."""

    try:
        parsed = urlparse(file_url)
    except ValueError:
        return None
    if parsed.scheme != "file" or parsed.netloc not in ("", "localhost"):
        return None
    path = Path(url2pathname(parsed.path))
    if not path.is_absolute():
        return None
    # Collapse ".." so it cannot step outside a workspace root.
    return Path(os.path.normpath(path))


def owning_root(directory: Path, workspace_roots: Sequence[str]) -> Path:
    """Return the first workspace root containing ``directory``, else ``directory``."""

    for root in workspace_roots:
        if not root:
            continue
        candidate = Path(os.path.normpath(root))
        # Component-wise: /proj does not own /project.
        if directory.is_relative_to(candidate):
            return candidate
    return directory


def _read_config(directory: Path) -> DiscoveryResult | None:
    try:
        # expanduser raises RuntimeError for an unknown user or home.
        directory = directory.expanduser()
        text = (directory / CONFIG_FILE_NAME).read_text(encoding="utf-8")
    except (OSError, RuntimeError, ValueError):
        return None
    return DiscoveryResult(config_text=text, config_dir=str(directory))


__all__ = ["file_url_to_path", "find_malloy_config", "owning_root"]
