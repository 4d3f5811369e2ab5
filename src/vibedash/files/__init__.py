"""Filesystem helpers: canonical project paths and per-project directories."""

from vibedash.files.directory import (
    DirectoryManager,
    FilesystemDirectoryManager,
    ProjectPathLookup,
)
from vibedash.files.paths import canonical_path, expand_home, resolve_path

__all__ = [
    "DirectoryManager",
    "FilesystemDirectoryManager",
    "ProjectPathLookup",
    "canonical_path",
    "expand_home",
    "resolve_path",
]
