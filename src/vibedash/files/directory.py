"""Project directory allocation under the base path.

Each tracked project gets one directory under the base path, named after
the project's directory name. On a collision with a different project the
parent segments are prepended one at a time:

    ~/.vibe-dash/api-service/
    ~/.vibe-dash/client-b-api-service/
    ~/.vibe-dash/work-client-b-api-service/

up to MAX_COLLISION_DEPTH levels. A ``.project-path`` marker inside each
directory records the canonical path it belongs to, which keeps naming
deterministic across runs.
"""

from __future__ import annotations

import re
import shutil
import threading
from pathlib import Path
from typing import Protocol

import structlog

from vibedash.config.constants import MAX_COLLISION_DEPTH, PROJECT_MARKER_FILE_NAME
from vibedash.core.cancellation import check_cancelled
from vibedash.core.errors import DirectoryCollisionError, PathNotAccessibleError
from vibedash.files.paths import canonical_path

logger = structlog.get_logger()

_INVALID_CHARS = re.compile(r"[^a-z0-9-]+")
_MULTI_HYPHEN = re.compile(r"-{2,}")


class ProjectPathLookup(Protocol):
    """Existing canonical path -> directory name mappings."""

    def get_dir_for_path(self, canonical_path: str) -> str:
        """Registered directory name, or "" when the path is unknown."""
        ...


class DirectoryManager(Protocol):
    """Creates and removes per-project directories."""

    def get_project_dir_name(
        self, project_path: str, *, cancel: threading.Event | None = None
    ) -> str:
        """Deterministic directory name for a project path."""
        ...

    def ensure_project_dir(
        self, project_path: str, *, cancel: threading.Event | None = None
    ) -> Path:
        """Create the project's directory if needed and return its full path."""
        ...

    def delete_project_dir(
        self, project_path: str, *, cancel: threading.Event | None = None
    ) -> None:
        """Remove the project's directory tree. Missing is not an error."""
        ...


def path_segments(path: str) -> list[str]:
    """Path components from the leaf up: /a/b/c -> ["c", "b", "a"]."""
    parts = [part for part in Path(path).parts if part not in ("/", "")]
    if not parts:
        return ["root"]
    return list(reversed(parts))


def normalize_name(name: str) -> str:
    """Lowercase, map anything outside [a-z0-9-] to hyphens, collapse and trim them."""
    name = _INVALID_CHARS.sub("-", name.lower())
    name = _MULTI_HYPHEN.sub("-", name)
    return name.strip("-")


def build_dir_name(segments: list[str], depth: int) -> str:
    depth = min(depth, len(segments) - 1)
    return normalize_name("-".join(reversed(segments[: depth + 1])))


class FilesystemDirectoryManager:
    """DirectoryManager backed by the local filesystem."""

    def __init__(self, base_path: Path, lookup: ProjectPathLookup | None = None) -> None:
        self.base_path = base_path
        self._lookup = lookup

    def get_project_dir_name(
        self, project_path: str, *, cancel: threading.Event | None = None
    ) -> str:
        """Resolve the directory name for a project path.

        Raises:
            PathNotAccessibleError: The path does not exist or cannot be resolved.
            DirectoryCollisionError: Every candidate up to the maximum depth
                belongs to a different project.
        """
        check_cancelled(cancel, "get project dir name")
        canonical = canonical_path(project_path)
        return self._dir_name_for(canonical)

    def ensure_project_dir(
        self, project_path: str, *, cancel: threading.Event | None = None
    ) -> Path:
        check_cancelled(cancel, "ensure project dir")
        canonical = canonical_path(project_path)
        full_path = self.base_path / self._dir_name_for(canonical)

        try:
            full_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PathNotAccessibleError.invalid_path(
                str(full_path), f"failed to create directory: {e}"
            ) from e

        marker = full_path / PROJECT_MARKER_FILE_NAME
        try:
            marker.write_text(canonical)
        except OSError as e:
            raise PathNotAccessibleError.invalid_path(
                str(marker), f"failed to write project marker: {e}"
            ) from e

        logger.debug("project_dir_ensured", path=canonical, directory=full_path.name)
        return full_path

    def delete_project_dir(
        self, project_path: str, *, cancel: threading.Event | None = None
    ) -> None:
        check_cancelled(cancel, "delete project dir")

        # The project itself may be gone already; fall back to the path as given.
        try:
            canonical = canonical_path(project_path)
        except PathNotAccessibleError:
            canonical = project_path

        dir_name = self._find_existing_dir(canonical)
        if dir_name is None:
            return

        target = self.base_path / dir_name
        try:
            shutil.rmtree(target)
        except FileNotFoundError:
            return
        except OSError as e:
            raise PathNotAccessibleError.invalid_path(
                str(target), f"failed to delete directory: {e}"
            ) from e
        logger.info("project_dir_deleted", path=canonical, directory=dir_name)

    # =========================================================================
    # Internals
    # =========================================================================

    def _dir_name_for(self, canonical: str) -> str:
        if self._lookup is not None:
            existing = self._lookup.get_dir_for_path(canonical)
            if existing:
                return existing

        segments = path_segments(canonical)
        for depth in range(min(MAX_COLLISION_DEPTH, len(segments))):
            name = build_dir_name(segments, depth)
            if not name:
                # e.g. a segment made only of non-ASCII characters
                continue
            candidate = self.base_path / name
            if not self._dir_exists(candidate) or self._is_same_project(candidate, canonical):
                return name

        if not any(build_dir_name(segments, d) for d in range(len(segments))):
            raise PathNotAccessibleError.invalid_path(
                canonical, "cannot derive a directory name from path"
            )
        raise DirectoryCollisionError.unresolvable(canonical, MAX_COLLISION_DEPTH)

    def _find_existing_dir(self, canonical: str) -> str | None:
        if self._lookup is not None:
            existing = self._lookup.get_dir_for_path(canonical)
            if existing and (self.base_path / existing).is_dir():
                return existing

        segments = path_segments(canonical)
        for depth in range(min(MAX_COLLISION_DEPTH, len(segments))):
            name = build_dir_name(segments, depth)
            if name and self._is_same_project(self.base_path / name, canonical):
                return name
        return None

    @staticmethod
    def _dir_exists(path: Path) -> bool:
        try:
            return path.is_dir()
        except OSError as e:
            raise PathNotAccessibleError.invalid_path(str(path), f"failed to stat: {e}") from e

    @staticmethod
    def _is_same_project(dir_path: Path, canonical: str) -> bool:
        try:
            return (dir_path / PROJECT_MARKER_FILE_NAME).read_text().strip() == canonical
        except OSError:
            return False
