"""Project path resolution.

Projects are keyed by their canonical path: absolute, with ``~`` expanded
and symlinks resolved, so the same directory reached through different
links maps to one project.
"""

from __future__ import annotations

from pathlib import Path

from vibedash.core.errors import PathNotAccessibleError


def expand_home(path: str) -> str:
    """Expand a leading ``~``. ``~user`` is treated as ``~/user``."""
    if not path.startswith("~"):
        return path
    home = str(Path.home())
    if path == "~":
        return home
    if path.startswith("~/"):
        return str(Path(home) / path[2:])
    return str(Path(home) / path[1:])


def resolve_path(path: str) -> Path:
    """Absolute form of ``path``, which must exist.

    Raises:
        PathNotAccessibleError: Empty path or nothing at that location.
    """
    if not path:
        raise PathNotAccessibleError.invalid_path(path, "empty path")

    absolute = Path(expand_home(path)).absolute()
    try:
        absolute.stat()
    except OSError as e:
        raise PathNotAccessibleError.invalid_path(path, "path does not exist") from e
    return absolute


def canonical_path(path: str) -> str:
    """Canonical project path with symlinks resolved.

    Raises:
        PathNotAccessibleError: The path is empty, missing, or cannot be resolved.
    """
    resolved = resolve_path(path)
    try:
        return str(resolved.resolve(strict=True))
    except (OSError, RuntimeError) as e:
        raise PathNotAccessibleError.invalid_path(path, f"symlink resolution failed: {e}") from e
