"""Tracked project entity and its enumerations.

A Project is identified by a hash of its canonical absolute path. Enum
parsing is permissive: tokens written by a newer release decode to a
reserved fallback instead of failing, so older binaries can still list
projects.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath

from vibedash.core.errors import PathNotAccessibleError, ProjectValidationError

# ============================================================================
# ENUMS
# ============================================================================


class Stage(str, Enum):
    """Workflow stage detected in a project directory."""

    UNKNOWN = "unknown"
    SPECIFY = "specify"
    PLAN = "plan"
    TASKS = "tasks"
    IMPLEMENT = "implement"

    @classmethod
    def parse(cls, token: str | None) -> Stage:
        """Parse a stored token; unrecognized tokens map to UNKNOWN."""
        normalized = (token or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


class Confidence(str, Enum):
    """Detection confidence level."""

    UNCERTAIN = "uncertain"
    LIKELY = "likely"
    CERTAIN = "certain"
    UNKNOWN = "unknown"  # reserved: token not understood by this release

    @classmethod
    def parse(cls, token: str | None) -> Confidence | None:
        """Parse a stored token. Empty means "not detected" (None)."""
        normalized = (token or "").strip().lower()
        if not normalized:
            return None
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


class ProjectState(str, Enum):
    """Whether a project is shown as active or hibernated."""

    ACTIVE = "active"
    HIBERNATED = "hibernated"

    @classmethod
    def parse(cls, token: str | None) -> ProjectState:
        """Parse a stored token; empty or unrecognized tokens map to ACTIVE."""
        normalized = (token or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            return cls.ACTIVE


# ============================================================================
# ENTITY
# ============================================================================


def generate_id(canonical_path: str) -> str:
    """Stable project id: first 16 hex chars of SHA-256 of the canonical path."""
    return hashlib.sha256(canonical_path.encode("utf-8")).hexdigest()[:16]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Project:
    """A tracked software project."""

    id: str
    name: str
    path: str
    display_name: str = ""
    detected_method: str = ""
    current_stage: Stage = Stage.UNKNOWN
    confidence: Confidence | None = None
    detection_reasoning: str = ""
    is_favorite: bool = False
    state: ProjectState = ProjectState.ACTIVE
    notes: str = ""
    path_missing: bool = False  # path temporarily unreachable (e.g. unmounted volume)
    last_activity_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.state is ProjectState.ACTIVE

    @property
    def is_hibernated(self) -> bool:
        return self.state is ProjectState.HIBERNATED

    @property
    def has_display_name(self) -> bool:
        return bool(self.display_name)

    @property
    def effective_name(self) -> str:
        """Name shown to users: the display name override, else the derived name."""
        return self.display_name or self.name

    def validate(self) -> None:
        """Check pre-write invariants.

        Raises:
            ProjectValidationError: Empty or relative path, empty id, or a
                missing or out-of-range timestamp.
        """
        if not self.path:
            raise ProjectValidationError.invalid_field("path", self.path, "path is empty")
        if not PurePosixPath(self.path).is_absolute():
            raise ProjectValidationError.invalid_field("path", self.path, "path must be absolute")
        if not self.id:
            raise ProjectValidationError.invalid_field("id", self.id, "id is empty")
        for name in ("created_at", "last_activity_at"):
            value = getattr(self, name)
            if value is None:
                raise ProjectValidationError.invalid_field(name, None, "timestamp is required")
            try:
                if value.tzinfo is not None:
                    value.astimezone(timezone.utc)
            except OverflowError as e:
                raise ProjectValidationError.invalid_field(
                    name, value, "timestamp is outside the UTC range"
                ) from e


def new_project(path: str, name: str = "") -> Project:
    """Create a project for a canonical absolute path.

    The name defaults to the last path segment ("root" for "/"). All three
    timestamps are stamped with the same instant.
    """
    if not path:
        raise PathNotAccessibleError.invalid_path(path, "path is empty")
    if not PurePosixPath(path).is_absolute():
        raise PathNotAccessibleError.invalid_path(path, "path must be absolute")

    if not name:
        trimmed = path.rstrip("/")
        name = trimmed.rsplit("/", 1)[-1] if trimmed else "root"

    now = utc_now()
    return Project(
        id=generate_id(path),
        name=name,
        path=path,
        state=ProjectState.ACTIVE,
        last_activity_at=now,
        created_at=now,
        updated_at=now,
    )
