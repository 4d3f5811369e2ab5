"""SQLite storage for a single project directory."""

from vibedash.persistence.sqlite.codec import (
    decode_project,
    encode_project,
    format_timestamp,
    parse_timestamp,
)
from vibedash.persistence.sqlite.migrations import (
    LATEST_VERSION,
    MIGRATIONS,
    Migration,
    apply_migrations,
    current_version,
)
from vibedash.persistence.sqlite.repository import SQLiteProjectRepository
from vibedash.persistence.sqlite.schema import ProjectRow

__all__ = [
    "LATEST_VERSION",
    "MIGRATIONS",
    "Migration",
    "ProjectRow",
    "SQLiteProjectRepository",
    "apply_migrations",
    "current_version",
    "decode_project",
    "encode_project",
    "format_timestamp",
    "parse_timestamp",
]
