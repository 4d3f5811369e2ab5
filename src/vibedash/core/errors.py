"""vibe-dash error types with typed error codes.

Error code ranges:
- 1xxx: Project
- 2xxx: Config
- 3xxx: Storage
- 9xxx: Internal
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Project (1xxx)
    PROJECT_NOT_FOUND = 1001
    PATH_NOT_ACCESSIBLE = 1002
    PROJECT_VALIDATION_FAILED = 1003
    DIRECTORY_COLLISION = 1004

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_WRITE_ERROR = 2003

    # Storage (3xxx)
    DATABASE_CORRUPTED = 3001
    MIGRATION_FAILED = 3002
    SCHEMA_TOO_NEW = 3003
    ROW_DECODE_FAILED = 3004
    STORAGE_IO_ERROR = 3005
    REGISTRY_MISMATCH = 3006

    # Internal (9xxx)
    OPERATION_CANCELLED = 9001


@dataclass(eq=False)
class VibeDashError(Exception):
    """Base error with structured context for logs and callers."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'PROJECT_NOT_FOUND')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ProjectNotFoundError(VibeDashError):
    """Entity absent in the targeted or searched scope."""

    @classmethod
    def by_id(cls, project_id: str) -> ProjectNotFoundError:
        return cls(
            code=ErrorCode.PROJECT_NOT_FOUND,
            message=f"Project not found: id={project_id}",
            details={"id": project_id},
        )

    @classmethod
    def by_path(cls, path: str) -> ProjectNotFoundError:
        return cls(
            code=ErrorCode.PROJECT_NOT_FOUND,
            message=f"Project not found: path={path}",
            details={"path": path},
        )


class PathNotAccessibleError(VibeDashError):
    """A project directory or project path cannot be used."""

    @classmethod
    def missing_directory(cls, path: Path | str) -> PathNotAccessibleError:
        return cls(
            code=ErrorCode.PATH_NOT_ACCESSIBLE,
            message=f"Project directory does not exist: {path}",
            details={"path": str(path)},
        )

    @classmethod
    def invalid_path(cls, path: str, reason: str) -> PathNotAccessibleError:
        return cls(
            code=ErrorCode.PATH_NOT_ACCESSIBLE,
            message=f"Path not accessible: {path or '<empty>'}: {reason}",
            details={"path": path, "reason": reason},
        )


class ProjectValidationError(PathNotAccessibleError):
    """Entity failed pre-write invariants."""

    @classmethod
    def invalid_field(cls, field_name: str, value: Any, reason: str) -> ProjectValidationError:
        return cls(
            code=ErrorCode.PROJECT_VALIDATION_FAILED,
            message=f"Invalid project field '{field_name}': {reason}",
            details={"field": field_name, "value": str(value), "reason": reason},
        )


class DirectoryCollisionError(VibeDashError):
    """No unique directory name could be derived for a project path."""

    @classmethod
    def unresolvable(cls, path: str, depth: int) -> DirectoryCollisionError:
        return cls(
            code=ErrorCode.DIRECTORY_COLLISION,
            message=f"Directory name for {path} still collides after {depth} levels",
            details={"path": path, "depth": depth},
        )


class ConfigError(VibeDashError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> ConfigError:
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> ConfigError:
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def write_error(cls, path: str, reason: str) -> ConfigError:
        return cls(
            code=ErrorCode.CONFIG_WRITE_ERROR,
            message=f"Failed to write config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class DatabaseCorruptedError(VibeDashError):
    """A per-project database file is unreadable.

    The message tells the operator which file to remove to reset the project.
    """

    @property
    def db_path(self) -> str:
        return str(self.details.get("db_path", ""))

    @classmethod
    def wrap(cls, cause: BaseException, db_path: Path | str) -> DatabaseCorruptedError:
        return cls(
            code=ErrorCode.DATABASE_CORRUPTED,
            message=(
                f"Database file is corrupted: {cause}. "
                f"Recovery: delete {db_path} and re-add the project"
            ),
            details={"db_path": str(db_path), "cause": str(cause)},
        )


class MigrationError(VibeDashError):
    """Failure applying a schema migration."""

    @property
    def version(self) -> int:
        return int(self.details.get("version", 0))

    @property
    def description(self) -> str:
        return str(self.details.get("description", ""))

    @classmethod
    def failed(cls, version: int, description: str, reason: str) -> MigrationError:
        return cls(
            code=ErrorCode.MIGRATION_FAILED,
            message=f"Failed to apply migration v{version} ({description}): {reason}",
            details={"version": version, "description": description, "reason": reason},
        )

    @classmethod
    def schema_too_new(cls, found: int, supported: int) -> MigrationError:
        return cls(
            code=ErrorCode.SCHEMA_TOO_NEW,
            message=(
                f"Database schema version {found} is newer than the highest "
                f"supported version {supported}"
            ),
            details={"version": found, "supported": supported},
        )


class StorageError(VibeDashError):
    """Generic storage failures surfaced with operation context."""

    @classmethod
    def io_error(cls, operation: str, reason: str, **details: Any) -> StorageError:
        return cls(
            code=ErrorCode.STORAGE_IO_ERROR,
            message=f"Failed to {operation}: {reason}",
            retryable=_is_busy(reason),
            details={"operation": operation, **details},
        )

    @classmethod
    def decode_failed(cls, column: str, value: Any, reason: str) -> StorageError:
        return cls(
            code=ErrorCode.ROW_DECODE_FAILED,
            message=f"Invalid {column}: {value!r}: {reason}",
            details={"column": column, "value": str(value), "reason": reason},
        )

    @classmethod
    def registry_mismatch(cls, path: str) -> StorageError:
        return cls(
            code=ErrorCode.REGISTRY_MISMATCH,
            message=f"Project path not in registry: {path}",
            details={"path": path},
        )


class OperationCancelledError(VibeDashError):
    """Cancellation token fired before the operation completed."""

    @classmethod
    def during(cls, operation: str) -> OperationCancelledError:
        return cls(
            code=ErrorCode.OPERATION_CANCELLED,
            message=f"Operation cancelled: {operation}",
            details={"operation": operation},
        )


# =============================================================================
# Corruption detection
# =============================================================================

_CORRUPTION_MARKERS = (
    "malformed",
    "corrupt",
    "disk i/o error",
    "database disk image is malformed",
    "file is not a database",
)

# Primary result codes (low byte of extended codes)
_SQLITE_IOERR = 10
_SQLITE_CORRUPT = 11
_SQLITE_NOTADB = 26
_CORRUPTION_CODES = frozenset({_SQLITE_IOERR, _SQLITE_CORRUPT, _SQLITE_NOTADB})


def _is_busy(reason: str) -> bool:
    lowered = reason.lower()
    return "database is locked" in lowered or "database is busy" in lowered


def _driver_error(exc: BaseException) -> BaseException:
    """Unwrap SQLAlchemy's DBAPIError to the sqlite3 exception, if any."""
    orig = getattr(exc, "orig", None)
    return orig if isinstance(orig, BaseException) else exc


def is_corruption_error(exc: BaseException) -> bool:
    """Check whether an engine error signals a corrupted database file."""
    driver_exc = _driver_error(exc)
    if isinstance(driver_exc, sqlite3.Error):
        errcode = getattr(driver_exc, "sqlite_errorcode", None)
        if errcode is not None and (errcode & 0xFF) in _CORRUPTION_CODES:
            return True
    text = f"{exc} {driver_exc}".lower()
    return any(marker in text for marker in _CORRUPTION_MARKERS)


def wrap_db_error(
    exc: BaseException, db_path: Path | str, operation: str
) -> VibeDashError:
    """Translate an engine error into the error taxonomy.

    Corruption signals become DatabaseCorruptedError; everything else is a
    StorageError naming the failed operation and the database file.
    """
    if isinstance(exc, VibeDashError):
        return exc
    if is_corruption_error(exc):
        return DatabaseCorruptedError.wrap(_driver_error(exc), db_path)
    return StorageError.io_error(operation, str(_driver_error(exc)), db_path=str(db_path))
