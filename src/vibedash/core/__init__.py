"""Core module exports."""

from vibedash.core.cancellation import check_cancelled, is_cancelled
from vibedash.core.errors import (
    ConfigError,
    DatabaseCorruptedError,
    DirectoryCollisionError,
    ErrorCode,
    MigrationError,
    OperationCancelledError,
    PathNotAccessibleError,
    ProjectNotFoundError,
    ProjectValidationError,
    StorageError,
    VibeDashError,
)
from vibedash.core.locks import RWLock
from vibedash.core.logging import (
    configure_logging,
    get_operation,
    operation_scope,
)

__all__ = [
    # Errors
    "ConfigError",
    "DatabaseCorruptedError",
    "DirectoryCollisionError",
    "ErrorCode",
    "MigrationError",
    "OperationCancelledError",
    "PathNotAccessibleError",
    "ProjectNotFoundError",
    "ProjectValidationError",
    "StorageError",
    "VibeDashError",
    # Logging
    "configure_logging",
    "get_operation",
    "operation_scope",
    # Concurrency
    "RWLock",
    "check_cancelled",
    "is_cancelled",
]
