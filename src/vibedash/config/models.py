"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (VIBEDASH__SECTION__KEY)
3. Global YAML (~/.config/vibe-dash/settings.yaml)
4. Built-in defaults (this file)

Environment Variable Format:
    VIBEDASH__<SECTION>__<KEY>=<VALUE>

Examples:
    VIBEDASH__LOGGING__LEVEL=DEBUG
    VIBEDASH__STORAGE__BASE_PATH=/srv/vibe-dash
    VIBEDASH__DATABASE__BUSY_TIMEOUT_MS=10000

The project registry (tracked projects and their display metadata) is a
separate file; see registry.py.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from vibedash.config.constants import DEFAULT_BASE_DIR_NAME, REGISTRY_FILE_NAME

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        VIBEDASH__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG is verbose.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class StorageConfig(BaseModel):
    """On-disk layout configuration.

    Env vars:
        VIBEDASH__STORAGE__BASE_PATH: Directory holding per-project directories
        VIBEDASH__STORAGE__REGISTRY_FILE: Registry file name inside base_path
    """

    base_path: str | None = Field(
        default=None,
        description=f"Directory holding one sub-directory per tracked project. "
        f"Default: ~/{DEFAULT_BASE_DIR_NAME}",
    )
    registry_file: str = Field(
        default=REGISTRY_FILE_NAME,
        description="Registry file name, relative to base_path.",
    )

    def resolved_base_path(self) -> Path:
        if self.base_path:
            return Path(self.base_path).expanduser()
        return Path.home() / DEFAULT_BASE_DIR_NAME

    def resolved_registry_path(self) -> Path:
        return self.resolved_base_path() / self.registry_file


class DatabaseConfig(BaseModel):
    """Per-project database connection configuration.

    Env vars:
        VIBEDASH__DATABASE__BUSY_TIMEOUT_MS: SQLite busy timeout
        VIBEDASH__DATABASE__JOURNAL_MODE: SQLite journal mode
    """

    busy_timeout_ms: int = Field(
        default=5000,
        description="SQLite busy timeout (ms). How long a writer waits for the file lock. "
        "RISK: Too low causes failures under contention; too high delays errors.",
    )
    journal_mode: Literal["WAL", "DELETE", "TRUNCATE"] = Field(
        default="WAL",
        description="SQLite journal mode. WAL lets readers proceed while a writer commits.",
    )

    @field_validator("busy_timeout_ms")
    @classmethod
    def validate_busy_timeout(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"busy_timeout_ms must be >= 0, got {v}")
        return v


class VibeDashConfig(BaseModel):
    """Root runtime configuration.

    All settings can be configured via:
    1. Environment variables: VIBEDASH__SECTION__KEY
    2. Global YAML config file
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
