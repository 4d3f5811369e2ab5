"""Per-project sidecar configuration.

Stored in <project_dir>/config.yaml next to the project's state.db. The
file is written with commented defaults on first load so users can find
and edit the available overrides.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError

from vibedash.config.constants import PROJECT_CONFIG_FILE_NAME
from vibedash.core.cancellation import check_cancelled
from vibedash.core.errors import ConfigError, PathNotAccessibleError

logger = structlog.get_logger()


class ProjectConfigData(BaseModel):
    """Per-project overrides and metadata."""

    detected_method: str = Field(
        default="",
        description="Methodology detected for the project.",
    )
    last_scanned: datetime | None = Field(
        default=None,
        description="When the project directory was last scanned.",
    )
    custom_hibernation_days: int | None = Field(
        default=None,
        description="Overrides the global hibernation threshold.",
    )
    agent_waiting_threshold_minutes: int | None = Field(
        default=None,
        description="Overrides the global agent waiting threshold.",
    )
    notes: str = Field(
        default="",
        description="Free-form project notes.",
    )


DEFAULT_PROJECT_CONFIG = """\
# Project-specific vibe-dash configuration
# Auto-generated - modify as needed

# Methodology detected by vibe-dash
detected_method: ""
last_scanned: ""

# Optional: Override global hibernation threshold
# custom_hibernation_days: 7

# Optional: Override global agent waiting threshold
# agent_waiting_threshold_minutes: 5

# Project notes/memo
notes: ""
"""


class YamlProjectConfigLoader:
    """Load and save the sidecar config of one project directory."""

    def __init__(self, project_dir: Path) -> None:
        if not project_dir.is_dir():
            raise PathNotAccessibleError.missing_directory(project_dir)
        self.project_dir = project_dir
        self.config_path = project_dir / PROJECT_CONFIG_FILE_NAME

    def load(self, *, cancel: threading.Event | None = None) -> ProjectConfigData:
        check_cancelled(cancel, "load project config")

        if not self.config_path.exists():
            try:
                self.config_path.write_text(DEFAULT_PROJECT_CONFIG)
            except OSError as e:
                logger.warning(
                    "project_config_default_write_failed",
                    path=str(self.config_path),
                    error=str(e),
                )
                return ProjectConfigData()

        try:
            text = self.config_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(
                "project_config_unreadable", path=str(self.config_path), error=str(e)
            )
            return ProjectConfigData()

        try:
            raw = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            logger.warning("project_config_syntax_error", path=str(self.config_path), error=str(e))
            return ProjectConfigData()

        if not isinstance(raw, dict):
            logger.warning("project_config_not_a_mapping", path=str(self.config_path))
            return ProjectConfigData()

        return self._map_raw(raw)

    def save(self, data: ProjectConfigData, *, cancel: threading.Event | None = None) -> None:
        check_cancelled(cancel, "save project config")

        raw: dict[str, Any] = {
            "detected_method": data.detected_method,
            "last_scanned": _format_scanned(data.last_scanned),
            "custom_hibernation_days": data.custom_hibernation_days,
            "agent_waiting_threshold_minutes": data.agent_waiting_threshold_minutes,
            "notes": data.notes,
        }
        try:
            self.config_path.write_text(
                yaml.safe_dump(raw, default_flow_style=False, sort_keys=False)
            )
        except OSError as e:
            raise ConfigError.write_error(str(self.config_path), str(e)) from e

    def _map_raw(self, raw: dict[str, Any]) -> ProjectConfigData:
        values: dict[str, Any] = {
            "detected_method": raw.get("detected_method") or "",
            "notes": raw.get("notes") or "",
            "last_scanned": raw.get("last_scanned") or None,
        }
        for key in ("custom_hibernation_days", "agent_waiting_threshold_minutes"):
            value = raw.get(key)
            if value is None:
                continue
            if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
                values[key] = value
            else:
                logger.warning(
                    "project_config_override_dropped",
                    path=str(self.config_path),
                    key=key,
                    invalid_value=value,
                )

        try:
            return ProjectConfigData(**values)
        except ValidationError as e:
            logger.warning("project_config_invalid", path=str(self.config_path), error=str(e))
            return ProjectConfigData()


def _format_scanned(value: datetime | None) -> str:
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
