"""Project registry: canonical project path <-> project directory name.

The registry is the authoritative list of tracked projects. Each entry is
keyed by the opaque directory name under the base path and carries the
canonical project path plus a small bundle of display metadata.

Stored in <base_path>/config.yaml:

    settings:
      hibernation_days: 14
      ...
    projects:
      <dir_name>:
        path: /abs/project/path
        display_name: optional
        favorite: true
"""

from __future__ import annotations

import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError

from vibedash.config.constants import (
    DEFAULT_AGENT_WAITING_THRESHOLD_MINUTES,
    DEFAULT_HIBERNATION_DAYS,
    DEFAULT_REFRESH_DEBOUNCE_MS,
    DEFAULT_REFRESH_INTERVAL_SECONDS,
)
from vibedash.core.cancellation import check_cancelled
from vibedash.core.errors import ConfigError

logger = structlog.get_logger()


class ProjectEntry(BaseModel):
    """Registry entry for one tracked project."""

    path: str
    display_name: str = ""
    is_favorite: bool = False
    hibernation_days: int | None = None
    agent_waiting_threshold_minutes: int | None = None


class RegistryConfig(BaseModel):
    """In-memory registry: global settings plus the tracked project entries."""

    hibernation_days: int = DEFAULT_HIBERNATION_DAYS
    refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL_SECONDS
    refresh_debounce_ms: int = DEFAULT_REFRESH_DEBOUNCE_MS
    agent_waiting_threshold_minutes: int = DEFAULT_AGENT_WAITING_THRESHOLD_MINUTES
    projects: dict[str, ProjectEntry] = Field(default_factory=dict)

    def get_directory_name(self, path: str) -> str | None:
        """Directory name registered for a canonical project path, if any."""
        for dir_name, entry in self.projects.items():
            if entry.path == path:
                return dir_name
        return None

    def get_dir_for_path(self, canonical_path: str) -> str:
        """Path lookup used by the directory manager ("" when unknown)."""
        return self.get_directory_name(canonical_path) or ""

    def set_project_entry(
        self, dir_name: str, path: str, display_name: str, is_favorite: bool
    ) -> None:
        """Add or update an entry, keeping any per-project overrides."""
        existing = self.projects.get(dir_name)
        if existing is None:
            self.projects[dir_name] = ProjectEntry(
                path=path, display_name=display_name, is_favorite=is_favorite
            )
            return
        existing.path = path
        existing.display_name = display_name
        existing.is_favorite = is_favorite

    def remove_project(self, dir_name: str) -> None:
        self.projects.pop(dir_name, None)

    def get_effective_hibernation_days(self, dir_name: str) -> int:
        entry = self.projects.get(dir_name)
        if entry is not None and entry.hibernation_days is not None:
            return entry.hibernation_days
        return self.hibernation_days

    def get_effective_waiting_threshold(self, dir_name: str) -> int:
        entry = self.projects.get(dir_name)
        if entry is not None and entry.agent_waiting_threshold_minutes is not None:
            return entry.agent_waiting_threshold_minutes
        return self.agent_waiting_threshold_minutes

    def validation_problems(self) -> list[str]:
        """Human-readable list of out-of-range values (empty when valid)."""
        problems: list[str] = []
        if self.hibernation_days < 0:
            problems.append(f"hibernation_days must be >= 0, got {self.hibernation_days}")
        if self.refresh_interval_seconds <= 0:
            problems.append(
                f"refresh_interval_seconds must be > 0, got {self.refresh_interval_seconds}"
            )
        if self.refresh_debounce_ms <= 0:
            problems.append(f"refresh_debounce_ms must be > 0, got {self.refresh_debounce_ms}")
        if self.agent_waiting_threshold_minutes < 0:
            problems.append(
                "agent_waiting_threshold_minutes must be >= 0, "
                f"got {self.agent_waiting_threshold_minutes}"
            )
        for dir_name, entry in self.projects.items():
            if entry.hibernation_days is not None and entry.hibernation_days < 0:
                problems.append(
                    f"project {dir_name} hibernation_days must be >= 0, "
                    f"got {entry.hibernation_days}"
                )
            if (
                entry.agent_waiting_threshold_minutes is not None
                and entry.agent_waiting_threshold_minutes < 0
            ):
                problems.append(
                    f"project {dir_name} agent_waiting_threshold_minutes must be >= 0, "
                    f"got {entry.agent_waiting_threshold_minutes}"
                )
        return problems


class ConfigLoader(Protocol):
    """Read/write access to the project registry."""

    def load(self, *, cancel: threading.Event | None = None) -> RegistryConfig:
        """Load the registry."""
        ...

    def save(self, config: RegistryConfig, *, cancel: threading.Event | None = None) -> None:
        """Persist the registry."""
        ...


_SETTINGS_KEYS = (
    "hibernation_days",
    "refresh_interval_seconds",
    "refresh_debounce_ms",
    "agent_waiting_threshold_minutes",
)

DEFAULT_REGISTRY_TEMPLATE = """\
# Vibe Dashboard Configuration
# Auto-generated on first run

settings:
  hibernation_days: {hibernation_days}
  refresh_interval_seconds: {refresh_interval_seconds}
  refresh_debounce_ms: {refresh_debounce_ms}
  agent_waiting_threshold_minutes: {agent_waiting_threshold_minutes}

projects: {{}}
"""


class YamlRegistryLoader:
    """ConfigLoader backed by a YAML file.

    Load is forgiving: a missing file is created with defaults, a syntax
    error or an unwritable directory falls back to defaults, and out-of-range
    values are replaced with defaults. Save is strict.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._lock = threading.Lock()

    def load(self, *, cancel: threading.Event | None = None) -> RegistryConfig:
        check_cancelled(cancel, "load registry")

        with self._lock:
            try:
                self.config_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning("registry_dir_unavailable", path=str(self.config_path), error=str(e))
                return RegistryConfig()

            if not self.config_path.exists():
                try:
                    self._write_default()
                except OSError as e:
                    logger.warning(
                        "registry_default_write_failed", path=str(self.config_path), error=str(e)
                    )
                    return RegistryConfig()

            try:
                with self.config_path.open() as f:
                    raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                logger.warning("registry_syntax_error", path=str(self.config_path), error=str(e))
                return RegistryConfig()

        if not isinstance(raw, dict):
            logger.warning("registry_not_a_mapping", path=str(self.config_path))
            return RegistryConfig()

        config = _map_raw_to_config(raw)
        problems = config.validation_problems()
        if problems:
            logger.warning("registry_invalid_values", path=str(self.config_path), problems=problems)
            config = fix_invalid_values(config)
        return config

    def save(self, config: RegistryConfig, *, cancel: threading.Event | None = None) -> None:
        check_cancelled(cancel, "save registry")

        data = _config_to_raw(config)
        content = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
        with self._lock:
            try:
                self.config_path.parent.mkdir(parents=True, exist_ok=True)
                _atomic_write(self.config_path, content)
            except OSError as e:
                raise ConfigError.write_error(str(self.config_path), str(e)) from e

    def _write_default(self) -> None:
        defaults = RegistryConfig()
        content = DEFAULT_REGISTRY_TEMPLATE.format(
            **{key: getattr(defaults, key) for key in _SETTINGS_KEYS}
        )
        self.config_path.write_text(content)


def fix_invalid_values(config: RegistryConfig) -> RegistryConfig:
    """Replace out-of-range settings with defaults and drop invalid overrides."""
    defaults = RegistryConfig()
    fixed = config.model_copy(deep=True)

    if fixed.hibernation_days < 0:
        fixed.hibernation_days = defaults.hibernation_days
    if fixed.refresh_interval_seconds <= 0:
        fixed.refresh_interval_seconds = defaults.refresh_interval_seconds
    if fixed.refresh_debounce_ms <= 0:
        fixed.refresh_debounce_ms = defaults.refresh_debounce_ms
    if fixed.agent_waiting_threshold_minutes < 0:
        fixed.agent_waiting_threshold_minutes = defaults.agent_waiting_threshold_minutes

    for entry in fixed.projects.values():
        if entry.hibernation_days is not None and entry.hibernation_days < 0:
            entry.hibernation_days = None
        if (
            entry.agent_waiting_threshold_minutes is not None
            and entry.agent_waiting_threshold_minutes < 0
        ):
            entry.agent_waiting_threshold_minutes = None
    return fixed


def _map_raw_to_config(raw: dict[str, Any]) -> RegistryConfig:
    config = RegistryConfig()

    settings = raw.get("settings") or {}
    if isinstance(settings, dict):
        for key in _SETTINGS_KEYS:
            value = settings.get(key)
            if isinstance(value, int) and not isinstance(value, bool):
                setattr(config, key, value)

    projects = raw.get("projects") or {}
    if not isinstance(projects, dict):
        return config

    for dir_name, data in projects.items():
        if not isinstance(data, dict):
            continue
        try:
            entry = ProjectEntry(
                path=str(data.get("path", "")),
                display_name=data.get("display_name") or "",
                is_favorite=bool(data.get("favorite", False)),
                hibernation_days=data.get("hibernation_days"),
                agent_waiting_threshold_minutes=data.get("agent_waiting_threshold_minutes"),
            )
        except ValidationError as e:
            logger.warning("registry_entry_skipped", directory=str(dir_name), error=str(e))
            continue
        config.projects[str(dir_name)] = entry
    return config


def _config_to_raw(config: RegistryConfig) -> dict[str, Any]:
    projects: dict[str, Any] = {}
    for dir_name, entry in config.projects.items():
        data: dict[str, Any] = {"path": entry.path}
        if entry.display_name:
            data["display_name"] = entry.display_name
        if entry.is_favorite:
            data["favorite"] = True
        if entry.hibernation_days is not None:
            data["hibernation_days"] = entry.hibernation_days
        if entry.agent_waiting_threshold_minutes is not None:
            data["agent_waiting_threshold_minutes"] = entry.agent_waiting_threshold_minutes
        projects[dir_name] = data

    return {
        "settings": {key: getattr(config, key) for key in _SETTINGS_KEYS},
        "projects": projects,
    }


def _atomic_write(path: Path, content: str) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
