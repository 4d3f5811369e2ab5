"""Project persistence: per-project SQLite databases behind one repository,
plus a shared stage transition metrics store.
"""

from __future__ import annotations

from vibedash.config.constants import METRICS_DB_FILE_NAME
from vibedash.config.models import VibeDashConfig
from vibedash.config.registry import YamlRegistryLoader
from vibedash.files.directory import FilesystemDirectoryManager
from vibedash.persistence.base import ProjectRepository
from vibedash.persistence.coordinator import RepositoryCoordinator
from vibedash.persistence.metrics import MetricsRecorder, MetricsRepository
from vibedash.persistence.sqlite import SQLiteProjectRepository


class _RegistryPathLookup:
    """Path lookup that reads the current registry on each call."""

    def __init__(self, loader: YamlRegistryLoader) -> None:
        self._loader = loader

    def get_dir_for_path(self, canonical_path: str) -> str:
        return self._loader.load().get_dir_for_path(canonical_path)


def build_coordinator(config: VibeDashConfig | None = None) -> RepositoryCoordinator:
    """Wire a coordinator from runtime settings.

    Uses the YAML registry under the base path and a filesystem directory
    manager that honors existing registry assignments.
    """
    if config is None:
        from vibedash.config.loader import load_config

        config = load_config()

    base_path = config.storage.resolved_base_path()
    registry_loader = YamlRegistryLoader(config.storage.resolved_registry_path())
    directory_manager = FilesystemDirectoryManager(
        base_path, lookup=_RegistryPathLookup(registry_loader)
    )
    return RepositoryCoordinator(
        registry_loader,
        directory_manager,
        base_path,
        busy_timeout_ms=config.database.busy_timeout_ms,
        journal_mode=config.database.journal_mode,
    )


def build_metrics_repository(config: VibeDashConfig | None = None) -> MetricsRepository:
    """Open the shared metrics store under the base path.

    The database file and its schema are created on first use.
    """
    if config is None:
        from vibedash.config.loader import load_config

        config = load_config()

    return MetricsRepository(
        config.storage.resolved_base_path() / METRICS_DB_FILE_NAME,
        busy_timeout_ms=config.database.busy_timeout_ms,
        journal_mode=config.database.journal_mode,
    )


__all__ = [
    "MetricsRecorder",
    "MetricsRepository",
    "ProjectRepository",
    "RepositoryCoordinator",
    "SQLiteProjectRepository",
    "build_coordinator",
    "build_metrics_repository",
]
