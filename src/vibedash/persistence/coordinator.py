"""Repository coordinator: one ProjectRepository over many project databases.

Each tracked project has its own ``state.db`` under ``<base_path>/<dir>``.
The coordinator enumerates directories from the registry, opens per-project
repositories lazily, and routes single-project operations to the owning
database.

Thread safety: one readers-writer lock guards the handle cache and the
id -> directory index. The lock is never held across I/O except while a new
repository is constructed, so that each directory is opened at most once.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

import structlog

from vibedash.config.project_config import YamlProjectConfigLoader
from vibedash.config.registry import ConfigLoader, RegistryConfig
from vibedash.core.cancellation import check_cancelled
from vibedash.core.errors import (
    OperationCancelledError,
    ProjectNotFoundError,
    StorageError,
    VibeDashError,
)
from vibedash.core.locks import RWLock
from vibedash.core.logging import operation_scope
from vibedash.files.directory import DirectoryManager
from vibedash.persistence.sqlite.engine import DEFAULT_BUSY_TIMEOUT_MS
from vibedash.persistence.sqlite.repository import SQLiteProjectRepository
from vibedash.projects.models import Project, ProjectState

logger = structlog.get_logger()

T = TypeVar("T")


class RepositoryCoordinator:
    """Aggregates per-project repositories behind the ProjectRepository contract."""

    def __init__(
        self,
        config_loader: ConfigLoader,
        directory_manager: DirectoryManager,
        base_path: Path,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        journal_mode: str = "WAL",
    ) -> None:
        self._config_loader = config_loader
        self._directory_manager = directory_manager
        self.base_path = base_path
        self._busy_timeout_ms = busy_timeout_ms
        self._journal_mode = journal_mode
        self._repo_cache: dict[str, SQLiteProjectRepository] = {}
        self._id_to_dir: dict[str, str] = {}
        self._lock = RWLock()

    # =========================================================================
    # Handle cache
    # =========================================================================

    def _get_repo(
        self, dir_name: str, *, cancel: threading.Event | None = None
    ) -> SQLiteProjectRepository:
        """Cached repository for a directory, opening it on first use.

        A failed open is not cached; the next call retries.
        """
        check_cancelled(cancel, "open project repository")

        with self._lock.read_lock():
            repo = self._repo_cache.get(dir_name)
        if repo is not None:
            return repo

        with self._lock.write_lock():
            repo = self._repo_cache.get(dir_name)
            if repo is not None:
                return repo
            repo = SQLiteProjectRepository(
                self.base_path / dir_name,
                busy_timeout_ms=self._busy_timeout_ms,
                journal_mode=self._journal_mode,
            )
            self._repo_cache[dir_name] = repo
            return repo

    def _invalidate(self, dir_name: str) -> None:
        with self._lock.write_lock():
            self._repo_cache.pop(dir_name, None)

    def _remember(self, project_id: str, dir_name: str) -> None:
        with self._lock.write_lock():
            self._id_to_dir[project_id] = dir_name

    def cached_directories(self) -> frozenset[str]:
        """Directory names with an open repository handle."""
        with self._lock.read_lock():
            return frozenset(self._repo_cache)

    def _load_registry(self, cancel: threading.Event | None) -> RegistryConfig:
        return self._config_loader.load(cancel=cancel)

    def _list_all_repos(
        self, cancel: threading.Event | None
    ) -> list[tuple[str, SQLiteProjectRepository]]:
        """Open every registered project, skipping the ones that fail.

        A registry load failure is fatal. A single unreadable project is
        logged and left out so the others stay visible.
        """
        registry = self._load_registry(cancel)

        repos: list[tuple[str, SQLiteProjectRepository]] = []
        for dir_name in registry.projects:
            check_cancelled(cancel, "list project repositories")
            try:
                repos.append((dir_name, self._get_repo(dir_name, cancel=cancel)))
            except OperationCancelledError:
                raise
            except VibeDashError as e:
                logger.warning("project_repo_skipped", directory=dir_name, error=str(e))
        return repos

    def _collect(
        self,
        fetch: Callable[[SQLiteProjectRepository], list[Project]],
        cancel: threading.Event | None,
        *,
        index_ids: bool = False,
    ) -> list[Project]:
        projects: list[Project] = []
        for dir_name, repo in self._list_all_repos(cancel):
            check_cancelled(cancel, "read project repositories")
            try:
                found = fetch(repo)
            except OperationCancelledError:
                raise
            except VibeDashError as e:
                logger.warning("project_repo_read_failed", directory=dir_name, error=str(e))
                continue
            if index_ids and found:
                with self._lock.write_lock():
                    for project in found:
                        self._id_to_dir[project.id] = dir_name
            projects.extend(found)
        return projects

    # =========================================================================
    # Aggregate reads
    # =========================================================================

    def find_all(self, *, cancel: threading.Event | None = None) -> list[Project]:
        """All projects from every readable database, in registry order.

        Also warms the id -> directory index used by update_last_activity.
        """
        check_cancelled(cancel, "find all projects")
        with operation_scope("find_all"):
            return self._collect(
                lambda repo: repo.find_all(cancel=cancel), cancel, index_ids=True
            )

    def find_active(self, *, cancel: threading.Event | None = None) -> list[Project]:
        check_cancelled(cancel, "find active projects")
        with operation_scope("find_active"):
            return self._collect(lambda repo: repo.find_active(cancel=cancel), cancel)

    def find_hibernated(self, *, cancel: threading.Event | None = None) -> list[Project]:
        check_cancelled(cancel, "find hibernated projects")
        with operation_scope("find_hibernated"):
            return self._collect(lambda repo: repo.find_hibernated(cancel=cancel), cancel)

    # =========================================================================
    # Routed operations
    # =========================================================================

    def find_by_id(self, project_id: str, *, cancel: threading.Event | None = None) -> Project:
        """Scan every database for a project id.

        Raises:
            ProjectNotFoundError: No readable database holds the id.
        """
        check_cancelled(cancel, "find project by id")
        with operation_scope("find_by_id"):
            return self._scan(
                lambda repo: repo.find_by_id(project_id, cancel=cancel),
                cancel,
                ProjectNotFoundError.by_id(project_id),
                id=project_id,
            )

    def find_by_path(self, path: str, *, cancel: threading.Event | None = None) -> Project:
        """Look a project up by canonical path.

        Tries the registered directory first and falls back to scanning all
        databases, which covers paths the registry does not know about.
        """
        check_cancelled(cancel, "find project by path")
        with operation_scope("find_by_path"):
            registry = self._load_registry(cancel)
            dir_name = registry.get_directory_name(path)
            if dir_name is not None:
                try:
                    return self._get_repo(dir_name, cancel=cancel).find_by_path(
                        path, cancel=cancel
                    )
                except ProjectNotFoundError:
                    pass  # registry is stale; scan below
                except OperationCancelledError:
                    raise
                except VibeDashError as e:
                    logger.warning(
                        "find_by_path_fast_path_failed", directory=dir_name, error=str(e)
                    )

            return self._scan(
                lambda repo: repo.find_by_path(path, cancel=cancel),
                cancel,
                ProjectNotFoundError.by_path(path),
                path=path,
            )

    def _scan(
        self,
        lookup: Callable[[SQLiteProjectRepository], T],
        cancel: threading.Event | None,
        not_found: ProjectNotFoundError,
        **context: str,
    ) -> T:
        for dir_name, repo in self._list_all_repos(cancel):
            check_cancelled(cancel, "scan project repositories")
            try:
                return lookup(repo)
            except ProjectNotFoundError:
                continue
            except OperationCancelledError:
                raise
            except VibeDashError as e:
                logger.warning(
                    "project_repo_lookup_failed", directory=dir_name, error=str(e), **context
                )
        raise not_found

    def save(self, project: Project, *, cancel: threading.Event | None = None) -> None:
        """Save a project into the database of its registered directory.

        An unregistered path is a new project: its directory is created, a
        sidecar config is written best effort, and the registry entry is
        persisted before the row is inserted.
        """
        check_cancelled(cancel, "save project")
        with operation_scope("save"):
            registry = self._load_registry(cancel)
            dir_name = registry.get_directory_name(project.path)

            if dir_name is None:
                full_path = self._directory_manager.ensure_project_dir(project.path, cancel=cancel)
                dir_name = full_path.name
                self._write_project_config(full_path, cancel)

                registry.set_project_entry(
                    dir_name, project.path, project.display_name, project.is_favorite
                )
                self._config_loader.save(registry, cancel=cancel)
                logger.info("project_registered", directory=dir_name, path=project.path)

            self._get_repo(dir_name, cancel=cancel).save(project, cancel=cancel)

    def _write_project_config(self, full_path: Path, cancel: threading.Event | None) -> None:
        try:
            YamlProjectConfigLoader(full_path).load(cancel=cancel)
        except OperationCancelledError:
            raise
        except VibeDashError as e:
            logger.warning("project_config_create_failed", path=str(full_path), error=str(e))

    def delete(self, project_id: str, *, cancel: threading.Event | None = None) -> None:
        """Delete a project row and its registry entry.

        A registry save failure after the row is gone is logged, not raised.
        """
        check_cancelled(cancel, "delete project")
        with operation_scope("delete"):
            registry, dir_name = self._resolve_owner(project_id, cancel)
            self._get_repo(dir_name, cancel=cancel).delete(project_id, cancel=cancel)

            registry.remove_project(dir_name)
            try:
                self._config_loader.save(registry, cancel=cancel)
            except OperationCancelledError:
                raise
            except VibeDashError as e:
                logger.warning("registry_save_after_delete_failed", directory=dir_name, error=str(e))

            self._invalidate(dir_name)
            with self._lock.write_lock():
                self._id_to_dir.pop(project_id, None)

    def update_state(
        self,
        project_id: str,
        state: ProjectState,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        check_cancelled(cancel, "update project state")
        with operation_scope("update_state"):
            _, dir_name = self._resolve_owner(project_id, cancel)
            self._get_repo(dir_name, cancel=cancel).update_state(project_id, state, cancel=cancel)

    def update_last_activity(
        self,
        project_id: str,
        timestamp: datetime,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        """Record activity for a project.

        Called on nearly every user interaction, so the id -> directory index
        is tried first; a miss or a stale entry falls back to the full lookup.
        """
        check_cancelled(cancel, "update last activity")
        with operation_scope("update_last_activity"):
            with self._lock.read_lock():
                cached_dir = self._id_to_dir.get(project_id)

            if cached_dir is not None:
                try:
                    self._get_repo(cached_dir, cancel=cancel).update_last_activity(
                        project_id, timestamp, cancel=cancel
                    )
                    return
                except OperationCancelledError:
                    raise
                except VibeDashError as e:
                    logger.debug(
                        "activity_index_stale", id=project_id, directory=cached_dir, error=str(e)
                    )
                    with self._lock.write_lock():
                        self._id_to_dir.pop(project_id, None)

            _, dir_name = self._resolve_owner(project_id, cancel)
            self._remember(project_id, dir_name)
            self._get_repo(dir_name, cancel=cancel).update_last_activity(
                project_id, timestamp, cancel=cancel
            )

    def _resolve_owner(
        self, project_id: str, cancel: threading.Event | None
    ) -> tuple[RegistryConfig, str]:
        """Registry plus the directory that owns a project id.

        Raises:
            ProjectNotFoundError: No database holds the id.
            StorageError: A database holds the id but the registry has no
                entry for its path.
        """
        project = self.find_by_id(project_id, cancel=cancel)
        registry = self._load_registry(cancel)
        dir_name = registry.get_directory_name(project.path)
        if dir_name is None:
            raise StorageError.registry_mismatch(project.path)
        return registry, dir_name

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self, *, cancel: threading.Event | None = None) -> None:
        """Drop cached handles and the id index.

        Repositories hold no open connections, so this is a reset: the
        coordinator stays usable and reopens databases on demand.
        """
        check_cancelled(cancel, "close coordinator")
        with self._lock.write_lock():
            self._repo_cache = {}
            self._id_to_dir = {}
        logger.debug("coordinator_closed")
