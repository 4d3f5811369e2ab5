"""Root conftest.py: shared fixtures and in-memory collaborators.

The coordinator consumes two ports, the registry loader and the directory
manager. The doubles below keep both in memory, record every call, and
accept injected failures so tests can drive each failure path.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import structlog

from vibedash.config.registry import RegistryConfig
from vibedash.core.cancellation import check_cancelled
from vibedash.persistence.coordinator import RepositoryCoordinator
from vibedash.projects.models import Project, ProjectState, generate_id


class InMemoryConfigLoader:
    """ConfigLoader double holding the registry in memory.

    Returns a deep copy on load so callers cannot mutate the stored registry
    without calling save, mirroring a file-backed loader.
    """

    def __init__(self, config: RegistryConfig | None = None) -> None:
        self.config = config or RegistryConfig()
        self.load_calls = 0
        self.save_calls = 0
        self.load_error: Exception | None = None
        self.save_error: Exception | None = None
        self._lock = threading.Lock()

    def load(self, *, cancel: threading.Event | None = None) -> RegistryConfig:
        check_cancelled(cancel, "load registry")
        with self._lock:
            self.load_calls += 1
            if self.load_error is not None:
                raise self.load_error
            return self.config.model_copy(deep=True)

    def save(self, config: RegistryConfig, *, cancel: threading.Event | None = None) -> None:
        check_cancelled(cancel, "save registry")
        with self._lock:
            self.save_calls += 1
            if self.save_error is not None:
                raise self.save_error
            self.config = config.model_copy(deep=True)

    def register(self, dir_name: str, path: str, display_name: str = "") -> None:
        self.config.set_project_entry(dir_name, path, display_name, False)

    @property
    def io_calls(self) -> int:
        return self.load_calls + self.save_calls


class InMemoryDirectoryManager:
    """DirectoryManager double that allocates directories under a base path.

    The directory name is the last path segment of the project path; tests
    choose paths so names do not collide.
    """

    def __init__(self, base_path: Path) -> None:
        self.base_path = base_path
        self.ensure_calls: list[str] = []
        self.deleted: list[str] = []
        self.ensure_error: Exception | None = None

    def get_project_dir_name(
        self, project_path: str, *, cancel: threading.Event | None = None
    ) -> str:
        check_cancelled(cancel, "get project dir name")
        return project_path.rstrip("/").rsplit("/", 1)[-1] or "root"

    def ensure_project_dir(
        self, project_path: str, *, cancel: threading.Event | None = None
    ) -> Path:
        check_cancelled(cancel, "ensure project dir")
        self.ensure_calls.append(project_path)
        if self.ensure_error is not None:
            raise self.ensure_error
        full_path = self.base_path / self.get_project_dir_name(project_path)
        full_path.mkdir(parents=True, exist_ok=True)
        return full_path

    def delete_project_dir(
        self, project_path: str, *, cancel: threading.Event | None = None
    ) -> None:
        check_cancelled(cancel, "delete project dir")
        self.deleted.append(project_path)


@dataclass
class CoordinatorHarness:
    """Coordinator wired to in-memory doubles over a temporary base path."""

    coordinator: RepositoryCoordinator
    loader: InMemoryConfigLoader
    directories: InMemoryDirectoryManager
    base_path: Path
    created: list[str] = field(default_factory=list)

    def add_project_dir(self, dir_name: str, path: str) -> Path:
        """Register a directory and create it on disk (empty, no database yet)."""
        project_dir = self.base_path / dir_name
        project_dir.mkdir(parents=True, exist_ok=True)
        self.loader.register(dir_name, path)
        self.created.append(dir_name)
        return project_dir


def make_project(
    path: str,
    *,
    name: str = "",
    state: ProjectState = ProjectState.ACTIVE,
    created_at: datetime | None = None,
) -> Project:
    """Valid project with fixed, distinct timestamps."""
    created = created_at or datetime(2024, 1, 15, 10, 30, 0, 123456, tzinfo=timezone.utc)
    return Project(
        id=generate_id(path),
        name=name or path.rstrip("/").rsplit("/", 1)[-1],
        path=path,
        state=state,
        last_activity_at=created + timedelta(minutes=5),
        created_at=created,
        updated_at=created,
    )


@pytest.fixture
def base_path(tmp_path: Path) -> Path:
    path = tmp_path / "vibe-dash"
    path.mkdir()
    return path


@pytest.fixture
def config_loader() -> InMemoryConfigLoader:
    return InMemoryConfigLoader()


@pytest.fixture
def directory_manager(base_path: Path) -> InMemoryDirectoryManager:
    return InMemoryDirectoryManager(base_path)


@pytest.fixture
def harness(
    base_path: Path,
    config_loader: InMemoryConfigLoader,
    directory_manager: InMemoryDirectoryManager,
) -> CoordinatorHarness:
    coordinator = RepositoryCoordinator(config_loader, directory_manager, base_path)
    return CoordinatorHarness(coordinator, config_loader, directory_manager, base_path)


@pytest.fixture
def project_factory() -> Callable[..., Project]:
    return make_project


@pytest.fixture
def cancelled() -> threading.Event:
    event = threading.Event()
    event.set()
    return event


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Keep structlog configuration from leaking between tests."""
    yield
    structlog.reset_defaults()
