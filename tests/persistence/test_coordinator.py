"""Tests for the repository coordinator.

The coordinator runs against real per-project SQLite files under a
temporary base path; the registry and directory manager are the in-memory
doubles from conftest.py.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any
from unittest.mock import patch

import pytest
from sqlalchemy import text
from structlog.testing import capture_logs

from vibedash.core.errors import (
    ConfigError,
    ErrorCode,
    OperationCancelledError,
    PathNotAccessibleError,
    ProjectNotFoundError,
    StorageError,
)
from vibedash.persistence.coordinator import RepositoryCoordinator
from vibedash.persistence.sqlite.repository import SQLiteProjectRepository
from vibedash.projects.models import Project, ProjectState


def _seed(harness: Any, dir_name: str, project: Project) -> None:
    """Register a directory and store one project directly in its database."""
    project_dir = harness.add_project_dir(dir_name, project.path)
    SQLiteProjectRepository(project_dir).save(project)


class TestHandleCache:
    """Lazy, double-checked repository construction."""

    def test_nothing_opened_at_construction(self, harness: Any) -> None:
        assert harness.coordinator.cached_directories() == frozenset()

    def test_same_instance_returned(self, harness: Any) -> None:
        harness.add_project_dir("api", "/work/api")

        first = harness.coordinator._get_repo("api")
        second = harness.coordinator._get_repo("api")

        assert first is second

    def test_parallel_callers_construct_exactly_once(self, harness: Any) -> None:
        # Given
        harness.add_project_dir("api", "/work/api")
        barrier = threading.Barrier(16)
        constructed: list[SQLiteProjectRepository] = []
        real_init = SQLiteProjectRepository.__init__

        def counting_init(self: SQLiteProjectRepository, *args: Any, **kwargs: Any) -> None:
            real_init(self, *args, **kwargs)
            constructed.append(self)

        def call() -> SQLiteProjectRepository:
            barrier.wait(timeout=5)
            return harness.coordinator._get_repo("api")

        # When
        with (
            patch.object(SQLiteProjectRepository, "__init__", counting_init),
            ThreadPoolExecutor(max_workers=16) as pool,
        ):
            results = list(pool.map(lambda _: call(), range(16)))

        # Then
        assert len(constructed) == 1
        assert all(r is constructed[0] for r in results)

    def test_failed_open_is_not_cached(self, harness: Any) -> None:
        """A directory that appears later is picked up on the next call."""
        harness.loader.register("late", "/work/late")

        with pytest.raises(PathNotAccessibleError):
            harness.coordinator._get_repo("late")
        assert "late" not in harness.coordinator.cached_directories()

        (harness.base_path / "late").mkdir()
        assert harness.coordinator._get_repo("late") is not None


class TestAggregates:
    def test_empty_registry_returns_empty_lists(self, harness: Any) -> None:
        coordinator: RepositoryCoordinator = harness.coordinator
        assert coordinator.find_all() == []
        assert coordinator.find_active() == []
        assert coordinator.find_hibernated() == []

    def test_results_follow_registry_order(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        _seed(harness, "zz", project_factory("/w/zz"))
        _seed(harness, "aa", project_factory("/w/aa", state=ProjectState.HIBERNATED))

        assert [p.name for p in harness.coordinator.find_all()] == ["zz", "aa"]
        assert [p.name for p in harness.coordinator.find_active()] == ["zz"]
        assert [p.name for p in harness.coordinator.find_hibernated()] == ["aa"]

    def test_broken_project_is_skipped_with_warning(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        # Given
        _seed(harness, "good", project_factory("/w/good"))
        broken_dir = harness.add_project_dir("broken", "/w/broken")
        (broken_dir / "state.db").write_bytes(b"not a database" * 100)

        # When
        with capture_logs() as logs:
            projects = harness.coordinator.find_all()

        # Then
        assert [p.name for p in projects] == ["good"]
        warnings = [e for e in logs if e["log_level"] == "warning"]
        assert warnings[0]["event"] == "project_repo_skipped"
        assert warnings[0]["directory"] == "broken"
        assert "corrupted" in warnings[0]["error"].lower()

    def test_undecodable_row_skips_only_its_project(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        """A row with an impossible UTC offset hides one project, not all."""
        # Given
        _seed(harness, "good", project_factory("/p/good"))
        bad = project_factory("/p/bad")
        bad_dir = harness.add_project_dir("bad", "/p/bad")
        bad_repo = SQLiteProjectRepository(bad_dir)
        bad_repo.save(bad)
        with bad_repo.engine.begin() as conn:
            conn.execute(
                text("UPDATE projects SET created_at = :ts"),
                {"ts": "2024-01-01T00:00:00+24:00"},
            )
        harness.coordinator.close()

        # When
        with capture_logs() as logs:
            projects = harness.coordinator.find_all()
            active = harness.coordinator.find_active()

        # Then
        assert [p.path for p in projects] == ["/p/good"]
        assert [p.path for p in active] == ["/p/good"]
        failures = [e for e in logs if e["event"] == "project_repo_read_failed"]
        assert {e["directory"] for e in failures} == {"bad"}
        with pytest.raises(ProjectNotFoundError):
            harness.coordinator.find_by_id(bad.id)

    def test_registry_failure_is_fatal(self, harness: Any) -> None:
        harness.loader.load_error = ConfigError.parse_error("/cfg", "bad")

        with pytest.raises(ConfigError):
            harness.coordinator.find_all()

    def test_find_all_warms_id_index(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        project = project_factory("/w/api")
        _seed(harness, "api", project)

        harness.coordinator.find_all()

        assert harness.coordinator._id_to_dir == {project.id: "api"}


class TestRoutedLookups:
    def test_find_by_id_scans_all(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        first = project_factory("/w/one")
        second = project_factory("/w/two")
        _seed(harness, "one", first)
        _seed(harness, "two", second)

        assert harness.coordinator.find_by_id(second.id).path == "/w/two"
        with pytest.raises(ProjectNotFoundError):
            harness.coordinator.find_by_id("missing")

    def test_find_by_path_uses_registry(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        project = project_factory("/w/api")
        _seed(harness, "api", project)
        _seed(harness, "other", project_factory("/w/other"))

        found = harness.coordinator.find_by_path("/w/api")

        assert found.id == project.id
        assert harness.coordinator.cached_directories() == frozenset({"api"})

    def test_find_by_path_falls_back_to_scan(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        """A path stored under a different registry entry is still found."""
        # Given: the row lives in "api" but the registry names another path there
        project = project_factory("/w/renamed")
        project_dir = harness.add_project_dir("api", "/w/api")
        SQLiteProjectRepository(project_dir).save(project)

        # Then
        assert harness.coordinator.find_by_path("/w/renamed").id == project.id
        with pytest.raises(ProjectNotFoundError):
            harness.coordinator.find_by_path("/w/nowhere")


class TestSave:
    def test_new_project_allocates_directory_and_registers(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        # Given
        project = project_factory("/w/brand-new")
        project.display_name = "Brand New"

        # When
        harness.coordinator.save(project)

        # Then
        assert harness.directories.ensure_calls == ["/w/brand-new"]
        assert harness.loader.save_calls == 1
        entry = harness.loader.config.projects["brand-new"]
        assert entry.path == "/w/brand-new"
        assert entry.display_name == "Brand New"
        assert (harness.base_path / "brand-new" / "config.yaml").exists()
        assert harness.coordinator.find_by_id(project.id).path == "/w/brand-new"

    def test_known_project_skips_allocation(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        harness.add_project_dir("api", "/w/api")
        project = project_factory("/w/api")

        harness.coordinator.save(project)
        project.notes = "again"
        harness.coordinator.save(project)

        assert harness.directories.ensure_calls == []
        assert harness.loader.save_calls == 0
        assert harness.coordinator.find_by_id(project.id).notes == "again"

    def test_registry_save_failure_is_fatal(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        harness.loader.save_error = ConfigError.write_error("/cfg", "read-only")

        with pytest.raises(ConfigError):
            harness.coordinator.save(project_factory("/w/new"))

        assert not (harness.base_path / "new" / "state.db").exists()

    def test_sidecar_failure_is_not_fatal(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        project = project_factory("/w/new")

        with (
            patch(
                "vibedash.persistence.coordinator.YamlProjectConfigLoader.load",
                side_effect=ConfigError.write_error("/x", "nope"),
            ),
            capture_logs() as logs,
        ):
            harness.coordinator.save(project)

        assert harness.coordinator.find_by_id(project.id).id == project.id
        assert any(e["event"] == "project_config_create_failed" for e in logs)

    def test_existing_unreadable_sidecar_does_not_block_save(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        """A directory left behind by an earlier delete may hold a broken sidecar."""
        # Given
        leftover = harness.base_path / "brand-new"
        leftover.mkdir()
        (leftover / "config.yaml").write_bytes(b"\xff\xfe")
        project = project_factory("/integration/brand-new")

        # When
        harness.coordinator.save(project)

        # Then
        assert harness.loader.config.projects["brand-new"].path == "/integration/brand-new"
        assert harness.coordinator.find_by_id(project.id).id == project.id


class TestDelete:
    def test_delete_removes_row_entry_and_handle(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        # Given
        project = project_factory("/w/api")
        _seed(harness, "api", project)
        harness.coordinator.find_all()

        # When
        harness.coordinator.delete(project.id)

        # Then
        assert "api" not in harness.loader.config.projects
        assert "api" not in harness.coordinator.cached_directories()
        assert project.id not in harness.coordinator._id_to_dir
        with pytest.raises(ProjectNotFoundError):
            harness.coordinator.find_by_id(project.id)

    def test_delete_unknown_id(self, harness: Any) -> None:
        with pytest.raises(ProjectNotFoundError):
            harness.coordinator.delete("missing")

    def test_registry_save_failure_after_delete_is_logged(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        project = project_factory("/w/api")
        _seed(harness, "api", project)
        harness.loader.save_error = ConfigError.write_error("/cfg", "read-only")

        with capture_logs() as logs:
            harness.coordinator.delete(project.id)

        assert any(e["event"] == "registry_save_after_delete_failed" for e in logs)
        repo = SQLiteProjectRepository(harness.base_path / "api")
        assert repo.find_all() == []

    def test_registry_mismatch_reported(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        """The row exists but the registry entry points at another path."""
        project = project_factory("/w/renamed")
        project_dir = harness.add_project_dir("api", "/w/api")
        SQLiteProjectRepository(project_dir).save(project)

        with pytest.raises(StorageError) as exc_info:
            harness.coordinator.delete(project.id)
        assert exc_info.value.code == ErrorCode.REGISTRY_MISMATCH


class TestStateAndActivity:
    def test_update_state(self, harness: Any, project_factory: Callable[..., Project]) -> None:
        project = project_factory("/w/api")
        _seed(harness, "api", project)

        harness.coordinator.update_state(project.id, ProjectState.HIBERNATED)

        assert [p.id for p in harness.coordinator.find_hibernated()] == [project.id]

    def test_update_last_activity_caches_directory(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        # Given
        project = project_factory("/w/api")
        _seed(harness, "api", project)
        when = datetime(2031, 1, 1, tzinfo=timezone.utc)

        # When
        harness.coordinator.update_last_activity(project.id, when)
        loads_after_first = harness.loader.load_calls
        harness.coordinator.update_last_activity(project.id, when)

        # Then: the second call is served from the index without touching the registry
        assert harness.coordinator._id_to_dir[project.id] == "api"
        assert harness.loader.load_calls == loads_after_first
        assert harness.coordinator.find_by_id(project.id).last_activity_at == when

    def test_stale_index_entry_falls_back(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        project = project_factory("/w/api")
        _seed(harness, "api", project)
        harness.add_project_dir("decoy", "/w/decoy")
        harness.coordinator._id_to_dir[project.id] = "decoy"

        harness.coordinator.update_last_activity(project.id, datetime.now(timezone.utc))

        assert harness.coordinator._id_to_dir[project.id] == "api"

    def test_unknown_id_raises_not_found(self, harness: Any) -> None:
        with pytest.raises(ProjectNotFoundError):
            harness.coordinator.update_last_activity("missing", datetime.now(timezone.utc))


class TestClose:
    def test_close_resets_and_stays_usable(
        self, harness: Any, project_factory: Callable[..., Project]
    ) -> None:
        project = project_factory("/w/api")
        _seed(harness, "api", project)
        harness.coordinator.find_all()

        harness.coordinator.close()
        harness.coordinator.close()

        assert harness.coordinator.cached_directories() == frozenset()
        assert harness.coordinator._id_to_dir == {}
        assert [p.id for p in harness.coordinator.find_all()] == [project.id]

