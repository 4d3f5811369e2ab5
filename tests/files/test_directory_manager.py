"""Tests for per-project directory allocation."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from vibedash.config.registry import RegistryConfig
from vibedash.core.errors import DirectoryCollisionError, OperationCancelledError
from vibedash.files.directory import (
    FilesystemDirectoryManager,
    build_dir_name,
    normalize_name,
    path_segments,
)


@pytest.fixture
def base(tmp_path: Path) -> Path:
    path = tmp_path / "base"
    path.mkdir()
    return path


@pytest.fixture
def projects(tmp_path: Path) -> Path:
    path = tmp_path / "projects"
    path.mkdir()
    return path


def _make(projects: Path, relative: str) -> str:
    target = projects / relative
    target.mkdir(parents=True)
    return str(target.resolve())


class TestNaming:
    """Pure naming helpers."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("API_Service", "api-service"),
            ("my..project!!", "my-project"),
            ("--edge--", "edge"),
            ("ünïcode", "n-code"),
            ("日本", ""),
        ],
    )
    def test_normalize_name(self, raw: str, expected: str) -> None:
        assert normalize_name(raw) == expected

    def test_path_segments_leaf_first(self) -> None:
        assert path_segments("/work/client-b/api") == ["api", "client-b", "work"]
        assert path_segments("/") == ["root"]

    def test_build_dir_name_prepends_parents(self) -> None:
        segments = ["api", "client-b", "work"]

        assert build_dir_name(segments, 0) == "api"
        assert build_dir_name(segments, 1) == "client-b-api"
        assert build_dir_name(segments, 2) == "work-client-b-api"
        assert build_dir_name(segments, 9) == "work-client-b-api"


class TestFilesystemDirectoryManager:
    def test_ensure_creates_dir_and_marker(self, base: Path, projects: Path) -> None:
        # Given
        path = _make(projects, "api-service")
        manager = FilesystemDirectoryManager(base)

        # When
        full_path = manager.ensure_project_dir(path)

        # Then
        assert full_path == base / "api-service"
        assert (full_path / ".project-path").read_text() == path

    def test_ensure_is_idempotent(self, base: Path, projects: Path) -> None:
        path = _make(projects, "api-service")
        manager = FilesystemDirectoryManager(base)

        first = manager.ensure_project_dir(path)
        second = manager.ensure_project_dir(path)

        assert first == second

    def test_collision_prepends_parent(self, base: Path, projects: Path) -> None:
        """Two projects with the same basename get distinct directories."""
        # Given
        first = _make(projects, "client-a/api-service")
        second = _make(projects, "client-b/api-service")
        manager = FilesystemDirectoryManager(base)

        # When
        dir_a = manager.ensure_project_dir(first)
        dir_b = manager.ensure_project_dir(second)

        # Then
        assert dir_a.name == "api-service"
        assert dir_b.name == "client-b-api-service"
        assert manager.get_project_dir_name(first) == "api-service"
        assert manager.get_project_dir_name(second) == "client-b-api-service"

    def test_lookup_wins_over_derivation(self, base: Path, projects: Path) -> None:
        path = _make(projects, "api-service")
        registry = RegistryConfig()
        registry.set_project_entry("legacy-name", path, "", False)
        manager = FilesystemDirectoryManager(base, lookup=registry)

        assert manager.get_project_dir_name(path) == "legacy-name"

    def test_unresolvable_collision(self, base: Path, projects: Path) -> None:
        # Given: every candidate name is taken by a foreign project
        path = _make(projects, "a/b")
        segments = path_segments(path)
        for depth in range(len(segments)):
            candidate = base / build_dir_name(segments, depth)
            candidate.mkdir(exist_ok=True)
            (candidate / ".project-path").write_text("/somewhere/else")
        manager = FilesystemDirectoryManager(base)

        # Then
        with pytest.raises(DirectoryCollisionError):
            manager.get_project_dir_name(path)

    def test_delete_removes_tree(self, base: Path, projects: Path) -> None:
        path = _make(projects, "api-service")
        manager = FilesystemDirectoryManager(base)
        full_path = manager.ensure_project_dir(path)
        (full_path / "state.db").write_bytes(b"")

        manager.delete_project_dir(path)

        assert not full_path.exists()

    def test_delete_missing_is_noop(self, base: Path, projects: Path) -> None:
        path = _make(projects, "never-ensured")
        FilesystemDirectoryManager(base).delete_project_dir(path)

    def test_delete_leaves_foreign_directory(self, base: Path, projects: Path) -> None:
        """A same-named directory owned by another project is not removed."""
        path = _make(projects, "api-service")
        foreign = base / "api-service"
        foreign.mkdir()
        (foreign / ".project-path").write_text("/other/api-service")

        FilesystemDirectoryManager(base).delete_project_dir(path)

        assert foreign.exists()

    def test_cancelled_calls_touch_nothing(self, base: Path, projects: Path) -> None:
        path = _make(projects, "api-service")
        manager = FilesystemDirectoryManager(base)
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelledError):
            manager.ensure_project_dir(path, cancel=cancel)
        with pytest.raises(OperationCancelledError):
            manager.get_project_dir_name(path, cancel=cancel)
        with pytest.raises(OperationCancelledError):
            manager.delete_project_dir(path, cancel=cancel)

        assert list(base.iterdir()) == []
