"""Tests for runtime settings models."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from vibedash.config.models import (
    DatabaseConfig,
    LoggingConfig,
    LogOutputConfig,
    StorageConfig,
    VibeDashConfig,
)


class TestLogOutputConfig:
    def test_console_destinations_pass_through(self) -> None:
        assert LogOutputConfig(destination="stdout").destination == "stdout"

    def test_relative_file_destination_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LogOutputConfig(destination="logs/out.log")

    def test_absolute_file_destination_kept(self, tmp_path: Path) -> None:
        target = tmp_path / "out.log"
        assert LogOutputConfig(destination=str(target)).destination == str(target)


class TestStorageConfig:
    def test_default_base_path_is_under_home(self) -> None:
        assert StorageConfig().resolved_base_path() == Path.home() / ".vibe-dash"

    def test_registry_path_is_inside_base_path(self, tmp_path: Path) -> None:
        storage = StorageConfig(base_path=str(tmp_path))
        assert storage.resolved_registry_path() == tmp_path / "config.yaml"

    def test_base_path_expands_home(self) -> None:
        storage = StorageConfig(base_path="~/dash")
        assert storage.resolved_base_path() == Path.home() / "dash"


class TestDatabaseConfig:
    def test_defaults(self) -> None:
        db = DatabaseConfig()
        assert db.busy_timeout_ms == 5000
        assert db.journal_mode == "WAL"

    def test_negative_busy_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DatabaseConfig(busy_timeout_ms=-5)

    def test_unknown_journal_mode_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DatabaseConfig(journal_mode="MEMORY")  # type: ignore[arg-type]


class TestVibeDashConfig:
    def test_sections_default_independently(self) -> None:
        config = VibeDashConfig()

        assert isinstance(config.logging, LoggingConfig)
        assert len(config.logging.outputs) == 1
        assert config.logging.outputs[0].destination == "stderr"
