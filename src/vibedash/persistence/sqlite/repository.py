"""Per-project SQLite repository.

One repository owns exactly one ``state.db`` inside one project directory.
Connections are opened per operation (``NullPool``) and closed on every
exit path, so an instance holds no file handles and is safe to share
between threads once constructed.
"""

from __future__ import annotations

import threading
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, insert, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from vibedash.config.constants import STATE_DB_FILE_NAME
from vibedash.core.cancellation import check_cancelled
from vibedash.core.errors import (
    MigrationError,
    PathNotAccessibleError,
    ProjectNotFoundError,
    is_corruption_error,
    wrap_db_error,
)
from vibedash.persistence.sqlite.codec import decode_project, encode_project, format_timestamp
from vibedash.persistence.sqlite.engine import DEFAULT_BUSY_TIMEOUT_MS, create_sqlite_engine
from vibedash.persistence.sqlite.migrations import apply_migrations
from vibedash.persistence.sqlite.schema import ProjectRow
from vibedash.projects.models import Project, ProjectState, utc_now

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement

logger = structlog.get_logger()


class SQLiteProjectRepository:
    """Project storage for a single project directory.

    Construction is fail-fast: the directory must exist and all migrations
    must apply before the instance is returned.
    """

    def __init__(
        self,
        project_dir: Path,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        journal_mode: str = "WAL",
    ) -> None:
        if not project_dir.is_dir():
            raise PathNotAccessibleError.missing_directory(project_dir)

        self.project_dir = project_dir
        self.db_path = project_dir / STATE_DB_FILE_NAME
        self.engine = create_sqlite_engine(
            self.db_path, busy_timeout_ms=busy_timeout_ms, journal_mode=journal_mode
        )
        self.schema_version = self._migrate()

    def _migrate(self) -> int:
        try:
            with self.engine.connect() as conn:
                version = apply_migrations(conn)
        except MigrationError as e:
            cause = e.__cause__
            if cause is not None and is_corruption_error(cause):
                raise wrap_db_error(cause, self.db_path, "migrate database") from cause
            raise
        except SQLAlchemyError as e:
            raise wrap_db_error(e, self.db_path, "open database") from e

        logger.debug("project_repository_opened", db_path=str(self.db_path), schema_version=version)
        return version

    @contextmanager
    def _storage_errors(self, operation: str) -> Generator[None, None, None]:
        """Translate engine errors raised inside the block into the error taxonomy."""
        try:
            yield
        except SQLAlchemyError as e:
            raise wrap_db_error(e, self.db_path, operation) from e

    # =========================================================================
    # Writes
    # =========================================================================

    def save(self, project: Project, *, cancel: threading.Event | None = None) -> None:
        """Insert or replace a project.

        A row with the same id or the same path is replaced, so the file never
        holds two rows for one project. ``project.updated_at`` is refreshed
        before writing.
        """
        check_cancelled(cancel, "save project")
        project.validate()
        project.updated_at = utc_now()
        values = encode_project(project)

        with self._storage_errors("save project"), self.engine.begin() as conn:
            conn.execute(insert(ProjectRow).prefix_with("OR REPLACE").values(**values))

    def delete(self, project_id: str, *, cancel: threading.Event | None = None) -> None:
        check_cancelled(cancel, "delete project")

        with self._storage_errors("delete project"), self.engine.begin() as conn:
            result = conn.execute(delete(ProjectRow).where(col(ProjectRow.id) == project_id))
            affected = result.rowcount
        if affected == 0:
            raise ProjectNotFoundError.by_id(project_id)

    def update_state(
        self,
        project_id: str,
        state: ProjectState,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        """Change the project state. Does not touch ``last_activity_at``."""
        check_cancelled(cancel, "update project state")
        self._update(
            project_id,
            "update project state",
            state=ProjectState(state).value,
            updated_at=format_timestamp(utc_now()),
        )

    def update_last_activity(
        self,
        project_id: str,
        timestamp: datetime,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        check_cancelled(cancel, "update last activity")
        self._update(
            project_id,
            "update last activity",
            last_activity_at=format_timestamp(timestamp),
            updated_at=format_timestamp(utc_now()),
        )

    def _update(self, project_id: str, operation: str, **values: Any) -> None:
        with self._storage_errors(operation), self.engine.begin() as conn:
            result = conn.execute(
                update(ProjectRow).where(col(ProjectRow.id) == project_id).values(**values)
            )
            affected = result.rowcount
        if affected == 0:
            raise ProjectNotFoundError.by_id(project_id)

    # =========================================================================
    # Reads
    # =========================================================================

    def find_by_id(self, project_id: str, *, cancel: threading.Event | None = None) -> Project:
        check_cancelled(cancel, "find project by id")
        project = self._find_one(col(ProjectRow.id) == project_id, "find project by id")
        if project is None:
            raise ProjectNotFoundError.by_id(project_id)
        return project

    def find_by_path(self, path: str, *, cancel: threading.Event | None = None) -> Project:
        check_cancelled(cancel, "find project by path")
        project = self._find_one(col(ProjectRow.path) == path, "find project by path")
        if project is None:
            raise ProjectNotFoundError.by_path(path)
        return project

    def find_all(self, *, cancel: threading.Event | None = None) -> list[Project]:
        check_cancelled(cancel, "find all projects")
        return self._find_many(None, "find all projects")

    def find_active(self, *, cancel: threading.Event | None = None) -> list[Project]:
        check_cancelled(cancel, "find active projects")
        return self._find_many(
            col(ProjectRow.state) == ProjectState.ACTIVE.value, "find active projects"
        )

    def find_hibernated(self, *, cancel: threading.Event | None = None) -> list[Project]:
        check_cancelled(cancel, "find hibernated projects")
        return self._find_many(
            col(ProjectRow.state) == ProjectState.HIBERNATED.value, "find hibernated projects"
        )

    def _find_one(self, condition: ColumnElement[bool], operation: str) -> Project | None:
        with self._storage_errors(operation), Session(self.engine) as session:
            row = session.exec(select(ProjectRow).where(condition)).first()
            return decode_project(row) if row is not None else None

    def _find_many(self, condition: ColumnElement[bool] | None, operation: str) -> list[Project]:
        stmt = select(ProjectRow)
        if condition is not None:
            stmt = stmt.where(condition)
        stmt = stmt.order_by(col(ProjectRow.name))

        with self._storage_errors(operation), Session(self.engine) as session:
            return [decode_project(row) for row in session.exec(stmt)]

    def __repr__(self) -> str:
        return f"SQLiteProjectRepository(db_path={str(self.db_path)!r})"

