"""Stage transition store.

Metrics never break the dashboard: every failure is logged and the call
returns normally (writes) or returns an empty list (reads). The schema is
created on first use rather than at construction, and a failed attempt is
retried on the next call.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from vibedash.core.cancellation import check_cancelled
from vibedash.core.errors import StorageError, VibeDashError, wrap_db_error
from vibedash.persistence.metrics.schema import METRICS_MIGRATIONS, StageTransitionRow
from vibedash.persistence.sqlite.codec import format_timestamp, parse_timestamp
from vibedash.persistence.sqlite.engine import DEFAULT_BUSY_TIMEOUT_MS, create_sqlite_engine
from vibedash.persistence.sqlite.migrations import apply_migrations
from vibedash.projects.models import utc_now

if TYPE_CHECKING:
    from sqlmodel.sql.expression import SelectOfScalar

logger = structlog.get_logger()


@dataclass(frozen=True)
class StageTransition:
    """A project's detected stage changing from one value to another."""

    id: str
    project_id: str
    from_stage: str
    to_stage: str
    transitioned_at: datetime


def _decode(row: StageTransitionRow) -> StageTransition:
    return StageTransition(
        id=row.id,
        project_id=row.project_id,
        from_stage=row.from_stage,
        to_stage=row.to_stage,
        transitioned_at=parse_timestamp(row.transitioned_at, "transitioned_at"),
    )


class MetricsRepository:
    """Stage transitions in a single SQLite file shared by all projects."""

    def __init__(
        self,
        db_path: Path,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        journal_mode: str = "WAL",
    ) -> None:
        self.db_path = db_path
        self.engine = create_sqlite_engine(
            db_path, busy_timeout_ms=busy_timeout_ms, journal_mode=journal_mode
        )
        self._schema_lock = threading.Lock()
        self._schema_ready = False

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            try:
                with self.engine.connect() as conn:
                    apply_migrations(conn, METRICS_MIGRATIONS)
            except SQLAlchemyError as e:
                raise wrap_db_error(e, self.db_path, "create metrics schema") from e
            self._schema_ready = True

    @contextmanager
    def _storage_errors(self, operation: str) -> Generator[None, None, None]:
        try:
            yield
        except SQLAlchemyError as e:
            raise wrap_db_error(e, self.db_path, operation) from e

    def record_transition(
        self,
        project_id: str,
        from_stage: str,
        to_stage: str,
        *,
        at: datetime | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Append one transition. Failures are logged, never raised."""
        check_cancelled(cancel, "record stage transition")
        values = {
            "id": str(uuid.uuid4()),
            "project_id": project_id,
            "from_stage": from_stage,
            "to_stage": to_stage,
            "transitioned_at": format_timestamp(at or utc_now()),
        }
        try:
            self._ensure_schema()
            with self._storage_errors("record stage transition"), self.engine.begin() as conn:
                conn.execute(insert(StageTransitionRow).values(**values))
        except VibeDashError as e:
            logger.warning(
                "stage_transition_not_recorded",
                project_id=project_id,
                from_stage=from_stage,
                to_stage=to_stage,
                error=str(e),
            )

    def transitions_for_project(
        self,
        project_id: str,
        since: datetime,
        *,
        cancel: threading.Event | None = None,
    ) -> list[StageTransition]:
        """Transitions of one project at or after ``since``, oldest first."""
        check_cancelled(cancel, "read project transitions")
        stmt = (
            select(StageTransitionRow)
            .where(col(StageTransitionRow.project_id) == project_id)
            .where(col(StageTransitionRow.transitioned_at) >= format_timestamp(since))
            .order_by(col(StageTransitionRow.transitioned_at))
        )
        return self._query(stmt, "read project transitions")

    def transitions_between(
        self,
        start: datetime,
        end: datetime,
        *,
        cancel: threading.Event | None = None,
    ) -> list[StageTransition]:
        """Transitions of all projects in ``[start, end]``, newest first."""
        check_cancelled(cancel, "read transitions by time range")
        stmt = (
            select(StageTransitionRow)
            .where(col(StageTransitionRow.transitioned_at) >= format_timestamp(start))
            .where(col(StageTransitionRow.transitioned_at) <= format_timestamp(end))
            .order_by(col(StageTransitionRow.transitioned_at).desc())
        )
        return self._query(stmt, "read transitions by time range")

    def _query(
        self, stmt: SelectOfScalar[StageTransitionRow], operation: str
    ) -> list[StageTransition]:
        try:
            self._ensure_schema()
            with self._storage_errors(operation), Session(self.engine) as session:
                rows = list(session.exec(stmt))
        except VibeDashError as e:
            logger.warning("metrics_read_failed", operation=operation, error=str(e))
            return []

        transitions: list[StageTransition] = []
        for row in rows:
            try:
                transitions.append(_decode(row))
            except StorageError as e:
                logger.warning("metrics_row_skipped", id=row.id, error=str(e))
        return transitions

    def __repr__(self) -> str:
        return f"MetricsRepository(db_path={str(self.db_path)!r})"
