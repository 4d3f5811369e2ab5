"""SQLAlchemy engine setup shared by every SQLite file vibe-dash writes.

Connections are opened per operation (``NullPool``). Each new connection
gets the busy timeout and journal mode pragmas, and transactions are begun
with an explicit ``BEGIN`` so schema changes roll back with the rest of a
migration.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.pool import NullPool
from sqlmodel import create_engine

if TYPE_CHECKING:
    from sqlalchemy import Engine

DEFAULT_BUSY_TIMEOUT_MS = 5000


def _begin_transaction(conn: Any) -> None:
    """Emit BEGIN ourselves; the driver's implicit transactions skip DDL."""
    conn.exec_driver_sql("BEGIN")


def create_sqlite_engine(
    db_path: Path,
    *,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    journal_mode: str = "WAL",
) -> Engine:
    def configure_connection(dbapi_conn: Any, _connection_record: Any) -> None:
        # Hand transaction control to SQLAlchemy's "begin" event.
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        # busy_timeout first so the journal mode switch waits on a locked file
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        cursor.execute(f"PRAGMA journal_mode={journal_mode}")
        cursor.close()

    engine = create_engine(
        f"sqlite:///{db_path}",
        poolclass=NullPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", configure_connection)
    event.listen(engine, "begin", _begin_transaction)
    return engine
