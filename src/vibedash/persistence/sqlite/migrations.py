"""Ordered schema migrations for per-project databases.

Each migration runs in its own transaction together with the insert into
``schema_version``; a failing migration rolls back and stops the sequence.
The connection is expected to run in explicit transaction mode (see
``engine._begin_transaction``) so DDL statements are part of the
transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import Connection, text
from sqlalchemy.exc import SQLAlchemyError

from vibedash.core.errors import MigrationError
from vibedash.persistence.sqlite.codec import format_timestamp
from vibedash.persistence.sqlite.schema import (
    ADD_PATH_MISSING_SQL,
    PROJECTS_PATH_INDEX_SQL,
    PROJECTS_STATE_INDEX_SQL,
    PROJECTS_TABLE_SQL,
    SCHEMA_VERSION_TABLE_SQL,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class Migration:
    """One schema step. Versions start at 1 and strictly increase."""

    version: int
    description: str
    statements: tuple[str, ...]


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        description="Create projects table and indexes",
        statements=(
            SCHEMA_VERSION_TABLE_SQL,
            PROJECTS_TABLE_SQL,
            PROJECTS_PATH_INDEX_SQL,
            PROJECTS_STATE_INDEX_SQL,
        ),
    ),
    Migration(
        version=2,
        description="Add path_missing column for unreachable project paths",
        statements=(ADD_PATH_MISSING_SQL,),
    ),
)

LATEST_VERSION = MIGRATIONS[-1].version


def current_version(conn: Connection) -> int:
    """Highest applied version, 0 for a fresh database.

    Autobegins a transaction when called outside one; callers that go on to
    ``conn.begin()`` must commit or roll back first.
    """
    row = conn.execute(text("SELECT COALESCE(MAX(version), 0) FROM schema_version")).one()
    return int(row[0])


def apply_migrations(
    conn: Connection, migrations: tuple[Migration, ...] = MIGRATIONS
) -> int:
    """Bring the database up to the newest known version.

    Already-applied versions are skipped, so calling this on every open is
    cheap. Returns the resulting schema version.

    Raises:
        MigrationError: A migration failed (carries its version and
            description), or the file was written by a newer release.
    """
    try:
        with conn.begin():
            conn.execute(text(SCHEMA_VERSION_TABLE_SQL))
            version = current_version(conn)
    except SQLAlchemyError as e:
        raise MigrationError.failed(0, "create schema_version table", str(e)) from e

    latest = migrations[-1].version if migrations else 0
    if version > latest:
        raise MigrationError.schema_too_new(version, latest)

    for migration in migrations:
        if migration.version <= version:
            continue
        try:
            with conn.begin():
                for statement in migration.statements:
                    conn.execute(text(statement))
                conn.execute(
                    text("INSERT INTO schema_version (version, applied_at) VALUES (:v, :at)"),
                    {"v": migration.version, "at": format_timestamp(datetime.now(timezone.utc))},
                )
        except SQLAlchemyError as e:
            raise MigrationError.failed(migration.version, migration.description, str(e)) from e
        version = migration.version
        logger.debug(
            "migration_applied",
            version=migration.version,
            description=migration.description,
        )

    return version
