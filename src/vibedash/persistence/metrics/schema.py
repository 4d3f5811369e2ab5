"""Metrics database schema.

One ``metrics.db`` directly under the base path records stage transitions
for every project. It shares the ``schema_version`` bookkeeping and the
migration runner with the per-project databases.
"""

from sqlmodel import Field, SQLModel

from vibedash.persistence.sqlite.migrations import Migration
from vibedash.persistence.sqlite.schema import SCHEMA_VERSION_TABLE_SQL


class StageTransitionRow(SQLModel, table=True):
    """One recorded change of a project's detected stage."""

    __tablename__ = "stage_transitions"

    id: str = Field(primary_key=True)  # uuid4
    project_id: str
    from_stage: str  # "" for the first detection of a project
    to_stage: str
    transitioned_at: str


STAGE_TRANSITIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS stage_transitions (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    from_stage TEXT NOT NULL,
    to_stage TEXT NOT NULL,
    transitioned_at TEXT NOT NULL
)
"""

STAGE_TRANSITIONS_PROJECT_INDEX_SQL = (
    "CREATE INDEX IF NOT EXISTS idx_stage_transitions_project ON stage_transitions(project_id)"
)
STAGE_TRANSITIONS_TIME_INDEX_SQL = (
    "CREATE INDEX IF NOT EXISTS idx_stage_transitions_time ON stage_transitions(transitioned_at)"
)

METRICS_MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        description="Create stage_transitions table and indexes",
        statements=(
            SCHEMA_VERSION_TABLE_SQL,
            STAGE_TRANSITIONS_TABLE_SQL,
            STAGE_TRANSITIONS_PROJECT_INDEX_SQL,
            STAGE_TRANSITIONS_TIME_INDEX_SQL,
        ),
    ),
)
