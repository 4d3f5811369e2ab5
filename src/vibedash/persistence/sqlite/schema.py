"""Per-project database schema.

The SQLModel table below is used for typed queries only. Tables are never
created from metadata; the DDL lives here and is applied by the ordered
migrations in ``migrations.py`` so that existing files upgrade in place.
"""

from sqlmodel import Field, SQLModel


class ProjectRow(SQLModel, table=True):
    """Persisted row form of a Project."""

    __tablename__ = "projects"

    id: str = Field(primary_key=True)  # path hash
    name: str
    path: str = Field(unique=True)
    display_name: str | None = None
    detected_method: str | None = None
    current_stage: str | None = None
    confidence: str | None = None
    detection_reasoning: str | None = None
    is_favorite: int = 0
    state: str = "active"
    notes: str | None = None
    path_missing: int = 0
    last_activity_at: str
    created_at: str
    updated_at: str


# ============================================================================
# DDL
# ============================================================================

SCHEMA_VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
)
"""

PROJECTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    path TEXT NOT NULL UNIQUE,
    display_name TEXT,
    detected_method TEXT,
    current_stage TEXT,
    confidence TEXT,
    detection_reasoning TEXT,
    is_favorite INTEGER DEFAULT 0,
    state TEXT DEFAULT 'active',
    notes TEXT,
    last_activity_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

PROJECTS_PATH_INDEX_SQL = "CREATE INDEX IF NOT EXISTS idx_projects_path ON projects(path)"
PROJECTS_STATE_INDEX_SQL = "CREATE INDEX IF NOT EXISTS idx_projects_state ON projects(state)"

ADD_PATH_MISSING_SQL = "ALTER TABLE projects ADD COLUMN path_missing INTEGER DEFAULT 0"
