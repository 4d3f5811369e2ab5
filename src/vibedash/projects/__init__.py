"""Project domain model."""

from vibedash.projects.models import (
    Confidence,
    Project,
    ProjectState,
    Stage,
    generate_id,
    new_project,
    utc_now,
)

__all__ = [
    "Confidence",
    "Project",
    "ProjectState",
    "Stage",
    "generate_id",
    "new_project",
    "utc_now",
]
