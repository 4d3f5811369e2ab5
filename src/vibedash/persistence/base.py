"""Repository contract consumed by the rest of the application."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Protocol

from vibedash.projects.models import Project, ProjectState


class ProjectRepository(Protocol):
    """Project persistence.

    Every operation takes a keyword-only ``cancel`` event and raises
    OperationCancelledError, without touching storage, when it is already set.
    List operations return an empty list, never None.
    """

    def save(self, project: Project, *, cancel: threading.Event | None = None) -> None: ...

    def find_by_id(self, project_id: str, *, cancel: threading.Event | None = None) -> Project: ...

    def find_by_path(self, path: str, *, cancel: threading.Event | None = None) -> Project: ...

    def find_all(self, *, cancel: threading.Event | None = None) -> list[Project]: ...

    def find_active(self, *, cancel: threading.Event | None = None) -> list[Project]: ...

    def find_hibernated(self, *, cancel: threading.Event | None = None) -> list[Project]: ...

    def delete(self, project_id: str, *, cancel: threading.Event | None = None) -> None: ...

    def update_state(
        self,
        project_id: str,
        state: ProjectState,
        *,
        cancel: threading.Event | None = None,
    ) -> None: ...

    def update_last_activity(
        self,
        project_id: str,
        timestamp: datetime,
        *,
        cancel: threading.Event | None = None,
    ) -> None: ...
