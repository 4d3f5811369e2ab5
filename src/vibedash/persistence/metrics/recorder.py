"""Debounced stage transition recording.

Detection runs on every refresh, so a project flickering between stages
would otherwise flood the metrics store. Each project holds at most one
pending transition; a further change inside the window keeps the pending
``from_stage``, takes the newest ``to_stage`` and restarts the window.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol

import structlog

from vibedash.core.errors import VibeDashError
from vibedash.projects.models import Stage

logger = structlog.get_logger()

DEFAULT_DEBOUNCE_SECONDS = 10.0


class TransitionSink(Protocol):
    """Destination for committed transitions."""

    def record_transition(self, project_id: str, from_stage: str, to_stage: str) -> None: ...


@dataclass
class _Pending:
    from_stage: str
    to_stage: str
    timer: threading.Timer


def _stage_value(stage: Stage) -> str:
    # A project seen for the first time has no stage to come from
    return "" if stage is Stage.UNKNOWN else stage.value


class MetricsRecorder:
    """Turns repeated stage detections into debounced transitions.

    With ``sink`` set to None every call is a no-op, so callers need not
    check whether metrics are enabled.
    """

    def __init__(
        self,
        sink: TransitionSink | None,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._sink = sink
        self._debounce_seconds = debounce_seconds
        self._lock = threading.Lock()
        self._last_stage: dict[str, Stage] = {}
        self._pending: dict[str, _Pending] = {}

    def on_detection(self, project_id: str, stage: Stage) -> None:
        """Note the stage detected for a project on this refresh."""
        if self._sink is None:
            return
        with self._lock:
            previous = self._last_stage.get(project_id, Stage.UNKNOWN)
            if previous is stage:
                return
            self._last_stage[project_id] = stage

            pending = self._pending.pop(project_id, None)
            if pending is not None:
                pending.timer.cancel()
                from_stage = pending.from_stage
            else:
                from_stage = _stage_value(previous)

            to_stage = stage.value
            if from_stage == to_stage:
                # Changed and changed back inside the window
                return
            self._pending[project_id] = _Pending(
                from_stage, to_stage, self._start_timer(project_id)
            )

    def _start_timer(self, project_id: str) -> threading.Timer:
        timer = threading.Timer(self._debounce_seconds, self._on_timer, args=(project_id,))
        timer.daemon = True
        timer.start()
        return timer

    def _on_timer(self, project_id: str) -> None:
        self._commit(project_id, timer=threading.current_thread())

    def _commit(self, project_id: str, timer: threading.Thread | None = None) -> None:
        with self._lock:
            pending = self._pending.get(project_id)
            if pending is None:
                return
            if timer is not None and pending.timer is not timer:
                # Superseded by a later detection
                return
            del self._pending[project_id]
        self._write(project_id, pending)

    def _write(self, project_id: str, pending: _Pending) -> None:
        if self._sink is None:
            return
        try:
            self._sink.record_transition(project_id, pending.from_stage, pending.to_stage)
        except VibeDashError as e:
            logger.warning("stage_transition_not_recorded", project_id=project_id, error=str(e))
        else:
            logger.debug(
                "stage_transition_recorded",
                project_id=project_id,
                from_stage=pending.from_stage,
                to_stage=pending.to_stage,
            )

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def flush(self) -> None:
        """Commit every pending transition now. Call on shutdown."""
        with self._lock:
            pending = dict(self._pending)
            self._pending.clear()
        for project_id, entry in pending.items():
            entry.timer.cancel()
            self._write(project_id, entry)
