"""Stage transition metrics in a shared ``metrics.db``."""

from vibedash.persistence.metrics.recorder import (
    DEFAULT_DEBOUNCE_SECONDS,
    MetricsRecorder,
    TransitionSink,
)
from vibedash.persistence.metrics.repository import MetricsRepository, StageTransition
from vibedash.persistence.metrics.schema import METRICS_MIGRATIONS, StageTransitionRow

__all__ = [
    "DEFAULT_DEBOUNCE_SECONDS",
    "METRICS_MIGRATIONS",
    "MetricsRecorder",
    "MetricsRepository",
    "StageTransition",
    "StageTransitionRow",
    "TransitionSink",
]
