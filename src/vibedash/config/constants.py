"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable:
on-disk file names and registry defaults.

For configurable values, see models.py (StorageConfig, DatabaseConfig, etc.).
"""

# =============================================================================
# On-disk layout
# =============================================================================

DEFAULT_BASE_DIR_NAME = ".vibe-dash"
"""Base directory under the user's home holding per-project directories."""

REGISTRY_FILE_NAME = "config.yaml"
"""Registry file, directly under the base directory."""

STATE_DB_FILE_NAME = "state.db"
"""Per-project embedded database, inside each project directory."""

PROJECT_MARKER_FILE_NAME = ".project-path"
"""Marker recording the canonical path a project directory belongs to."""

PROJECT_CONFIG_FILE_NAME = "config.yaml"
"""Per-project sidecar config, inside each project directory."""

METRICS_DB_FILE_NAME = "metrics.db"
"""Stage transition metrics for all projects, directly under the base directory."""

MAX_COLLISION_DEPTH = 10
"""Path segments tried when deriving a unique project directory name."""

# =============================================================================
# Registry defaults
# =============================================================================

DEFAULT_HIBERNATION_DAYS = 14
DEFAULT_REFRESH_INTERVAL_SECONDS = 10
DEFAULT_REFRESH_DEBOUNCE_MS = 200
DEFAULT_AGENT_WAITING_THRESHOLD_MINUTES = 10
