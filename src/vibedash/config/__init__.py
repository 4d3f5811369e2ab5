"""Config module exports."""

from vibedash.config.loader import load_config
from vibedash.config.models import (
    DatabaseConfig,
    LoggingConfig,
    StorageConfig,
    VibeDashConfig,
)
from vibedash.config.project_config import ProjectConfigData, YamlProjectConfigLoader
from vibedash.config.registry import (
    ConfigLoader,
    ProjectEntry,
    RegistryConfig,
    YamlRegistryLoader,
)

__all__ = [
    "load_config",
    "VibeDashConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "StorageConfig",
    "ConfigLoader",
    "ProjectEntry",
    "RegistryConfig",
    "YamlRegistryLoader",
    "ProjectConfigData",
    "YamlProjectConfigLoader",
]
