"""Runtime settings loading with pydantic-settings.

Sources, lowest to highest precedence:
1. Built-in defaults
2. Settings file (``~/.config/vibe-dash/settings.yaml``, or ``$VIBEDASH_CONFIG``)
3. Environment variables (``VIBEDASH__SECTION__KEY``)
4. Keyword arguments to ``load_config``
"""

import os
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from vibedash.config.models import (
    DatabaseConfig,
    LoggingConfig,
    StorageConfig,
    VibeDashConfig,
)
from vibedash.core.errors import ConfigError

logger = structlog.get_logger()

GLOBAL_CONFIG_PATH = Path("~/.config/vibe-dash/settings.yaml").expanduser()
CONFIG_PATH_ENV = "VIBEDASH_CONFIG"

_SECTIONS = frozenset(VibeDashConfig.model_fields)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Parse a settings file. A missing or empty file yields ``{}``."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        raise ConfigError.parse_error(str(path), f"cannot read file: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top-level value must be a mapping")
    return data


class _SettingsFileSource(PydanticBaseSettingsSource):
    """Feeds already-parsed settings file sections into pydantic-settings."""

    def __init__(self, settings_cls: type[BaseSettings], sections: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._sections = sections

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        value = self._sections.get(field_name)
        return value, field_name, isinstance(value, dict)

    def __call__(self) -> dict[str, Any]:
        return {k: v for k, v in self._sections.items() if v is not None}


def _make_settings_class(sections: dict[str, Any]) -> type[BaseSettings]:
    """Settings class bound to one parsed file.

    A fresh class per call keeps concurrent loads from sharing file state.
    """

    class VibeDashSettings(BaseSettings):
        model_config = SettingsConfigDict(
            env_prefix="VIBEDASH__",
            env_nested_delimiter="__",
            case_sensitive=False,
            extra="ignore",
        )

        logging: LoggingConfig = LoggingConfig()
        storage: StorageConfig = StorageConfig()
        database: DatabaseConfig = DatabaseConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # First source wins
            return (init_settings, env_settings, _SettingsFileSource(settings_cls, sections))

    return VibeDashSettings


def _settings_path(config_path: Path | None) -> Path:
    if config_path is not None:
        return config_path
    override = os.environ.get(CONFIG_PATH_ENV)
    return Path(override).expanduser() if override else GLOBAL_CONFIG_PATH


def load_config(config_path: Path | None = None, **kwargs: Any) -> VibeDashConfig:
    """Resolve runtime settings from every source.

    Raises:
        ConfigError: The settings file is not valid YAML, or a value fails
            validation.
    """
    path = _settings_path(config_path)
    sections = _load_yaml(path)

    unknown = sorted(set(sections) - _SECTIONS)
    if unknown:
        logger.warning("settings_unknown_sections", path=str(path), sections=unknown)

    try:
        settings = _make_settings_class(sections)(**kwargs)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ConfigError.invalid_value(field, first.get("input"), first["msg"]) from e
    return VibeDashConfig.model_validate(settings.model_dump())
