from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource, YamlConfigSettingsSource

from diagram_core import DiagramType

CONFIG_PATH_ENV = "DIAGRAM_TOOL_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path("config/diagram-tool.yaml")
LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class PersistenceSettings(BaseModel):
    debounce_seconds: float = Field(default=2.0, ge=0)
    backup_interval_seconds: float = Field(default=30.0, gt=0)
    max_history: int = Field(default=100, ge=0)
    indent: int | None = 2


class EditorSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DIAGRAM_TOOL_", env_nested_delimiter="__")

    diagrams_dir: Path = Path("diagrams")
    default_diagram_type: DiagramType = DiagramType.SWARM_DIAGRAM
    log_level: str = "INFO"
    persistence: PersistenceSettings = PersistenceSettings()

    _yaml_path: ClassVar[Path | None] = None

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> str:
        level = str(value or "INFO").strip().upper()
        if level not in LOG_LEVELS:
            msg = f"Unknown log level: {value}"
            raise ValueError(msg)
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ]
        if cls._yaml_path:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=cls._yaml_path))
        return tuple(sources)


def load_settings(config_path: Path | None = None) -> EditorSettings:
    env_path = os.getenv(CONFIG_PATH_ENV)
    resolved_path: Path | None = None

    if config_path is not None:
        resolved_path = config_path
    elif env_path:
        resolved_path = Path(env_path)
    elif DEFAULT_CONFIG_PATH.exists():
        resolved_path = DEFAULT_CONFIG_PATH

    previous = EditorSettings._yaml_path
    try:
        if resolved_path is not None:
            if not resolved_path.exists():
                msg = f"Config file not found: {resolved_path}"
                raise FileNotFoundError(msg)
            EditorSettings._yaml_path = resolved_path
        return EditorSettings()
    finally:
        EditorSettings._yaml_path = previous


def configure_logging(settings: EditorSettings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
