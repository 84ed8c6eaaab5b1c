# src/tablesink/core/config.py
"""Settings file loading.

A settings file has three sections:

    sink:
      table: events
      columnFamily: d
      serializer: regex
      serializer_options:
        regex: "(\\d+),(\\w+)"
        colNames: id,name
    storage:
      url: sqlite:///events.db
    logging:
      level: INFO
      json_output: false

Environment variables prefixed with TABLESINK_ override file values, with
double underscores for nesting: TABLESINK_SINK__BATCHSIZE=500 sets
sink.batchSize whether or not the file mentions it.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tablesink.contracts.errors import ConfigurationError
from tablesink.sink.config import BatchCommitterConfig

ENVVAR_PREFIX = "TABLESINK"

# Keys Dynaconf adds to as_dict() on its own
_DYNACONF_KEYS = frozenset({"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"})


class StorageSettings(BaseModel):
    """Where the storage client connects."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    url: str

    @field_validator("url")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("url cannot be empty")
        return v


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    level: str = "INFO"
    json_output: bool = False

    @field_validator("level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {v!r}")
        return upper


class SinkSettings(BaseModel):
    """Top-level settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    sink: BatchCommitterConfig
    storage: StorageSettings
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: Path) -> SinkSettings:
    """Read a settings file, apply TABLESINK_* environment overrides and validate.

    Environment keys arrive upper-cased (TABLESINK_SINK__BATCHSIZE), so every
    section key is matched against the model's field names and aliases
    without regard to case. Serializer option names are passed through
    untouched: they are case-sensitive.

    Raises:
        FileNotFoundError: If config_path does not exist
        ConfigurationError: If the merged settings fail validation
    """
    return settings_from_dict(_read_sources(config_path))


def _read_sources(config_path: Path) -> dict[str, Any]:
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    merged = Dynaconf(
        envvar_prefix=ENVVAR_PREFIX,
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    ).as_dict()
    return {k: v for k, v in merged.items() if k not in _DYNACONF_KEYS}


def _field_keys(model: type[BaseModel]) -> dict[str, str]:
    """Lower-cased spelling -> accepted key, for every field name and alias."""
    keys: dict[str, str] = {}
    for name, info in model.model_fields.items():
        keys[name.lower()] = name
        if info.alias:
            keys[info.alias.lower()] = info.alias
    return keys


def _match_keys(raw: dict[str, Any], model: type[BaseModel]) -> dict[str, Any]:
    """Rename keys of raw to the spelling model accepts, recursing into sub-models.

    Unknown keys are kept as they are so validation can report them.
    """
    keys = _field_keys(model)
    matched: dict[str, Any] = {}
    for key, value in raw.items():
        name = keys.get(key.lower(), key) if isinstance(key, str) else key
        sub_model = _section_model(model, name)
        if sub_model is not None and isinstance(value, dict):
            value = _match_keys(value, sub_model)
        matched[name] = value
    return matched


def _section_model(model: type[BaseModel], key: str) -> type[BaseModel] | None:
    for name, info in model.model_fields.items():
        if key in (name, info.alias):
            annotation = info.annotation
            if isinstance(annotation, type) and issubclass(annotation, BaseModel):
                return annotation
    return None


def settings_from_dict(raw_config: dict[str, Any]) -> SinkSettings:
    """Validate an already-loaded settings mapping.

    Keys are matched to field names and aliases case-insensitively.

    Raises:
        ConfigurationError: If the settings fail validation
    """
    try:
        return SinkSettings.model_validate(_match_keys(raw_config, SinkSettings))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e
