# src/tablesink/plugins/config_base.py
"""Base class for typed configurations.

Subclasses get:
- Strict validation (unknown keys rejected)
- Both snake_case names and the camelCase aliases used in sink configs
- A from_dict() factory that turns validation failures into ConfigurationError

Example usage:
    class MyConfig(PluginConfig):
        table: str
        batch_size: int = Field(default=100, alias="batchSize")

    cfg = MyConfig.from_dict({"table": "events", "batchSize": 10})
"""

from typing import Any, Self

from pydantic import BaseModel, ConfigDict, ValidationError

from tablesink.contracts.errors import ConfigurationError


class PluginConfig(BaseModel):
    """Base class for typed configurations. Instances are immutable."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> Self:
        """Create config from dict with clear error on validation failure.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        if not isinstance(config, dict):
            raise ConfigurationError(f"Invalid configuration for {cls.__name__}: config must be a dict, got {type(config).__name__}.")

        try:
            return cls.model_validate(config)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration for {cls.__name__}: {e}") from e
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration for {cls.__name__}: {e}") from e
