# src/tablesink/sink/config.py
"""Configuration for BatchCommitter.

Keys use the camelCase names of the sink configuration format; the
snake_case field names are accepted as well. Serializer options may be
given either as a nested ``serializer_options`` mapping or as flat
``serializer.<option>`` keys, which are folded into the mapping.

Example:
    cfg = BatchCommitterConfig.from_dict({
        "table": "events",
        "columnFamily": "d",
        "serializer": "regex",
        "serializer.regex": "(\\d+),(\\w+)",
        "serializer.colNames": "id,name",
    })
"""

from typing import Any

from pydantic import Field, field_validator, model_validator

from tablesink.contracts.serializer_config import SerializerConfig
from tablesink.plugins.config_base import PluginConfig
from tablesink.plugins.manager import DEFAULT_SERIALIZER

SERIALIZER_PREFIX = "serializer."
DEFAULT_BATCH_SIZE = 100


class BatchCommitterConfig(PluginConfig):
    """Sink configuration, consumed once at setup.

    Config options:
        table: Target table name (required)
        columnFamily: Column family to write to; must exist (required)
        batchSize: Max events taken per cycle (default: 100)
        serializer: Registered serializer name (default: "simple")
        serializer_options: Options for the serializer's configure()
        enableWal: Write-ahead-log flag set on every mutation (default: true)
        kerberosPrincipal / kerberosKeytab: Passed to the identity provider
    """

    table: str
    column_family: str = Field(alias="columnFamily")
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, alias="batchSize", gt=0)
    serializer: str = DEFAULT_SERIALIZER
    serializer_options: dict[str, str] = Field(default_factory=dict)
    enable_wal: bool = Field(default=True, alias="enableWal")
    kerberos_principal: str = Field(default="", alias="kerberosPrincipal")
    kerberos_keytab: str = Field(default="", alias="kerberosKeytab")

    @model_validator(mode="before")
    @classmethod
    def _fold_serializer_options(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat = {k: v for k, v in data.items() if isinstance(k, str) and k.startswith(SERIALIZER_PREFIX)}
        folded = {k: v for k, v in data.items() if k not in flat}
        if flat:
            options = dict(folded.get("serializer_options") or {})
            for key, value in flat.items():
                options.setdefault(key[len(SERIALIZER_PREFIX) :], value)
            folded["serializer_options"] = options
        if not folded.get("serializer"):
            folded["serializer"] = DEFAULT_SERIALIZER
        return folded

    @field_validator("table", "column_family")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("cannot be empty")
        return v

    @field_validator("serializer_options", mode="before")
    @classmethod
    def _stringify_options(cls, v: Any) -> Any:
        if isinstance(v, dict):
            # SerializerConfig applies the same scalar -> str rules used at configure() time
            return dict(SerializerConfig(v))
        return v

    @property
    def family_bytes(self) -> bytes:
        return self.column_family.encode("utf-8")

    @property
    def serializer_config(self) -> SerializerConfig:
        return SerializerConfig(self.serializer_options)

    @property
    def security_enabled(self) -> bool:
        return bool(self.kerberos_principal)
