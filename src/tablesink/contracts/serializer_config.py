"""Immutable string options handed to a serializer's configure()."""

from collections.abc import Iterator, Mapping
from types import MappingProxyType

from tablesink.contracts.errors import ConfigurationError

_TRUE_VALUES = frozenset({"true", "yes", "on", "1"})
_FALSE_VALUES = frozenset({"false", "no", "off", "0"})


class SerializerConfig(Mapping[str, str]):
    """Mapping of option name to string value.

    The options are copied on construction and cannot be changed afterwards.
    Typed getters raise ConfigurationError when a value cannot be parsed;
    an absent key yields the supplied default.

    Example:
        cfg = SerializerConfig({"regex": "(\\d+)", "regexIgnoreCase": "true"})
        cfg.get_string("regex", "(.*)")
        cfg.get_bool("regexIgnoreCase", False)
    """

    __slots__ = ("_options",)

    def __init__(self, options: Mapping[str, object] | None = None) -> None:
        copied: dict[str, str] = {}
        for key, value in (options or {}).items():
            if not isinstance(key, str):
                raise ConfigurationError(f"Serializer option names must be strings, got {key!r}")
            copied[key] = value if isinstance(value, str) else _stringify(value)
        self._options = MappingProxyType(copied)

    def __getitem__(self, key: str) -> str:
        return self._options[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._options)

    def __len__(self) -> int:
        return len(self._options)

    def __repr__(self) -> str:
        return f"SerializerConfig({dict(self._options)!r})"

    def get_string(self, key: str, default: str) -> str:
        return self._options.get(key, default)

    def get_bool(self, key: str, default: bool) -> bool:
        raw = self._options.get(key)
        if raw is None:
            return default
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigurationError(f"Serializer option '{key}' must be a boolean, got {raw!r}")

    def get_int(self, key: str, default: int) -> int:
        raw = self._options.get(key)
        if raw is None:
            return default
        try:
            return int(raw.strip())
        except ValueError as e:
            raise ConfigurationError(f"Serializer option '{key}' must be an integer, got {raw!r}") from e


def _stringify(value: object) -> str:
    # YAML hands us bools/ints for unquoted scalars
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    raise ConfigurationError(f"Serializer option values must be scalars, got {type(value).__name__}")
