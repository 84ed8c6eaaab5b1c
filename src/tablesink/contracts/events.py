"""Event records carried by channels."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True, slots=True)
class Event:
    """One unit of input data.

    The body is opaque to the sink; headers are carried along for
    serializers that want them but the core never reads them.
    """

    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.body, bytes):
            raise TypeError(f"Event body must be bytes, got {type(self.body).__name__}")
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @classmethod
    def from_text(cls, text: str, headers: Mapping[str, str] | None = None) -> "Event":
        """Build an event whose body is the UTF-8 encoding of text."""
        return cls(body=text.encode("utf-8"), headers=headers or {})
