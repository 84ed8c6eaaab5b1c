"""Exception hierarchy for tablesink.

Startup problems (ConfigurationError, SetupError) are fatal and surface
before any cycle begins. TransportError is raised by storage clients and is
converted by the committer into EventDeliveryError after rolling back, so
the caller can retry the whole cycle later. Anything else raised during a
cycle is treated as a programming fault and propagates unchanged.

Parse mismatches are not errors: a serializer that
cannot make sense of an event returns no mutations instead of raising.
"""


class TableSinkError(Exception):
    """Base exception for all tablesink failures."""


class ConfigurationError(TableSinkError):
    """Raised for missing or malformed configuration (table, family, pattern...)."""


class SetupError(TableSinkError):
    """Raised when the target table or column family is absent, or login fails."""


class TransportError(TableSinkError):
    """Raised by storage clients when a submission to the backend fails."""


class EventDeliveryError(TableSinkError):
    """Raised by the committer after a transport failure rolled back a cycle.

    The events of the failed cycle are back in the channel. Retrying later
    re-reads them and derives fresh row keys, so writes may be duplicated
    and increments may be applied twice.
    """


class ChannelFullError(TableSinkError):
    """Raised when putting an event into a channel that is at capacity."""
