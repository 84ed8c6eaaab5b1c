"""Identity-execution seam for storage calls.

The committer never knows how impersonation works. It is handed a RunAs
callable at construction and wraps every storage call in it:

    result = run_as(identity, lambda: table.submit_batch(writes))

identity is None when secure execution is not configured; run_as then just
calls the action. When an IdentityProvider is configured, the committer
logs in once at start() and passes the resulting Identity on every call.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, TypeVar, runtime_checkable

from tablesink.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


@runtime_checkable
class Identity(Protocol):
    """An authenticated principal able to run actions on its own behalf."""

    name: str

    def run(self, action: Callable[[], T]) -> T: ...


class IdentityProvider(Protocol):
    """Login capability supplied by the credential subsystem."""

    def login(self, principal: str, keytab: str) -> Identity:
        """Authenticate and return the identity to run storage calls as.

        Raises:
            Exception: Any failure; the committer reports it as SetupError.
        """
        ...


class RunAs(Protocol):
    """Callable that executes action as identity (or directly when None)."""

    def __call__(self, identity: Identity | None, action: Callable[[], T]) -> T: ...


def run_as(identity: Identity | None, action: Callable[[], T]) -> T:
    """Default RunAs: delegate to identity.run(), or call action directly."""
    if identity is None:
        return action()
    logger.debug("Running storage call as identity", identity=identity.name)
    return identity.run(action)
