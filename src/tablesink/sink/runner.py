# src/tablesink/sink/runner.py
"""SinkRunner: the polling loop that drives a BatchCommitter.

process() never sleeps or retries on its own. This loop does:

- Status.READY: run the next cycle immediately and reset the backoff.
- Status.BACKOFF: the channel is empty; wait, backing off exponentially.
- EventDeliveryError: the cycle was rolled back; wait the same way, then
  retry the whole cycle.
- Anything else: stop and propagate.

Waiting uses tenacity's exponential backoff with jitter. The default sleep
waits on the stop event, so stop() interrupts a backoff immediately.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_any,
    stop_when_event_set,
    wait_exponential_jitter,
)

from tablesink.contracts import EventDeliveryError, Status
from tablesink.core.logging import get_logger, sink_context
from tablesink.sink.committer import BatchCommitter

logger = get_logger(__name__)


class _Idle(Exception):
    """Internal signal: nothing to deliver right now, wait before the next cycle."""


@dataclass(frozen=True)
class RunnerRetryConfig:
    """Backoff between unproductive cycles.

    Delays grow as initial * 2**n up to max_delay, plus up to jitter seconds
    of random noise.
    """

    initial_delay: float = 0.5  # seconds
    max_delay: float = 5.0  # seconds
    jitter: float = 0.5  # seconds

    def __post_init__(self) -> None:
        if self.initial_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("backoff delays must be >= 0")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")


class SinkRunner:
    """Runs committer cycles until stopped.

    Usage:
        runner = SinkRunner(committer)
        thread = threading.Thread(target=runner.run)
        thread.start()
        ...
        runner.stop()
        thread.join()

    Args:
        committer: Started BatchCommitter
        retry: Backoff settings
        sleep: Replaces the interruptible default sleep (tests)
    """

    def __init__(
        self,
        committer: BatchCommitter,
        retry: RunnerRetryConfig | None = None,
        *,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self._committer = committer
        self._retry = retry or RunnerRetryConfig()
        self._stop_event = threading.Event()
        self._sleep = sleep if sleep is not None else self._stop_event.wait
        self._cycles = 0

    @property
    def cycles(self) -> int:
        """Number of process() calls made so far."""
        return self._cycles

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Ask the loop to exit after the current cycle or wait."""
        self._stop_event.set()

    def run(self, max_cycles: int | None = None) -> int:
        """Loop until stop() or until max_cycles process() calls were made.

        Returns:
            Number of cycles run by this call.

        Raises:
            Exception: Any fault other than a delivery failure, unchanged.
        """
        start = self._cycles

        def budget_spent() -> bool:
            return max_cycles is not None and self._cycles - start >= max_cycles

        config = self._committer.config
        with sink_context(table=config.table, column_family=config.column_family):
            self._loop(budget_spent)
        return self._cycles - start

    def _loop(self, budget_spent: Callable[[], bool]) -> None:
        while not self._stop_event.is_set() and not budget_spent():
            retrying = Retrying(
                retry=retry_if_exception_type((_Idle, EventDeliveryError)),
                wait=wait_exponential_jitter(
                    multiplier=self._retry.initial_delay,
                    max=self._retry.max_delay,
                    jitter=self._retry.jitter,
                ),
                stop=stop_any(stop_when_event_set(self._stop_event), lambda _: budget_spent()),
                sleep=self._sleep,
                before_sleep=self._log_wait,
                reraise=True,
            )
            try:
                for attempt in retrying:
                    with attempt:
                        self._run_one()
            except (_Idle, EventDeliveryError):
                # Stop condition reached while waiting for work or for storage
                break

    def _run_one(self) -> None:
        if self._stop_event.is_set():
            # Woken from a wait by stop(); the stop condition ends the loop
            raise _Idle()
        self._cycles += 1
        if self._committer.process() is Status.BACKOFF:
            raise _Idle()

    def _log_wait(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        error = outcome.exception() if outcome is not None else None
        if isinstance(error, EventDeliveryError):
            logger.warning("Delivery failed, retrying cycle", attempt=retry_state.attempt_number, delay=round(delay, 3), error=str(error.__cause__ or error))
        else:
            logger.debug("Channel empty, backing off", attempt=retry_state.attempt_number, delay=round(delay, 3))
