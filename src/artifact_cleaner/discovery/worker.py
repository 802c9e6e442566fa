"""
Discovery workers.

A DiscoveryWorker is a thread that pulls one search hit at a time from the
incoming queue, resolves it into a DiscoveredArtifact through the backend,
and publishes the outcome on the outgoing queue.

Retry policy per remote call (hit resolution and date searches alike):
- connection failures and timeouts wait a fixed delay and try again, up to
  ``max_attempts`` attempts in total
- not-found is terminal: a hit is dropped without an outcome
- any other failure allows at most one further attempt
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception

from artifact_cleaner.artifacts.models import DiscoveredArtifact, SearchHit
from artifact_cleaner.client.base import RepositoryBackend
from artifact_cleaner.core.exceptions import (
    ArtifactNotFoundError,
    DiscoveryCancelledError,
    format_exception,
    is_retriable_error,
    is_transient_error,
)
from artifact_cleaner.discovery.queues import (
    STOP,
    Failed,
    InFlightCounter,
    ProcessingQueues,
    Resolved,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff for one remote call."""

    max_attempts: int = 10
    delay_seconds: float = 10.0


class _AttemptBudget:
    """
    tenacity stop condition implementing the per-call budget.

    A non-transient failure caps the budget at one attempt beyond the one
    that failed; a cancelled pool stops immediately.
    """

    def __init__(self, max_attempts: int, cancel_event: threading.Event | None):
        self._limit = max_attempts
        self._cancel_event = cancel_event

    def __call__(self, retry_state: RetryCallState) -> bool:
        if self._cancel_event is not None and self._cancel_event.is_set():
            return True
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if error is not None and not is_transient_error(error):
            self._limit = min(self._limit, retry_state.attempt_number + 1)
        return retry_state.attempt_number >= self._limit


def call_with_retries(
    func: Callable[[], T],
    action: str,
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], None] = time.sleep,
    cancel_event: threading.Event | None = None,
) -> T:
    """
    Call ``func`` under the per-request retry policy.

    Args:
        func: The remote call to make
        action: What the call does, for log messages (e.g. "resolving <uri>")
        policy: Attempt budget and backoff delay
        sleep: Called with the delay before retrying a transient failure
        cancel_event: When set, no further attempt is started

    Raises:
        DiscoveryCancelledError: If cancelled between attempts
        ArtifactNotFoundError: Immediately, without retrying
        CleanerError: The last failure once the budget is exhausted
    """

    def wait(retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return policy.delay_seconds if is_transient_error(error) else 0.0

    def backoff(seconds: float) -> None:
        if seconds > 0:
            sleep(seconds)

    def log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        if is_transient_error(error):
            logger.warning(
                f"Connection failure {action}: {error}; "
                f"retrying in {policy.delay_seconds:g} seconds"
            )
        else:
            logger.error(f"HTTP error {action}: {error}; will retry once")

    def attempt() -> T:
        if cancel_event is not None and cancel_event.is_set():
            raise DiscoveryCancelledError(f"Discovery cancelled before {action}")
        return func()

    retrying = Retrying(
        stop=_AttemptBudget(policy.max_attempts, cancel_event),
        wait=wait,
        retry=retry_if_exception(is_retriable_error),
        sleep=backoff,
        before_sleep=log_retry,
        reraise=True,
    )
    return retrying(attempt)


def resolve_hit(
    backend: RepositoryBackend,
    hit: SearchHit,
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], None] = time.sleep,
    cancel_event: threading.Event | None = None,
) -> DiscoveredArtifact | None:
    """
    Resolve a search hit into a full record, retrying per ``policy``.

    Returns:
        The record with the hit's last-downloaded date attached, or None if
        the artifact no longer exists

    Raises:
        DiscoveryCancelledError: If cancelled between attempts
        CleanerError: The last failure once the budget is exhausted
    """
    try:
        artifact = call_with_retries(
            lambda: backend.fetch_artifact(hit.uri),
            f"resolving {hit.uri}",
            policy=policy,
            sleep=sleep,
            cancel_event=cancel_event,
        )
    except ArtifactNotFoundError:
        logger.warning(f"HTTP 404 Not Found fetching: {hit.uri}")
        return None

    return artifact.with_last_downloaded(hit.last_downloaded)


class DiscoveryWorker:
    """
    A thread resolving hits from the incoming queue.

    The worker exits when it pops the STOP sentinel. While the pool's
    cancel event is set, queued hits are skipped and in-progress retry
    loops stop at the next attempt boundary.
    """

    def __init__(
        self,
        queues: ProcessingQueues,
        in_flight: InFlightCounter,
        backend: RepositoryBackend,
        policy: RetryPolicy | None = None,
        cancel_event: threading.Event | None = None,
        sleep: Callable[[float], None] | None = None,
        name: str | None = None,
    ):
        self._queues = queues
        self._in_flight = in_flight
        self._backend = backend
        self._policy = policy or RetryPolicy()
        self._cancel_event = cancel_event or threading.Event()
        # Default backoff waits on the cancel event so cancellation cuts it short
        self._sleep = sleep or self._cancel_event.wait
        self._thread: threading.Thread | None = None
        self._name = name
        self._running = False
        self._working = False

    @property
    def name(self) -> str | None:
        return self._thread.name if self._thread else self._name

    def is_running(self) -> bool:
        """True while listening to the queue."""
        return self._running

    def is_working(self) -> bool:
        """True while resolving a hit."""
        return self._working

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "DiscoveryWorker":
        self._running = True
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        return self

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the thread to exit; True if it did."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        while True:
            item = self._queues.incoming.get()
            if item is STOP:
                break
            self._working = True
            try:
                self._process(item)
            finally:
                self._working = False
                self._in_flight.decrement()
        self._running = False

    def _process(self, hit: SearchHit) -> None:
        if self._cancel_event.is_set():
            logger.debug(f"Skipping {hit.uri}; discovery was cancelled")
            return

        try:
            artifact = resolve_hit(
                self._backend,
                hit,
                policy=self._policy,
                sleep=self._sleep,
                cancel_event=self._cancel_event,
            )
        except DiscoveryCancelledError:
            logger.debug(f"Abandoned {hit.uri}; discovery was cancelled")
            return
        except Exception as e:
            # Delivered to the controller as a tagged outcome
            logger.error(f"Error resolving {hit.uri}: {format_exception(e)}")
            self._queues.outgoing.put(Failed(hit=hit, error=e))
            return

        if artifact is not None:
            self._queues.outgoing.put(Resolved(hit=hit, artifact=artifact))

    def __repr__(self) -> str:
        return (
            f"<DiscoveryWorker {self.name}; "
            f"{'running' if self.is_running() else 'not running'}, "
            f"{'working' if self.is_working() else 'idle'}, "
            f"{'alive' if self.is_alive() else 'dead'}>"
        )
