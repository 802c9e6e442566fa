"""
Bounded pool of discovery workers.

The pool owns the incoming and outgoing queues, spawns workers on demand
up to its concurrency bound, and tracks submitted-but-unpublished hits
with a single in-flight counter so the drain loop can tell, without
racing the workers, when every outcome has been collected.

Shutdown is cooperative: ``cancel()`` stops retry loops and skips queued
hits, ``shutdown()`` sends each worker a STOP sentinel and joins it.
"""

import logging
import queue
import threading
from collections.abc import Callable, Iterable, Iterator

from artifact_cleaner.artifacts.models import DiscoveredArtifact, SearchHit
from artifact_cleaner.client.base import RepositoryBackend
from artifact_cleaner.discovery.queues import (
    STOP,
    DiscoveryOutcome,
    Failed,
    InFlightCounter,
    ProcessingQueues,
    Resolved,
)
from artifact_cleaner.discovery.worker import DiscoveryWorker, RetryPolicy

logger = logging.getLogger(__name__)


class DiscoveryPool:
    """
    Resolve search hits concurrently with at most ``concurrency`` workers.

    Usage:
        with DiscoveryPool(backend, concurrency=4) as pool:
            for hit in hits:
                pool.submit(hit)
            for outcome in pool.drain():
                ...
    """

    DEFAULT_POLL_INTERVAL = 0.05
    DEFAULT_SHUTDOWN_TIMEOUT = 300.0

    def __init__(
        self,
        backend: RepositoryBackend,
        concurrency: int = 4,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] | None = None,
        poll_interval: float | None = None,
    ):
        """
        Initialize the pool. No threads are started until work is submitted.

        Args:
            backend: Repository backend shared by all workers
            concurrency: Maximum number of worker threads
            retry_policy: Per-hit attempt budget and backoff
            sleep: Backoff function override (defaults to a cancellable wait)
            poll_interval: Seconds between in-flight checks while draining
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        self._backend = backend
        self._concurrency = concurrency
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._poll_interval = poll_interval or self.DEFAULT_POLL_INTERVAL

        self._queues = ProcessingQueues()
        self._in_flight = InFlightCounter()
        self._cancel_event = threading.Event()
        self._workers: list[DiscoveryWorker] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def in_flight(self) -> int:
        """Hits submitted whose outcome has not been published yet."""
        return self._in_flight.value

    @property
    def workers(self) -> list[DiscoveryWorker]:
        with self._lock:
            return list(self._workers)

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _spawn_worker_if_needed(self) -> None:
        with self._lock:
            if len(self._workers) >= self._concurrency:
                return
            worker = DiscoveryWorker(
                self._queues,
                self._in_flight,
                self._backend,
                policy=self._retry_policy,
                cancel_event=self._cancel_event,
                sleep=self._sleep,
                name=f"discovery_worker_{len(self._workers)}",
            ).start()
            self._workers.append(worker)
        logger.debug(f"Spawned {worker!r} to process discovery calls")

    def submit(self, hit: SearchHit) -> None:
        """Queue a hit for resolution."""
        if self._closed:
            raise RuntimeError("Cannot submit to a pool that has been shut down")
        if not isinstance(hit, SearchHit):
            raise TypeError(f"expected SearchHit, got {type(hit).__name__}")

        # Count before queueing so the drain loop never sees a hidden hit
        self._in_flight.increment()
        self._queues.incoming.put(hit)
        logger.debug(f"Queued {hit.uri} for discovery")
        self._spawn_worker_if_needed()

    def submit_all(self, hits: Iterable[SearchHit]) -> int:
        count = 0
        for hit in hits:
            self.submit(hit)
            count += 1
        return count

    def drain(self) -> Iterator[DiscoveryOutcome]:
        """
        Yield outcomes until every submitted hit has been accounted for.

        Outcomes arrive in completion order, not submission order.
        """
        outgoing = self._queues.outgoing
        while True:
            if self._in_flight.is_idle() and outgoing.empty():
                return
            try:
                outcome = outgoing.get(timeout=self._poll_interval)
            except queue.Empty:
                continue
            yield outcome

    def resolve(
        self, hits: Iterable[SearchHit]
    ) -> tuple[list[DiscoveredArtifact], list[Failed]]:
        """Submit ``hits`` and collect resolved records and failures."""
        self.submit_all(hits)
        artifacts: list[DiscoveredArtifact] = []
        failures: list[Failed] = []
        for outcome in self.drain():
            if isinstance(outcome, Resolved):
                artifacts.append(outcome.artifact)
            elif isinstance(outcome, Failed):
                failures.append(outcome)
            else:
                logger.error(f"Got {outcome!r} back from the discovery queue")
        return artifacts, failures

    def cancel(self) -> None:
        """Stop retry loops at the next attempt boundary and skip queued hits."""
        self._cancel_event.set()

    def shutdown(self, wait: bool = True, timeout: float | None = None) -> bool:
        """
        Stop all workers.

        Args:
            wait: Join each worker thread before returning
            timeout: Per-worker join timeout in seconds

        Returns:
            True if every worker exited (always True when not waiting)
        """
        with self._lock:
            if self._closed:
                return True
            self._closed = True
            workers = list(self._workers)

        for _ in workers:
            self._queues.incoming.put(STOP)

        if not wait:
            return True

        timeout = self.DEFAULT_SHUTDOWN_TIMEOUT if timeout is None else timeout
        stopped = True
        for worker in workers:
            if not worker.join(timeout):
                logger.warning(f"{worker!r} did not stop within {timeout} seconds")
                stopped = False
        return stopped

    def __enter__(self) -> "DiscoveryPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.cancel()
        self.shutdown(wait=True)
