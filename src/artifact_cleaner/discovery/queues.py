"""
Hand-off structures shared by the discovery pool and its workers.

Workers never raise across the thread boundary: every hit they finish
becomes a tagged outcome on the outgoing queue, either ``Resolved`` or
``Failed``. Hits that resolve to "not found" produce no outcome at all.
"""

import queue
import threading
from dataclasses import dataclass, field

from artifact_cleaner.artifacts.models import DiscoveredArtifact, SearchHit


@dataclass(frozen=True)
class Resolved:
    """A hit successfully resolved into a full record."""

    hit: SearchHit
    artifact: DiscoveredArtifact


@dataclass(frozen=True)
class Failed:
    """A hit whose resolution failed after exhausting its retry budget."""

    hit: SearchHit
    error: BaseException


DiscoveryOutcome = Resolved | Failed


class _Stop:
    """Sentinel telling a worker to exit its loop."""

    def __repr__(self) -> str:
        return "<STOP>"


STOP = _Stop()


@dataclass
class ProcessingQueues:
    """Incoming hits for workers, outgoing outcomes for the controller."""

    incoming: "queue.Queue[SearchHit | _Stop]" = field(default_factory=queue.Queue)
    outgoing: "queue.Queue[DiscoveryOutcome]" = field(default_factory=queue.Queue)


class InFlightCounter:
    """
    Number of submitted hits whose outcome has not been published yet.

    Incremented before a hit is queued and decremented by the worker only
    after it has pushed the outcome (or dropped the hit). A value of zero
    therefore means every outcome is already on the outgoing queue.
    """

    def __init__(self):
        self._count = 0
        self._lock = threading.Lock()

    def increment(self) -> None:
        with self._lock:
            self._count += 1

    def decrement(self) -> None:
        with self._lock:
            self._count -= 1

    @property
    def value(self) -> int:
        with self._lock:
            return self._count

    def is_idle(self) -> bool:
        return self.value == 0
