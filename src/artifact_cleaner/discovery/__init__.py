"""
Artifact Cleaner Discovery Module.

Concurrent resolution of search hits into artifact records, and the
controller that drives searches, bucketing, archiving and deletion.
"""

from .controller import DiscoveryController
from .pool import DiscoveryPool
from .queues import DiscoveryOutcome, Failed, InFlightCounter, ProcessingQueues, Resolved
from .worker import DiscoveryWorker, RetryPolicy, call_with_retries, resolve_hit

__all__ = [
    # Controller
    "DiscoveryController",
    # Pool
    "DiscoveryPool",
    "DiscoveryWorker",
    "RetryPolicy",
    "resolve_hit",
    "call_with_retries",
    # Queues
    "DiscoveryOutcome",
    "Resolved",
    "Failed",
    "InFlightCounter",
    "ProcessingQueues",
]
