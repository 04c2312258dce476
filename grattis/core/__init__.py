"""Core components of the grattis event queue.

Types:
    EventRecord: Immutable stored event with payload and scheduled time.
    EventQueue: Producer, poller and deletion API over one document store.
    Poller: Cancellable periodic task delivering due batches to a handler.
    CycleResult: How one poll cycle ended (see CycleOutcome).
    PollerStats: Statistics dataclass from a Poller.

Functions:
    normalize: Convert ObjectId-like payload strings to ObjectIds.
    due_filter: Query matching records due at a given time.
"""

from grattis.core.normalize import normalize
from grattis.core.poller import CycleOutcome, CycleResult, Poller, PollerStats
from grattis.core.queue import EventQueue
from grattis.core.record import DUE_SORT, EventRecord, due_filter

__all__ = [
    "CycleOutcome",
    "CycleResult",
    "DUE_SORT",
    "EventQueue",
    "EventRecord",
    "Poller",
    "PollerStats",
    "due_filter",
    "normalize",
]
