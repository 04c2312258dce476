"""grattis - durable scheduled event queue on MongoDB."""

from grattis.config import QueueSettings, get_settings
from grattis.core import (
    CycleOutcome,
    CycleResult,
    EventQueue,
    EventRecord,
    Poller,
    PollerStats,
    normalize,
)
from grattis.storage import (
    DocumentStore,
    InMemoryStore,
    MongoStore,
    StorageError,
    StorageQueryError,
    StorageUnavailableError,
    StorageWriteError,
    StoreHealth,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "EventQueue",
    "EventRecord",
    "Poller",
    "PollerStats",
    "CycleOutcome",
    "CycleResult",
    "normalize",
    # Configuration
    "QueueSettings",
    "get_settings",
    # Storage
    "DocumentStore",
    "InMemoryStore",
    "MongoStore",
    "StoreHealth",
    # Errors
    "StorageError",
    "StorageUnavailableError",
    "StorageWriteError",
    "StorageQueryError",
    # Meta
    "__version__",
]
