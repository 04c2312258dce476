"""Document store implementations for the event collection."""

from grattis.storage.base import (
    DocumentStore,
    StorageError,
    StorageQueryError,
    StorageUnavailableError,
    StorageWriteError,
    StoreHealth,
)
from grattis.storage.inmemory import InMemoryStore
from grattis.storage.mongo import MongoStore

__all__ = [
    "DocumentStore",
    "InMemoryStore",
    "MongoStore",
    "StorageError",
    "StorageQueryError",
    "StorageUnavailableError",
    "StorageWriteError",
    "StoreHealth",
]
