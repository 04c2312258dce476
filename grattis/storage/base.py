"""Storage protocol for the event collection.

The queue never talks to a database driver directly. Everything it needs
from a document store goes through this protocol: insert one document,
find documents with a filter/sort/limit, and delete one document.
"""

from dataclasses import dataclass
from typing import Any, Protocol

from bson import ObjectId

# (field, direction) pairs, 1 = ascending, -1 = descending
SortSpec = list[tuple[str, int]]


class StorageError(Exception):
    """Base class for document store failures.

    Attributes:
        original: The driver exception that caused this error, if any.
    """

    def __init__(self, message: str, original: Exception | None = None):
        self.original = original
        super().__init__(message)


class StorageUnavailableError(StorageError):
    """Raised when the store cannot be reached or configured."""


class StorageWriteError(StorageError):
    """Raised when an insert or delete is rejected by the store."""


class StorageQueryError(StorageError):
    """Raised when a find query fails."""


@dataclass
class StoreHealth:
    """Health check result."""

    healthy: bool
    latency_ms: float
    details: dict[str, Any]


class DocumentStore(Protocol):
    """Protocol for the collection holding event records.

    Implementations own their connection state. ``connect`` must be
    idempotent: the queue calls it lazily before every operation and only
    the first call may do real work.
    """

    async def connect(self) -> None:
        """Establish the connection if not already connected.

        Raises:
            StorageUnavailableError: If the store cannot be reached.
        """
        ...

    async def insert_one(self, document: dict[str, Any]) -> ObjectId:
        """Insert a document and return the id assigned to it.

        Raises:
            StorageWriteError: If the insert fails.
        """
        ...

    async def find(
        self,
        filter: dict[str, Any],
        sort: SortSpec | None = None,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        """Return documents matching ``filter``.

        Args:
            filter: Query document (equality and comparison operators).
            sort: Sort keys applied in order.
            limit: Maximum number of documents, 0 means no limit.

        Raises:
            StorageQueryError: If the query fails.
        """
        ...

    async def delete_one(self, filter: dict[str, Any]) -> int:
        """Delete at most one matching document and return the deleted count.

        Raises:
            StorageWriteError: If the delete fails.
        """
        ...

    async def health(self) -> StoreHealth:
        """Check store health. Never raises."""
        ...

    async def close(self) -> None:
        """Release the connection."""
        ...
