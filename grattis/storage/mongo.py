"""MongoDB document store.

Features:
- Lazy, idempotent connection shared by every caller
- Connection verified with a ping before it is committed
- Timezone-aware datetimes on read
- Index on (isWork, isDone, scheduledAt) for the due-events query
- Health checks
"""

import asyncio
import logging
import re
import time
from typing import Any

from bson import ObjectId
from pymongo import ASCENDING, AsyncMongoClient
from pymongo.errors import ConfigurationError, PyMongoError

from grattis.storage.base import (
    SortSpec,
    StorageQueryError,
    StorageUnavailableError,
    StorageWriteError,
    StoreHealth,
)

logger = logging.getLogger("grattis.mongo")

DEFAULT_DB_NAME = "grattis"
DEFAULT_COLLECTION_NAME = "Event"
DUE_INDEX_NAME = "due_events"

_CREDENTIALS = re.compile(r"//([^:/@]+):([^@/]+)@")


def _sanitize_url(url: str) -> str:
    """Mask the password in a MongoDB connection string for logging."""
    return _CREDENTIALS.sub(r"//\1:****@", url)


class MongoStore:
    """Event collection stored in MongoDB via the async pymongo client."""

    def __init__(
        self,
        mongo_url: str,
        collection_name: str = DEFAULT_COLLECTION_NAME,
        db_name: str = DEFAULT_DB_NAME,
        server_selection_timeout_ms: int = 5000,
        create_indexes: bool = True,
    ) -> None:
        """Initialize the store. No connection is made until first use.

        Args:
            mongo_url: MongoDB connection string.
            collection_name: Collection holding event records.
            db_name: Database holding the collection.
            server_selection_timeout_ms: How long to wait for a reachable server.
            create_indexes: Create the due-events index on first connect.
        """
        self._url = mongo_url
        self._url_safe = _sanitize_url(mongo_url)
        self.db_name = db_name
        self.collection_name = collection_name
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self._create_indexes = create_indexes

        self._client: Any = None
        self._collection: Any = None
        self._conn_lock = asyncio.Lock()

    @property
    def mongo_url(self) -> str:
        return self._url

    @property
    def connected(self) -> bool:
        return self._collection is not None

    async def connect(self) -> None:
        """Connect once; later calls return immediately."""
        if self._collection is not None:
            return

        async with self._conn_lock:
            # Another coroutine may have connected while we waited
            if self._collection is not None:
                return

            try:
                client = AsyncMongoClient(
                    self._url,
                    tz_aware=True,
                    serverSelectionTimeoutMS=self._server_selection_timeout_ms,
                )
            except (ConfigurationError, ValueError) as e:
                logger.error(f"Invalid MongoDB configuration for {self._url_safe}: {e}")
                raise StorageUnavailableError(
                    f"Invalid MongoDB configuration: {e}", original=e
                ) from e

            try:
                await client.admin.command("ping")
            except PyMongoError as e:
                await client.close()
                logger.error(f"Cannot reach MongoDB at {self._url_safe}: {e}")
                raise StorageUnavailableError(
                    f"MongoDB unavailable at {self._url_safe}", original=e
                ) from e

            collection = client[self.db_name][self.collection_name]
            if self._create_indexes:
                await self._ensure_indexes(collection)

            self._client = client
            self._collection = collection
            logger.info(
                f"Connected to MongoDB at {self._url_safe}",
                extra={"db": self.db_name, "collection": self.collection_name},
            )

    async def _ensure_indexes(self, collection: Any) -> None:
        try:
            await collection.create_index(
                [("isWork", ASCENDING), ("isDone", ASCENDING), ("scheduledAt", ASCENDING)],
                name=DUE_INDEX_NAME,
            )
        except PyMongoError as e:
            # The due query still works without the index, only slower
            logger.warning(f"Could not create index {DUE_INDEX_NAME!r}: {e}")

    async def _get_collection(self) -> Any:
        await self.connect()
        return self._collection

    async def insert_one(self, document: dict[str, Any]) -> ObjectId:
        collection = await self._get_collection()
        try:
            result = await collection.insert_one(document)
        except PyMongoError as e:
            raise StorageWriteError(f"Insert into {self.collection_name} failed: {e}", original=e) from e
        return result.inserted_id

    async def find(
        self,
        filter: dict[str, Any],
        sort: SortSpec | None = None,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        collection = await self._get_collection()
        try:
            cursor = collection.find(filter)
            if sort:
                cursor = cursor.sort(sort)
            if limit > 0:
                cursor = cursor.limit(limit)
            return await cursor.to_list(None)
        except PyMongoError as e:
            raise StorageQueryError(f"Query on {self.collection_name} failed: {e}", original=e) from e

    async def delete_one(self, filter: dict[str, Any]) -> int:
        collection = await self._get_collection()
        try:
            result = await collection.delete_one(filter)
        except PyMongoError as e:
            raise StorageWriteError(f"Delete from {self.collection_name} failed: {e}", original=e) from e
        return result.deleted_count

    async def health(self) -> StoreHealth:
        """Check store health."""
        start = time.monotonic()
        try:
            collection = await self._get_collection()
            await self._client.admin.command("ping")
            pending = await collection.count_documents({})
            return StoreHealth(
                healthy=True,
                latency_ms=(time.monotonic() - start) * 1000,
                details={
                    "db": self.db_name,
                    "collection": self.collection_name,
                    "documents": pending,
                },
            )
        except (StorageUnavailableError, PyMongoError) as e:
            return StoreHealth(
                healthy=False,
                latency_ms=(time.monotonic() - start) * 1000,
                details={"error": str(e)},
            )

    async def close(self) -> None:
        """Close the MongoDB connection."""
        async with self._conn_lock:
            if self._client is not None:
                await self._client.close()
                self._client = None
                self._collection = None
                logger.info("Closed MongoDB connection")
