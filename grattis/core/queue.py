"""EventQueue: the producer, poller and deletion API over one document store.

Events are stored durably so that producers do not depend on the consumer
being up: a consumer that is down simply finds the events waiting on its
next poll.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Callable

from bson import ObjectId

from grattis.config import QueueSettings, get_settings
from grattis.core.logging import get_logger
from grattis.core.poller import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_INTERVAL,
    BatchHandler,
    Poller,
)
from grattis.core.record import EventRecord, utcnow
from grattis.storage.base import DocumentStore, StorageError
from grattis.storage.mongo import DEFAULT_COLLECTION_NAME, DEFAULT_DB_NAME, MongoStore


class EventQueue:
    """Durable scheduled event queue.

    The queue owns one ``DocumentStore`` and shares it between ``enqueue``,
    every poller it starts and ``remove_event``. The store connects lazily
    on first use; later calls reuse the connection.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utcnow,
        log_level: int | str = logging.INFO,
    ) -> None:
        self.store = store
        self._clock = clock
        self._log_level = log_level
        self._log = get_logger("grattis.queue", log_level)
        self._pollers: list[Poller] = []

    @classmethod
    def from_url(
        cls,
        mongo_url: str,
        collection_name: str = DEFAULT_COLLECTION_NAME,
        db_name: str = DEFAULT_DB_NAME,
        **kwargs: Any,
    ) -> "EventQueue":
        """Create a queue backed by a MongoDB collection."""
        return cls(MongoStore(mongo_url, collection_name=collection_name, db_name=db_name), **kwargs)

    @classmethod
    def from_settings(cls, settings: QueueSettings | None = None) -> "EventQueue":
        settings = settings or get_settings()
        store = MongoStore(
            settings.mongo_url,
            collection_name=settings.collection_name,
            db_name=settings.db_name,
            server_selection_timeout_ms=settings.server_selection_timeout_ms,
        )
        return cls(store, log_level=settings.log_level.upper())

    @property
    def pollers(self) -> list[Poller]:
        return list(self._pollers)

    async def _connect(self) -> None:
        try:
            await self.store.connect()
        except StorageError as e:
            self._log.error(f"Event store unavailable: {e}", extra={"error": str(e)})
            raise

    async def enqueue(
        self,
        payload: Mapping[str, Any],
        scheduled_at: datetime | None = None,
    ) -> ObjectId:
        """Store an event for delivery at ``scheduled_at`` (default: now).

        Top-level string values that look like ObjectIds are stored as
        ObjectIds. Errors are not retried.

        Args:
            payload: Event data with string keys.
            scheduled_at: Earliest delivery time. A future time defers the event.

        Returns:
            The id assigned to the stored record.

        Raises:
            TypeError: If payload is not a mapping with string keys.
            StorageUnavailableError: If the store cannot be reached.
            StorageWriteError: If the insert fails.
        """
        record = EventRecord.new(
            payload, scheduled_at if scheduled_at is not None else self._clock()
        )
        await self._connect()

        try:
            event_id = await self.store.insert_one(record.to_document())
        except StorageError as e:
            self._log.error(f"Failed to enqueue event: {e}", extra={"error": str(e)})
            raise

        self._log.debug(
            "Enqueued event",
            extra={"event_id": event_id, "scheduled_at": record.scheduled_at},
        )
        return event_id

    async def start_polling(
        self,
        handler: BatchHandler,
        interval: float = DEFAULT_INTERVAL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        handler_timeout: float | None = None,
    ) -> Poller:
        """Connect, then start delivering due events to ``handler``.

        The handler receives a list of ``EventRecord`` ordered by scheduled
        time, oldest first, and must call ``remove_event`` for each record it
        has finished with. Records it leaves are delivered again.

        Only one poller should run per collection across all processes.

        Returns:
            The running Poller; call ``stop()`` on it (or ``close()`` on the
            queue) to stop polling.

        Raises:
            StorageUnavailableError: If the store cannot be reached.
        """
        poller = Poller(
            self.store,
            handler,
            interval=interval,
            batch_size=batch_size,
            handler_timeout=handler_timeout,
            clock=self._clock,
            logger=get_logger("grattis.poller", self._log_level),
        )
        await self._connect()
        poller.start()
        self._pollers.append(poller)
        return poller

    async def remove_event(self, event_id: ObjectId | str) -> None:
        """Delete a processed event. Unknown ids are ignored.

        Raises:
            ValueError: If ``event_id`` is not a valid ObjectId.
            StorageUnavailableError: If the store cannot be reached.
            StorageWriteError: If the delete fails.
        """
        if not isinstance(event_id, ObjectId):
            # ObjectId(None) would mint a fresh id, so only strings are accepted
            if not isinstance(event_id, str) or not ObjectId.is_valid(event_id):
                raise ValueError(f"Invalid event id: {event_id!r}")
            event_id = ObjectId(event_id)

        await self._connect()
        deleted = await self.store.delete_one({"_id": event_id})
        if not deleted:
            self._log.debug("Event already removed", extra={"event_id": event_id})

    async def close(self) -> None:
        """Stop every poller started by this queue and close the store."""
        for poller in self._pollers:
            await poller.stop()
        self._pollers.clear()
        await self.store.close()

    async def __aenter__(self) -> "EventQueue":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
