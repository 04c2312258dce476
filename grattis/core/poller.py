"""Poller that delivers due events to a batch handler on a fixed interval.

Each tick launches one poll cycle:
- Skip the cycle if the previous one is still running
- Query due records, oldest first, up to ``batch_size``
- Hand the batch to the handler and wait for it

The poller never deletes or marks records. Completion is the handler's job
(see ``EventQueue.remove_event``); anything it leaves behind is delivered
again on the next tick.

IMPORTANT: the single-flight guard is process-local. Run exactly one poller
per collection, otherwise records are processed more than once.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from grattis.core.logging import get_logger
from grattis.core.record import DUE_SORT, EventRecord, due_filter, utcnow

if TYPE_CHECKING:
    from grattis.storage.base import DocumentStore

DEFAULT_INTERVAL = 60.0
DEFAULT_BATCH_SIZE = 10_000

BatchHandler = Callable[[list[EventRecord]], Awaitable[None] | None]


class CycleOutcome(Enum):
    """How a single poll cycle ended."""

    SKIPPED = "skipped"
    EMPTY = "empty"
    DELIVERED = "delivered"
    QUERY_FAILED = "query_failed"
    HANDLER_FAILED = "handler_failed"


@dataclass(frozen=True)
class CycleResult:
    """Result of one poll cycle.

    Attributes:
        outcome: How the cycle ended.
        batch_size: Number of records handed to the handler (0 if none).
        error: The exception caught for the failed outcomes.
    """

    outcome: CycleOutcome
    batch_size: int = 0
    error: Exception | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class PollerStats:
    """Statistics from a Poller."""

    ticks: int = 0
    cycles_skipped: int = 0
    empty_polls: int = 0
    batches_delivered: int = 0
    events_delivered: int = 0
    query_errors: int = 0
    handler_errors: int = 0


class Poller:
    """Cancellable periodic task delivering due event batches."""

    def __init__(
        self,
        store: "DocumentStore",
        handler: BatchHandler,
        interval: float = DEFAULT_INTERVAL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        handler_timeout: float | None = None,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the poller. Nothing runs until ``start``.

        Args:
            store: Document store holding the event collection.
            handler: Called with each non-empty batch; may be sync or async.
            interval: Seconds between ticks.
            batch_size: Maximum records per batch.
            handler_timeout: Seconds before a running handler is cancelled,
                None for no limit.
            clock: Returns the current UTC time used for the due query.
            logger: Logger for cycle results. Defaults to "grattis.poller".
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if handler_timeout is not None and handler_timeout <= 0:
            raise ValueError(f"handler_timeout must be positive or None, got {handler_timeout}")

        self.store = store
        self.handler = handler
        self.interval = interval
        self.batch_size = batch_size
        self.handler_timeout = handler_timeout
        self._clock = clock
        self._log = logger or get_logger("grattis.poller")
        self._guard = asyncio.Lock()
        self._timer: asyncio.Task[None] | None = None
        self._cycles: set[asyncio.Task[CycleResult]] = set()
        self._stats = PollerStats()

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def in_flight(self) -> bool:
        return self._guard.locked()

    def get_stats(self) -> PollerStats:
        """Return a copy of current statistics."""
        return PollerStats(**vars(self._stats))

    def start(self) -> None:
        """Start ticking. Must be called from a running event loop."""
        if self.running:
            raise RuntimeError("Poller is already running")
        self._timer = asyncio.create_task(self._tick_forever(), name="grattis-poller")
        self._log.info(
            f"Polling every {self.interval}s (batch size {self.batch_size})",
            extra={"interval": self.interval, "batch_size": self.batch_size},
        )

    async def stop(self) -> None:
        """Stop ticking and wait for an in-flight cycle to finish."""
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            try:
                await timer
            except asyncio.CancelledError:
                pass
        # A handler may stop its own poller; never wait on the calling cycle
        pending = self._cycles - {asyncio.current_task()}
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._log.info("Poller stopped")

    async def _tick_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self._stats.ticks += 1
            # The cycle runs as its own task so a slow handler does not delay ticks
            cycle = asyncio.create_task(self.poll_once())
            self._cycles.add(cycle)
            cycle.add_done_callback(self._cycles.discard)

    async def poll_once(self) -> CycleResult:
        """Run one poll cycle and return how it ended. Never raises."""
        # No await between the check and the acquire, so this is atomic
        if self._guard.locked():
            result = CycleResult(CycleOutcome.SKIPPED)
        else:
            async with self._guard:
                result = await self._cycle()
        self._record(result)
        return result

    async def _cycle(self) -> CycleResult:
        try:
            documents = await self.store.find(
                due_filter(self._clock()), sort=DUE_SORT, limit=self.batch_size
            )
            batch = [EventRecord.from_document(doc) for doc in documents]
        except Exception as e:
            return CycleResult(CycleOutcome.QUERY_FAILED, error=e)

        if not batch:
            return CycleResult(CycleOutcome.EMPTY)

        try:
            await self._invoke_handler(batch)
        except Exception as e:
            return CycleResult(CycleOutcome.HANDLER_FAILED, batch_size=len(batch), error=e)
        return CycleResult(CycleOutcome.DELIVERED, batch_size=len(batch))

    async def _invoke_handler(self, batch: list[EventRecord]) -> None:
        result = self.handler(batch)
        if not inspect.isawaitable(result):
            return
        if self.handler_timeout is None:
            await result
            return
        try:
            await asyncio.wait_for(result, timeout=self.handler_timeout)
        except TimeoutError:
            raise TimeoutError(f"Batch handler timed out after {self.handler_timeout}s")

    def _record(self, result: CycleResult) -> None:
        extra = {"outcome": result.outcome.value, "batch_size": result.batch_size}

        if result.outcome is CycleOutcome.SKIPPED:
            self._stats.cycles_skipped += 1
            self._log.debug("Poll skipped, previous cycle still running", extra=extra)
        elif result.outcome is CycleOutcome.EMPTY:
            self._stats.empty_polls += 1
            self._log.debug("No due events", extra=extra)
        elif result.outcome is CycleOutcome.DELIVERED:
            self._stats.batches_delivered += 1
            self._stats.events_delivered += result.batch_size
            self._log.info(f"Delivered batch of {result.batch_size} events", extra=extra)
        elif result.outcome is CycleOutcome.QUERY_FAILED:
            self._stats.query_errors += 1
            self._log.error(
                f"Due events query failed: {result.error}",
                extra={**extra, "error": str(result.error)},
                exc_info=result.error,
            )
        else:
            self._stats.handler_errors += 1
            self._log.error(
                f"Batch handler raised exception: {result.error}",
                extra={**extra, "error": str(result.error)},
                exc_info=result.error,
            )
