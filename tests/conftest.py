"""Pytest configuration, Hypothesis profiles and shared fixtures."""

import logging
from datetime import UTC, datetime, timedelta

import pytest
from hypothesis import settings

from grattis.core.queue import EventQueue
from grattis.storage.inmemory import InMemoryStore

# Register Hypothesis profiles
settings.register_profile("ci", max_examples=100)
settings.register_profile("dev", max_examples=20)

# Load dev profile by default, CI can override via --hypothesis-profile=ci
settings.load_profile("dev")

EPOCH = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock returning tz-aware UTC datetimes."""

    def __init__(self, now: datetime = EPOCH):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class LogCapture(logging.Handler):
    """Custom handler to capture log records for testing."""

    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    def messages(self) -> list[str]:
        return [r.getMessage() for r in self.records]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
async def queue(store: InMemoryStore, clock: FakeClock):
    """EventQueue over an in-memory store, closed after the test."""
    q = EventQueue(store, clock=clock)
    yield q
    await q.close()


def capture_logger(name: str):
    """Attach a LogCapture to a logger at DEBUG, returning (handler, restore)."""
    logger = logging.getLogger(name)
    handler = LogCapture()
    original_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)

    def restore() -> None:
        logger.removeHandler(handler)
        logger.setLevel(original_level)

    return handler, restore


@pytest.fixture
def poller_logs():
    handler, restore = capture_logger("grattis.poller")
    yield handler
    restore()


@pytest.fixture
def queue_logs():
    handler, restore = capture_logger("grattis.queue")
    yield handler
    restore()
