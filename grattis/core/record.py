"""Event record model and the due-events query."""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from bson import ObjectId
from pydantic import BaseModel, Field, field_validator

from grattis.core.normalize import normalize

# Oldest first; _id breaks ties between records scheduled at the same instant
DUE_SORT: list[tuple[str, int]] = [("scheduledAt", 1), ("_id", 1)]


def utcnow() -> datetime:
    return datetime.now(UTC)


class EventRecord(BaseModel):
    """One queued event, as stored in the event collection.

    Records are immutable once built. Field names follow Python style;
    the stored document uses the aliases (``_id``, ``scheduledAt``,
    ``isWork``, ``isDone``).

    Attributes:
        id: ObjectId assigned by the store on insert, None before insert.
        value: The event payload.
        scheduled_at: UTC time before which the record is not due.
        is_work: Reserved "in progress" flag, False on insert.
        is_done: Reserved "completed" flag, False on insert.
    """

    id: ObjectId | None = Field(default=None, alias="_id")
    value: dict[str, Any] = Field(default_factory=dict)
    scheduled_at: datetime = Field(default_factory=utcnow, alias="scheduledAt")
    is_work: bool = Field(default=False, alias="isWork")
    is_done: bool = Field(default=False, alias="isDone")

    model_config = {
        "arbitrary_types_allowed": True,
        "extra": "ignore",
        "frozen": True,
        "populate_by_name": True,
    }

    @field_validator("scheduled_at")
    @classmethod
    def validate_scheduled_at(cls, v: datetime) -> datetime:
        """Treat naive datetimes as UTC and store everything in UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @classmethod
    def new(
        cls,
        payload: Mapping[str, Any],
        scheduled_at: datetime | None = None,
    ) -> "EventRecord":
        """Build a record ready for insert, normalizing the payload."""
        return cls(
            value=normalize(payload),
            scheduled_at=scheduled_at if scheduled_at is not None else utcnow(),
        )

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "EventRecord":
        return cls.model_validate(dict(document))

    def to_document(self) -> dict[str, Any]:
        """Return the document to store. ``_id`` is omitted until assigned."""
        if self.id is None:
            return self.model_dump(by_alias=True, exclude={"id"})
        return self.model_dump(by_alias=True)

    def is_due(self, now: datetime) -> bool:
        return self.scheduled_at < now and not self.is_work and not self.is_done


def due_filter(now: datetime) -> dict[str, Any]:
    """Query matching records that are due at ``now``."""
    return {
        "scheduledAt": {"$lt": now},
        "isWork": False,
        "isDone": False,
    }
