"""In-memory document store for development and testing."""

import copy
import operator
from typing import Any, Callable

from bson import ObjectId

from grattis.storage.base import SortSpec, StorageQueryError, StoreHealth

_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "$lt": operator.lt,
    "$lte": operator.le,
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$ne": operator.ne,
}

_MISSING = object()


def _match_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        for op, operand in condition.items():
            if op == "$in":
                if value is _MISSING or value not in operand:
                    return False
            elif op in _COMPARISONS:
                if value is _MISSING:
                    if op != "$ne":
                        return False
                    continue
                if not _COMPARISONS[op](value, operand):
                    return False
            else:
                raise StorageQueryError(f"Unsupported query operator: {op}")
        return True
    return value is not _MISSING and value == condition


def matches(document: dict[str, Any], filter: dict[str, Any]) -> bool:
    """Return True if ``document`` satisfies every clause of ``filter``."""
    try:
        return all(
            _match_condition(document.get(key, _MISSING), condition)
            for key, condition in filter.items()
        )
    except TypeError as e:
        raise StorageQueryError(f"Cannot evaluate filter {filter!r}: {e}", original=e) from e


def _sort_key(field: str) -> Callable[[dict[str, Any]], tuple]:
    # Missing and null values order before everything else
    def key(document: dict[str, Any]) -> tuple:
        value = document.get(field)
        return (0,) if value is None else (1, value)

    return key


class InMemoryStore:
    """Process-local collection of documents.

    Supports the subset of the query language the queue uses: equality,
    ``$lt``/``$lte``/``$gt``/``$gte``/``$ne``/``$in``, multi-key sort and
    limit. Ids are real ``ObjectId`` values so records look the same as
    those read back from MongoDB.

    Documents are copied on the way in and on the way out, so callers
    cannot mutate stored state. Nothing survives the process.
    """

    def __init__(self) -> None:
        self._documents: dict[ObjectId, dict[str, Any]] = {}
        self._connected = False
        self.connect_calls = 0

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self.connect_calls += 1
        self._connected = True

    async def insert_one(self, document: dict[str, Any]) -> ObjectId:
        stored = copy.deepcopy(document)
        event_id = stored.setdefault("_id", ObjectId())
        self._documents[event_id] = stored
        return event_id

    async def find(
        self,
        filter: dict[str, Any],
        sort: SortSpec | None = None,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        found = [doc for doc in self._documents.values() if matches(doc, filter)]
        # Stable sorts applied last key first give a multi-key ordering
        for field, direction in reversed(sort or []):
            try:
                found.sort(key=_sort_key(field), reverse=direction < 0)
            except TypeError as e:
                raise StorageQueryError(f"Cannot sort on {field!r}: {e}", original=e) from e
        if limit > 0:
            found = found[:limit]
        return [copy.deepcopy(doc) for doc in found]

    async def delete_one(self, filter: dict[str, Any]) -> int:
        for event_id, doc in self._documents.items():
            if matches(doc, filter):
                del self._documents[event_id]
                return 1
        return 0

    async def health(self) -> StoreHealth:
        return StoreHealth(
            healthy=True,
            latency_ms=0.0,
            details={"documents": len(self._documents), "connected": self._connected},
        )

    async def close(self) -> None:
        self._connected = False

    def __len__(self) -> int:
        return len(self._documents)
