"""Record store contract consumed by the engine.

The engine never talks to a database directly: it reads and writes plain dict
records in named collections. Filters are equality matches unless the key
carries an operator suffix (``points__gt``, ``user_id__in``, ...). ``order_by``
takes field names, with a leading ``-`` for descending order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

Record = dict[str, Any]

# Collection names
PROFILES = "profiles"
LEDGER = "ledger"
ACHIEVEMENTS = "achievements"
USER_ACHIEVEMENTS = "user_achievements"
ONBOARDING_PROGRESS = "onboarding_progress"
ENTERPRISE_LEADERBOARD = "enterprise_leaderboard"
REWARDS = "rewards"
REDEMPTIONS = "redemptions"

FILTER_OPERATORS = ("gt", "gte", "lt", "lte", "in", "ne")


def split_filter_key(key: str) -> tuple[str, str]:
    """Split ``points__gt`` into ``("points", "gt")``; plain keys mean equality."""
    field, sep, op = key.rpartition("__")
    if sep and op in FILTER_OPERATORS:
        return field, op
    return key, "eq"


class RecordStore(ABC):
    """Abstract base class for collection-oriented record stores."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Record]:
        """Return matching records, ordered and truncated as requested."""
        ...

    @abstractmethod
    async def get(self, collection: str, record_id: int) -> Record | None:
        """Return one record by id, or None."""
        ...

    @abstractmethod
    async def insert(self, collection: str, record: Mapping[str, Any]) -> int:
        """Insert a record and return its assigned id.

        Raises DuplicateRecordError when a uniqueness constraint rejects it.
        """
        ...

    @abstractmethod
    async def update(self, collection: str, record_id: int, values: Mapping[str, Any]) -> None:
        """Overwrite the given fields of one record."""
        ...

    @abstractmethod
    async def increment(
        self,
        collection: str,
        record_id: int,
        deltas: Mapping[str, int],
        values: Mapping[str, Any] | None = None,
    ) -> None:
        """Atomically add ``deltas`` to counters and overwrite ``values``."""
        ...

    @abstractmethod
    async def increment_where(
        self,
        collection: str,
        record_id: int,
        deltas: Mapping[str, int],
        guard: Mapping[str, Any],
    ) -> bool:
        """Atomically add ``deltas`` only while the record matches ``guard``.

        Returns False when the record is missing or the guard no longer holds.
        """
        ...

    @abstractmethod
    async def count(self, collection: str, filters: Mapping[str, Any] | None = None) -> int:
        """Count matching records."""
        ...

    async def first(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: Sequence[str] = (),
    ) -> Record | None:
        """Return the first matching record, or None."""
        rows = await self.query(collection, filters, order_by=order_by, limit=1)
        return rows[0] if rows else None
