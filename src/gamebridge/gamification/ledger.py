"""Profile aggregate and point ledger access over the record store."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from gamebridge.errors import DuplicateRecordError, NotFoundError
from gamebridge.store.base import LEDGER, PROFILES, Record, RecordStore

logger = logging.getLogger(__name__)


class ProfileLedger:
    """Reads and writes the per-user profile and its append-only ledger."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def find_profile(self, user_id: int) -> Record | None:
        return await self.store.first(PROFILES, {"user_id": user_id})

    async def find_profile_by_email(self, user_email: str) -> Record | None:
        if not user_email:
            return None
        return await self.store.first(PROFILES, {"user_email": user_email})

    async def load_profile(self, user_id: int) -> Record:
        """Fetch a profile, raising NotFoundError if the user has none."""
        profile = await self.find_profile(user_id)
        if profile is None:
            raise NotFoundError("profile", user_id)
        return profile

    async def get_or_create_profile(
        self,
        user_id: int,
        user_email: str = "",
        display_name: str = "",
        now: datetime | None = None,
    ) -> Record:
        """Get or lazily create the running-totals profile for a user."""
        profile = await self.find_profile(user_id)
        if profile is not None:
            return profile

        if now is None:
            now = datetime.now(timezone.utc)
        try:
            await self.store.insert(PROFILES, {
                "user_id": user_id,
                "user_email": user_email,
                "display_name": display_name,
                "created_at": now,
                "updated_at": now,
            })
        except DuplicateRecordError:
            # Another request created it first
            logger.debug("Profile for user %s created concurrently", user_id)
        return await self.load_profile(user_id)

    async def apply(
        self,
        profile: Record,
        deltas: Mapping[str, int],
        values: Mapping[str, Any] | None = None,
    ) -> None:
        """Apply counter deltas and field overwrites as one atomic write."""
        await self.store.increment(PROFILES, profile["id"], deltas, values)

    async def append_entry(self, entry: Mapping[str, Any]) -> int:
        return await self.store.insert(LEDGER, entry)

    async def list_entries(
        self,
        user_id: int,
        limit: int | None = None,
        since: datetime | None = None,
    ) -> list[Record]:
        """Ledger entries for a user, newest first."""
        filters: dict[str, Any] = {"user_id": user_id}
        if since is not None:
            filters["timestamp__gte"] = since
        return await self.store.query(LEDGER, filters, order_by=("-timestamp", "-id"), limit=limit)

    async def sum_points(
        self,
        user_id: int,
        source: str | None = None,
        since: datetime | None = None,
    ) -> int:
        filters: dict[str, Any] = {"user_id": user_id}
        if source is not None:
            filters["source"] = source
        if since is not None:
            filters["timestamp__gte"] = since
        return sum(row["points"] for row in await self.store.query(LEDGER, filters))

    async def user_rank(self, user_id: int) -> int:
        """1 + number of users with strictly more total points."""
        profile = await self.load_profile(user_id)
        ahead = await self.store.count(PROFILES, {"total_points__gt": profile["total_points"]})
        return ahead + 1
