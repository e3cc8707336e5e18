"""Reward catalogue and redemption."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from gamebridge.errors import NotFoundError, ValidationError
from gamebridge.gamification.calculator import tier_with_floor
from gamebridge.gamification.schemas import PointSource, RewardOffer
from gamebridge.gamification.scoring import ScoringEngine
from gamebridge.store.base import REDEMPTIONS, REWARDS, Record

logger = logging.getLogger(__name__)


def discounted_cost(points_cost: int, discount_percent: int) -> int:
    return round(points_cost * (100 - discount_percent) / 100)


class RewardService:
    """Prices rewards by tier and redeems them against available points."""

    def __init__(self, scoring: ScoringEngine) -> None:
        self.scoring = scoring
        self.store = scoring.store

    def _discount_for(self, profile: Record) -> int:
        _, _, discount = tier_with_floor(profile["total_points"], profile["tier_floor"], self.scoring.tables)
        return discount

    async def available_rewards(self, user_id: int) -> list[RewardOffer]:
        """In-stock rewards priced with the user's tier discount, featured first."""
        profile = await self.scoring.ledger.find_profile(user_id)
        discount = self._discount_for(profile) if profile else 0

        rows = await self.store.query(REWARDS, {"is_available": True}, order_by=("-is_featured", "points_cost"))
        return [
            RewardOffer(
                id=row["id"],
                code=row["code"],
                name=row["name"],
                points_cost=discounted_cost(row["points_cost"], discount),
                original_cost=row["points_cost"],
                tier_discount=discount,
                stock_level=row["stock_level"],
                is_featured=row["is_featured"],
            )
            for row in rows
            if row["stock_level"] is None or row["stock_level"] > 0
        ]

    async def redeem_reward(self, user_id: int, reward_id: int) -> int:
        """Spend points on a reward and record a pending redemption.

        Returns the redemption id. The balance check and the deduction run
        under the user's lock; stock is claimed with a guarded decrement so
        concurrent redemptions by different users cannot oversell it.
        """
        reward = await self.store.get(REWARDS, reward_id)
        if reward is None:
            raise NotFoundError("reward", reward_id)
        if not reward["is_available"]:
            raise ValidationError(f"Reward {reward['code']} is not available")
        limited = reward["stock_level"] is not None
        if limited and reward["stock_level"] <= 0:
            raise ValidationError(f"Reward {reward['code']} is out of stock")

        async with self.scoring.locks.hold(user_id):
            profile = await self.scoring.ledger.load_profile(user_id)
            cost = discounted_cost(reward["points_cost"], self._discount_for(profile))
            if profile["available_points"] < cost:
                raise ValidationError(
                    f"Insufficient points: {profile['available_points']} available, {cost} required"
                )

            if limited and not await self.store.increment_where(
                REWARDS, reward_id, {"stock_level": -1}, {"stock_level__gt": 0},
            ):
                raise ValidationError(f"Reward {reward['code']} is out of stock")

            try:
                award = await self.scoring.add_points_unlocked(
                    user_id, -cost, PointSource.REWARD_REDEMPTION,
                    ref_id=reward_id, ref_type="Reward",
                    description=f"Redeemed: {reward['name']}",
                )
            except Exception:
                if limited:
                    await self.store.increment(REWARDS, reward_id, {"stock_level": 1})
                raise

            redemption_id = await self.store.insert(REDEMPTIONS, {
                "user_id": user_id,
                "reward_id": reward_id,
                "points_spent": cost,
                "redeemed_date": datetime.now(timezone.utc),
                "status": "Pending",
            })

        logger.info("User %s redeemed reward %s for %d points", user_id, reward["code"], cost)
        await self.scoring.complete_award(award)
        return redemption_id
