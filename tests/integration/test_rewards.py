"""Reward pricing and redemption."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from gamebridge.errors import NotFoundError, StoreUnavailableError, ValidationError
from gamebridge.gamification.rewards import RewardService, discounted_cost
from gamebridge.store.base import LEDGER, REDEMPTIONS, REWARDS


@pytest.fixture
def rewards(scoring) -> RewardService:
    return RewardService(scoring)


@pytest.fixture
def make_reward(store):
    async def _make(code: str, points_cost: int, **fields) -> int:
        return await store.insert(REWARDS, {"code": code, "name": code.title(), "points_cost": points_cost, **fields})

    return _make


def test_discounted_cost():
    assert discounted_cost(500, 0) == 500
    assert discounted_cost(500, 5) == 475
    assert discounted_cost(999, 10) == 899


class TestRedeemReward:
    """redeem_reward"""

    @pytest.mark.asyncio
    async def test_bronze_redemption(self, rewards, store, make_profile, make_reward):
        await make_profile(1, total_points=2000, available_points=2000, lifetime_points=2000)
        reward_id = await make_reward("lunch", 500, stock_level=2)

        redemption_id = await rewards.redeem_reward(1, reward_id)

        profile = await rewards.scoring.ledger.load_profile(1)
        assert profile["available_points"] == 1500
        assert profile["lifetime_points"] == 2000
        assert (await store.get(REWARDS, reward_id))["stock_level"] == 1
        redemption = await store.get(REDEMPTIONS, redemption_id)
        assert redemption["status"] == "Pending"
        assert redemption["points_spent"] == 500
        [entry] = await store.query(LEDGER, {"user_id": 1})
        assert entry["points"] == -500
        assert entry["source"] == "Reward Redemption"
        assert entry["source_description"] == "Redeemed: Lunch"

    @pytest.mark.asyncio
    async def test_silver_discount(self, rewards, make_profile, make_reward):
        await make_profile(1, total_points=2500, available_points=3000)
        reward_id = await make_reward("lunch", 500)

        await rewards.redeem_reward(1, reward_id)

        assert (await rewards.scoring.ledger.load_profile(1))["available_points"] == 2525

    @pytest.mark.asyncio
    async def test_unlimited_stock_is_untouched(self, rewards, store, make_profile, make_reward):
        await make_profile(1, total_points=200, available_points=200)
        reward_id = await make_reward("sticker", 50)
        await rewards.redeem_reward(1, reward_id)
        assert (await store.get(REWARDS, reward_id))["stock_level"] is None

    @pytest.mark.asyncio
    async def test_insufficient_points(self, rewards, store, make_profile, make_reward):
        await make_profile(1, total_points=100, available_points=100)
        reward_id = await make_reward("lunch", 500)

        with pytest.raises(ValidationError, match="Insufficient points"):
            await rewards.redeem_reward(1, reward_id)

        assert (await rewards.scoring.ledger.load_profile(1))["available_points"] == 100
        assert await store.count(REDEMPTIONS) == 0
        assert await store.count(LEDGER) == 0

    @pytest.mark.asyncio
    async def test_out_of_stock(self, rewards, make_profile, make_reward):
        await make_profile(1, total_points=2000, available_points=2000)
        reward_id = await make_reward("lunch", 500, stock_level=0)
        with pytest.raises(ValidationError, match="out of stock"):
            await rewards.redeem_reward(1, reward_id)

    @pytest.mark.asyncio
    async def test_unavailable(self, rewards, make_profile, make_reward):
        await make_profile(1, total_points=2000, available_points=2000)
        reward_id = await make_reward("lunch", 500, is_available=False)
        with pytest.raises(ValidationError, match="not available"):
            await rewards.redeem_reward(1, reward_id)

    @pytest.mark.asyncio
    async def test_unknown_reward(self, rewards, make_profile):
        await make_profile(1)
        with pytest.raises(NotFoundError):
            await rewards.redeem_reward(1, 404)

    @pytest.mark.asyncio
    async def test_unknown_user(self, rewards, make_reward):
        reward_id = await make_reward("lunch", 500)
        with pytest.raises(NotFoundError):
            await rewards.redeem_reward(99, reward_id)


class TestAvailableRewards:
    """Catalogue priced for one user."""

    @pytest.mark.asyncio
    async def test_featured_first_and_in_stock_only(self, rewards, make_profile, make_reward):
        await make_profile(1, total_points=2500)
        await make_reward("mug", 300, stock_level=5)
        await make_reward("hoodie", 800, is_featured=True)
        await make_reward("gone", 100, stock_level=0)
        await make_reward("hidden", 50, is_available=False)

        offers = await rewards.available_rewards(1)

        assert [(o.code, o.points_cost, o.original_cost) for o in offers] == [
            ("hoodie", 760, 800),
            ("mug", 285, 300),
        ]
        assert all(o.tier_discount == 5 for o in offers)

    @pytest.mark.asyncio
    async def test_no_profile_pays_full_price(self, rewards, make_reward):
        await make_reward("mug", 300)
        [offer] = await rewards.available_rewards(42)
        assert offer.points_cost == 300
        assert offer.tier_discount == 0


class TestConcurrentRedemptions:
    """Balance and stock hold under parallel redemptions."""

    @pytest.mark.asyncio
    async def test_same_user_cannot_overspend(self, rewards, store, make_profile, make_reward):
        await make_profile(1, total_points=500, available_points=500)
        reward_id = await make_reward("lunch", 500, stock_level=2)

        results = await asyncio.gather(
            rewards.redeem_reward(1, reward_id),
            rewards.redeem_reward(1, reward_id),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], ValidationError)
        assert "Insufficient points" in str(failures[0])
        assert (await rewards.scoring.ledger.load_profile(1))["available_points"] == 0
        assert (await store.get(REWARDS, reward_id))["stock_level"] == 1
        assert await store.count(REDEMPTIONS) == 1

    @pytest.mark.asyncio
    async def test_last_unit_goes_to_one_user(self, rewards, store, make_profile, make_reward):
        await make_profile(1, total_points=900, available_points=900)
        await make_profile(2, total_points=900, available_points=900)
        reward_id = await make_reward("lunch", 500, stock_level=1)

        results = await asyncio.gather(
            rewards.redeem_reward(1, reward_id),
            rewards.redeem_reward(2, reward_id),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert "out of stock" in str(failures[0])
        assert (await store.get(REWARDS, reward_id))["stock_level"] == 0
        assert await store.count(REDEMPTIONS) == 1
        balances = sorted(
            [(await rewards.scoring.ledger.load_profile(user_id))["available_points"] for user_id in (1, 2)]
        )
        assert balances == [400, 900]

    @pytest.mark.asyncio
    async def test_failed_deduction_returns_stock(self, rewards, store, make_profile, make_reward):
        await make_profile(1, total_points=900, available_points=900)
        reward_id = await make_reward("lunch", 500, stock_level=1)
        rewards.scoring.add_points_unlocked = AsyncMock(side_effect=StoreUnavailableError("profiles down"))

        with pytest.raises(StoreUnavailableError):
            await rewards.redeem_reward(1, reward_id)

        assert (await store.get(REWARDS, reward_id))["stock_level"] == 1
        assert await store.count(REDEMPTIONS) == 0

    @pytest.mark.asyncio
    async def test_lock_is_released_after_redemption(self, rewards, make_profile, make_reward):
        await make_profile(1, total_points=900, available_points=900)
        reward_id = await make_reward("lunch", 500)
        await rewards.redeem_reward(1, reward_id)
        assert len(rewards.scoring.locks) == 0
