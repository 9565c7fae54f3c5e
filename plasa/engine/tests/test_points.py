"""Unit tests for live, historical and frozen point balances."""
import pytest

from ...data_models.fact_schemas import EntityKind
from ...exceptions import MalformedFactError
from ...facts.base import account_field
from ...facts.demo_ledger import (
    ALICE,
    BOB,
    CAROL,
    DAVE,
    FIXED_DEADLINE,
    FOLLOW_AT,
    NOW,
    OPEN_DEADLINE,
    POINTS,
    build_demo_ledger,
)
from ..points import PointsEngine, as_balance
from ..snapshot import AnchorCache, AnchoredReader


class TestAsBalance:
    """Test balance validation."""

    def test_accepts_non_negative_int(self):
        assert as_balance(0, POINTS, "totalSupply") == 0
        assert as_balance(42, POINTS, "totalSupply") == 42

    @pytest.mark.parametrize("value", [-1, 1.5, "10", True, None])
    def test_rejects_everything_else(self, value):
        """Negative, fractional, textual, boolean and null balances are malformed."""
        with pytest.raises(MalformedFactError):
            as_balance(value, POINTS, "totalSupply")


class TestPointsEngine:
    """Test balance reads against the demo ledger."""

    def setup_method(self):
        self.cache = AnchorCache()
        self.engine = PointsEngine(self.cache)

    @pytest.mark.asyncio
    async def test_live_balance(self, ledger, policy):
        """The live balance is the one as of the pinned anchor."""
        reader = AnchoredReader(ledger, ledger.latest, policy)
        assert await self.engine.balance(reader, POINTS, ALICE) == 900
        assert await self.engine.balance(reader, POINTS, DAVE) == 0

    @pytest.mark.asyncio
    async def test_balance_at_past_timestamp(self, ledger, policy):
        """A historical balance reads the ledger as of that timestamp."""
        reader = AnchoredReader(ledger, ledger.latest, policy)
        assert await self.engine.balance_at(reader, POINTS, ALICE, FIXED_DEADLINE) == 500
        assert self.cache.frozen_count == 1

    @pytest.mark.asyncio
    async def test_frozen_balance_never_changes(self, ledger, policy):
        """Once frozen, later ledger writes do not change the snapshot."""
        reader = AnchoredReader(ledger, ledger.latest, policy)
        first = await self.engine.balance_at(reader, POINTS, ALICE, FIXED_DEADLINE)

        # Rewrite history as a misbehaving source would.
        ledger._history[("points", POINTS, account_field("balance", ALICE))] = [(1, 1), (3, 900)]
        later = AnchoredReader(ledger, ledger.latest, policy)
        second = await self.engine.balance_at(later, POINTS, ALICE, FIXED_DEADLINE)
        assert first == second == 500

    @pytest.mark.asyncio
    async def test_balance_at_pinned_timestamp_is_not_frozen(self, ledger, policy):
        """Anchors may still land on the pinned timestamp, so it is not frozen."""
        reader = AnchoredReader(ledger, ledger.latest, policy)
        assert await self.engine.balance_at(reader, POINTS, ALICE, NOW) == 900
        assert self.cache.frozen_count == 0

    @pytest.mark.asyncio
    async def test_future_timestamp_rejected(self, ledger, policy):
        """A balance after the pinned anchor cannot be read."""
        reader = AnchoredReader(ledger, ledger.latest, policy)
        with pytest.raises(ValueError):
            await self.engine.balance_at(reader, POINTS, ALICE, OPEN_DEADLINE)

    @pytest.mark.asyncio
    async def test_frozen_or_none_before_deadline(self, ledger, policy):
        """No snapshot exists until the deadline has passed."""
        reader = AnchoredReader(ledger, ledger.latest, policy)
        assert await self.engine.frozen_or_none(reader, POINTS, ALICE, OPEN_DEADLINE) is None
        assert await self.engine.frozen_or_none(reader, POINTS, BOB, FIXED_DEADLINE) == 300

    @pytest.mark.asyncio
    async def test_top_holders(self, ledger, policy):
        """Holders are ranked by balance, largest first."""
        reader = AnchoredReader(ledger, ledger.latest, policy)
        assert await self.engine.top_holders(reader, POINTS, 2) == [(ALICE, 900), (BOB, 300)]

    @pytest.mark.asyncio
    async def test_top_holders_ties_and_zero_balances(self, policy):
        """Ties break by address and empty balances are left out."""
        ledger = build_demo_ledger()
        ledger.commit(NOW, {(EntityKind.POINTS, POINTS, "holders"): {CAROL: 10, BOB: 10, DAVE: 0}})
        reader = AnchoredReader(ledger, ledger.latest, policy)
        assert await self.engine.top_holders(reader, POINTS) == [(BOB, 10), (CAROL, 10)]

    @pytest.mark.asyncio
    async def test_holder_keys_are_normalized(self, policy):
        """Mixed-case and padded holder keys resolve to the canonical address."""
        ledger = build_demo_ledger()
        ledger.commit(NOW, {(EntityKind.POINTS, POINTS, "holders"): {f" {BOB.upper().replace('0X', '0x')} ": 10}})
        reader = AnchoredReader(ledger, ledger.latest, policy)
        assert await self.engine.holders(reader, POINTS) == {BOB: 10}

    @pytest.mark.asyncio
    async def test_colliding_holder_keys_are_malformed(self, policy):
        """Two spellings of one address are rejected rather than collapsed."""
        ledger = build_demo_ledger()
        ledger.commit(NOW, {(EntityKind.POINTS, POINTS, "holders"): {BOB: 10, BOB.upper().replace("0X", "0x"): 20}})
        reader = AnchoredReader(ledger, ledger.latest, policy)
        with pytest.raises(MalformedFactError) as exc_info:
            await self.engine.holders(reader, POINTS)
        assert exc_info.value.field == "holders"

    @pytest.mark.asyncio
    async def test_total_supply_covers_holders(self, ledger, policy):
        """The demo ledger's supply equals the sum of its holders."""
        for anchor_height in (1, 2, 3, 4):
            reader = AnchoredReader(ledger, ledger._anchors[anchor_height], policy)
            holders = await self.engine.holders(reader, POINTS)
            assert sum(holders.values()) <= await self.engine.total_supply(reader, POINTS)

    @pytest.mark.asyncio
    async def test_historical_reader_before_follow(self, ledger, policy):
        """Reads pinned before the ballots see the genesis balances."""
        historical = await ledger.anchor_at(FOLLOW_AT - 1)
        reader = AnchoredReader(ledger, historical, policy)
        assert await self.engine.balance(reader, POINTS, ALICE) == 500
