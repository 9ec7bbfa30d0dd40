"""Tests for PoolRegistry."""

from decimal import Decimal

import pytest

from poolview.models.pool import ReserveFeed
from poolview.pools.registry import PoolRegistry, PoolStatus
from tests.helpers import (
    ANCHOR_1,
    ANCHOR_2,
    ANCHOR_3,
    BNT,
    CONVERTER_3,
    DAI,
    LINK,
    make_fixed_pool,
    make_weighted_pool,
)


@pytest.fixture
def fixed_pool():
    return make_fixed_pool(reserves=(BNT, DAI), pool_id=ANCHOR_1)


@pytest.fixture
def weighted_pool():
    return make_weighted_pool(reserves=(LINK, BNT), pool_id=ANCHOR_2)


def feed(pool_id: str, token_id: str, depth: str = "10", **market: Decimal) -> ReserveFeed:
    return ReserveFeed(pool_id=pool_id, token_id=token_id, liq_depth=Decimal(depth), **market)


class TestMerge:
    """Tests for merge semantics."""

    def test_merge_adds_pools(self, registry: PoolRegistry, fixed_pool, weighted_pool) -> None:
        result = registry.merge([fixed_pool, weighted_pool])

        assert result.added == [fixed_pool, weighted_pool]
        assert registry.pool_count == 2
        assert registry.get_pool(ANCHOR_1.upper().replace("0X", "0x")) == fixed_pool

    def test_merge_is_idempotent(self, registry: PoolRegistry, fixed_pool) -> None:
        registry.merge([fixed_pool])
        result = registry.merge([fixed_pool])

        assert registry.pool_count == 1
        assert result.added == []
        assert result.duplicates == [fixed_pool]

    def test_duplicate_within_batch(self, registry: PoolRegistry, fixed_pool) -> None:
        result = registry.merge([fixed_pool, fixed_pool])
        assert registry.pool_count == 1
        assert len(result.duplicates) == 1

    def test_merge_order_does_not_matter(self, fixed_pool, weighted_pool) -> None:
        forward, backward = PoolRegistry(), PoolRegistry()
        forward.merge([fixed_pool])
        forward.merge([weighted_pool])
        backward.merge([weighted_pool])
        backward.merge([fixed_pool])

        assert {p.id for p in forward.pools} == {p.id for p in backward.pools}

    def test_first_seen_pool_wins(self, registry: PoolRegistry, fixed_pool) -> None:
        """A second copy of a stored id does not overwrite the first."""
        newer = make_fixed_pool(reserves=(BNT, DAI), balances=(1, 1), pool_id=ANCHOR_1)
        registry.merge([fixed_pool])
        registry.merge([newer])
        assert registry.get_pool(ANCHOR_1) == fixed_pool


class TestDecimalsGuard:
    """A reserve token must report the same decimals in every stored pool."""

    def test_conflict_with_stored_pool_rejected(self, registry: PoolRegistry, fixed_pool) -> None:
        registry.merge([fixed_pool])
        bad = make_fixed_pool(
            reserves=(DAI, LINK), decimals=(6, 18), pool_id=ANCHOR_3, converter=CONVERTER_3
        )

        result = registry.merge([bad])

        assert result.rejected == [bad]
        assert registry.pool_count == 1
        assert registry.get_pool(ANCHOR_3) is None
        assert registry.token_decimals(DAI) == 18

    def test_conflict_within_batch_rejects_both(self, registry: PoolRegistry, fixed_pool) -> None:
        bad = make_fixed_pool(
            reserves=(DAI, LINK), decimals=(6, 18), pool_id=ANCHOR_3, converter=CONVERTER_3
        )

        result = registry.merge([fixed_pool, bad])

        assert {p.id for p in result.rejected} == {ANCHOR_1, ANCHOR_3}
        assert registry.pool_count == 0

    def test_unrelated_pools_still_stored(self, registry: PoolRegistry, weighted_pool) -> None:
        bad_a = make_fixed_pool(reserves=(BNT, DAI), decimals=(18, 6), pool_id=ANCHOR_1)
        bad_b = make_fixed_pool(
            reserves=(DAI, BNT), decimals=(18, 18), pool_id=ANCHOR_3, converter=CONVERTER_3
        )

        result = registry.merge([bad_a, bad_b, weighted_pool])

        assert result.added == [weighted_pool]
        assert len(result.rejected) == 2


class TestFeeds:
    def test_feeds_stored_for_stored_pools_only(self, registry: PoolRegistry, fixed_pool) -> None:
        result = registry.merge([fixed_pool], [feed(ANCHOR_1, BNT), feed(ANCHOR_2, LINK)])

        assert result.feeds_stored == 1
        assert registry.get_feed(ANCHOR_1, BNT) is not None
        assert registry.get_feed(ANCHOR_2, LINK) is None

    def test_market_data_record_preferred(self, registry: PoolRegistry, fixed_pool) -> None:
        plain = feed(ANCHOR_1, BNT, "10")
        market = feed(ANCHOR_1, BNT, "11", change_24h=Decimal("0.1"), volume_24h=Decimal("5"))

        registry.merge([fixed_pool], [plain])
        registry.merge([], [market])
        assert registry.get_feed(ANCHOR_1, BNT) == market

        # A plain record never replaces a market record
        registry.merge([], [plain])
        assert registry.get_feed(ANCHOR_1, BNT) == market

    def test_one_feed_per_key(self, registry: PoolRegistry, fixed_pool) -> None:
        registry.merge([fixed_pool], [feed(ANCHOR_1, BNT), feed(ANCHOR_1, BNT, "20")])
        assert len(registry.feeds_for_pool(ANCHOR_1)) == 1
        assert registry.get_feed(ANCHOR_1, BNT).liq_depth == Decimal("10")


class TestReload:
    def test_reload_removes_pool_and_feeds(self, registry: PoolRegistry, fixed_pool) -> None:
        registry.merge([fixed_pool], [feed(ANCHOR_1, BNT), feed(ANCHOR_1, DAI)])

        removed = registry.reload([ANCHOR_1])

        assert removed == [fixed_pool]
        assert registry.pool_count == 0
        assert registry.feeds == []
        assert registry.status(ANCHOR_1) is PoolStatus.UNLOADED

    def test_reload_clears_failed(self, registry: PoolRegistry) -> None:
        registry.mark_failed([ANCHOR_3])
        registry.reload([ANCHOR_3])
        assert registry.status(ANCHOR_3) is PoolStatus.UNLOADED


class TestStatus:
    """Per-anchor discovery state."""

    def test_lifecycle_to_loaded(self, registry: PoolRegistry, fixed_pool) -> None:
        assert registry.status(ANCHOR_1) is PoolStatus.UNLOADED
        registry.mark_discovering([ANCHOR_1])
        assert registry.status(ANCHOR_1) is PoolStatus.DISCOVERING
        registry.merge([fixed_pool])
        assert registry.status(ANCHOR_1) is PoolStatus.LOADED

    def test_lifecycle_to_failed(self, registry: PoolRegistry) -> None:
        registry.mark_discovering([ANCHOR_3])
        registry.mark_failed([ANCHOR_3])
        assert registry.status(ANCHOR_3) is PoolStatus.FAILED_PERMANENTLY
        assert ANCHOR_3 in registry.failed_anchors

    def test_release_returns_to_unloaded(self, registry: PoolRegistry) -> None:
        registry.mark_discovering([ANCHOR_3])
        registry.release([ANCHOR_3])
        assert registry.status(ANCHOR_3) is PoolStatus.UNLOADED

    def test_loaded_pool_never_marked_failed(self, registry: PoolRegistry, fixed_pool) -> None:
        registry.merge([fixed_pool])
        registry.mark_failed([ANCHOR_1])
        assert registry.status(ANCHOR_1) is PoolStatus.LOADED

    def test_remaining(self, registry: PoolRegistry, fixed_pool) -> None:
        registry.merge([fixed_pool])
        registry.mark_discovering([ANCHOR_2])
        registry.mark_failed([ANCHOR_3])
        fresh = "0x5555555555555555555555555555555555555555"

        assert registry.remaining([ANCHOR_1, ANCHOR_2, ANCHOR_3, fresh]) == [fresh]


class TestReads:
    def test_pools_containing(self, registry: PoolRegistry, fixed_pool, weighted_pool) -> None:
        registry.merge([fixed_pool, weighted_pool])
        assert {p.id for p in registry.pools_containing(BNT)} == {ANCHOR_1, ANCHOR_2}
        assert [p.id for p in registry.pools_containing(DAI)] == [ANCHOR_1]

    def test_token_decimals_unknown(self, registry: PoolRegistry) -> None:
        assert registry.token_decimals(DAI) is None
