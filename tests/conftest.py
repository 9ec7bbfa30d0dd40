"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest

from poolview.amm.feeds import ReferencePrice, StaticPriceSource
from poolview.config import AggregatorConfig
from poolview.pools.registry import PoolRegistry
from tests.helpers import (
    ANCHOR_1,
    ANCHOR_2,
    BNT,
    CONVERTER_1,
    CONVERTER_2,
    DAI,
    LINK,
    POOL_TOKEN_A,
    POOL_TOKEN_B,
    FakeChain,
)


@pytest.fixture
def chain() -> FakeChain:
    """Empty fake chain; every unregistered call reverts."""
    return FakeChain()


@pytest.fixture
def registry() -> PoolRegistry:
    return PoolRegistry()


@pytest.fixture
def reference_price() -> ReferencePrice:
    """Network token priced at $2.50 with market data."""
    return ReferencePrice(
        usd_price=Decimal("2.5"),
        change_24h=Decimal("-0.04"),
        volume_24h=Decimal("1200000"),
    )


@pytest.fixture
def price_source(reference_price: ReferencePrice) -> StaticPriceSource:
    return StaticPriceSource(reference_price)


@pytest.fixture
def config() -> AggregatorConfig:
    """Small chunk sizes so fallback paths are easy to reach."""
    return AggregatorConfig(chunk_sizes=(50, 10, 2), pool_batch_size=2, receipt_poll_interval=0)


@pytest.fixture
def two_pool_chain(chain: FakeChain) -> FakeChain:
    """A fixed-ratio BNT/DAI pool and a weighted LINK/BNT pool.

    - ANCHOR_1 / CONVERTER_1: BNT 1000, DAI 2000, supply 500
    - ANCHOR_2 / CONVERTER_2: LINK 400 staked at 50%, BNT 1000 staked at 50%
    """
    chain.add_token(BNT)
    chain.add_token(DAI)
    chain.add_token(LINK)
    chain.add_fixed_pool(
        ANCHOR_1,
        CONVERTER_1,
        (BNT, DAI),
        (1000 * 10**18, 2000 * 10**18),
        supply=500 * 10**18,
    )
    chain.add_weighted_pool(
        ANCHOR_2,
        CONVERTER_2,
        (LINK, BNT),
        (400 * 10**18, 1000 * 10**18),
        (500_000, 500_000),
        (POOL_TOKEN_A, POOL_TOKEN_B),
    )
    return chain
