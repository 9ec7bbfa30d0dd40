"""Price and liquidity-depth feeds for assembled pools.

Every feed is priced through the pool's network reserve (a configured network
token), whose USD price comes from a reference price source. Pools without a
network reserve, or with no usable reference price, produce no feeds.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

import structlog

from poolview.amm.units import shrink_token
from poolview.constants import NETWORK_TOKENS, PPM, USD_PEGGED_NETWORK_TOKENS
from poolview.models.pool import FixedRatioPool, Pool, ReserveFeed, ReserveToken, WeightedPool

logger = structlog.get_logger()


@dataclass(frozen=True)
class ReferencePrice:
    """USD price of the network reference token, with optional market data."""

    usd_price: Decimal
    change_24h: Decimal | None = None
    volume_24h: Decimal | None = None


class ReferencePriceSource(Protocol):
    """Protocol for reference price sources."""

    async def get_reference_price(self) -> ReferencePrice | None:
        """Get the current network token price, or None if unavailable."""
        ...


class StaticPriceSource:
    """Price source returning a fixed price; None means no price is available."""

    def __init__(self, price: ReferencePrice | None = None):
        self.price = price
        self.calls = 0

    async def get_reference_price(self) -> ReferencePrice | None:
        self.calls += 1
        return self.price


def network_reserve_index(
    reserves: tuple[ReserveToken, ReserveToken],
    network_tokens: Iterable[str] = NETWORK_TOKENS,
) -> int | None:
    """Index of the reserve that prices the pool, or None.

    Network tokens are tried in order, so a pool holding two of them is
    priced through the earlier one.
    """
    for token in network_tokens:
        for i, reserve in enumerate(reserves):
            if reserve.contract == token:
                return i
    return None


def _network_price(network_token: str, reference: ReferencePrice | None) -> Decimal | None:
    if network_token in USD_PEGGED_NETWORK_TOKENS:
        return Decimal(1)
    if reference is None:
        return None
    return reference.usd_price


def _market_fields(network_token: str, reference: ReferencePrice | None) -> dict[str, Decimal | None]:
    if reference is None or network_token in USD_PEGGED_NETWORK_TOKENS:
        return {}
    return {"change_24h": reference.change_24h, "volume_24h": reference.volume_24h}


def fixed_ratio_feeds(pool: FixedRatioPool, reference: ReferencePrice | None) -> list[ReserveFeed]:
    """Feeds for a fixed-ratio pool from its reserve balances.

    Depth counts both sides at the network side's value, so it is the network
    amount times price times two. The token side costs network/token times price.

    Args:
        pool: The pool, with current balances
        reference: Reference price of the network token

    Returns:
        One feed per reserve, or an empty list if the pool cannot be priced
    """
    net_index = network_reserve_index(pool.reserves)
    if net_index is None:
        logger.debug("pool_feed_skipped", pool_id=pool.id, reason="no_network_reserve")
        return []
    token_index = 1 - net_index
    network_reserve = pool.reserves[net_index]
    token_reserve = pool.reserves[token_index]

    price = _network_price(network_reserve.contract, reference)
    if price is None:
        logger.debug("pool_feed_skipped", pool_id=pool.id, reason="no_reference_price")
        return []

    net_amount = shrink_token(pool.balances[net_index], network_reserve.decimals)
    token_amount = shrink_token(pool.balances[token_index], token_reserve.decimals)
    if net_amount <= 0 or token_amount <= 0:
        logger.debug("pool_feed_skipped", pool_id=pool.id, reason="empty_reserve")
        return []

    liq_depth = net_amount * price * 2
    return [
        ReserveFeed(
            pool_id=pool.id,
            token_id=network_reserve.contract,
            liq_depth=liq_depth,
            cost_by_network_usd=price,
            **_market_fields(network_reserve.contract, reference),
        ),
        ReserveFeed(
            pool_id=pool.id,
            token_id=token_reserve.contract,
            liq_depth=liq_depth,
            cost_by_network_usd=(net_amount / token_amount) * price,
        ),
    ]


def weighted_feeds(pool: WeightedPool, reference: ReferencePrice | None) -> list[ReserveFeed]:
    """Feeds for a weighted pool from staked balances and weights.

    The network side's depth divided by its weight fraction gives the whole
    pool's depth; the other side holds the remainder.

    Args:
        pool: The pool, with current staked balances and weights
        reference: Reference price of the network token

    Returns:
        One feed per reserve, or an empty list if the pool cannot be priced
    """
    net_index = network_reserve_index(pool.reserves)
    if net_index is None:
        logger.debug("pool_feed_skipped", pool_id=pool.id, reason="no_network_reserve")
        return []
    primary_index = 1 - net_index
    network_reserve = pool.reserves[net_index]
    primary_reserve = pool.reserves[primary_index]

    price = _network_price(network_reserve.contract, reference)
    if price is None:
        logger.debug("pool_feed_skipped", pool_id=pool.id, reason="no_reference_price")
        return []

    net_weight = Decimal(pool.weights[net_index]) / PPM
    net_amount = shrink_token(pool.staked_balances[net_index], network_reserve.decimals)
    primary_amount = shrink_token(pool.staked_balances[primary_index], primary_reserve.decimals)
    if net_weight <= 0 or net_amount <= 0 or primary_amount <= 0:
        logger.debug("pool_feed_skipped", pool_id=pool.id, reason="empty_reserve")
        return []

    secondary_depth = net_amount * price
    whole_depth = secondary_depth / net_weight
    primary_depth = whole_depth - secondary_depth

    return [
        ReserveFeed(
            pool_id=pool.id,
            token_id=network_reserve.contract,
            liq_depth=secondary_depth,
            cost_by_network_usd=price,
            **_market_fields(network_reserve.contract, reference),
        ),
        ReserveFeed(
            pool_id=pool.id,
            token_id=primary_reserve.contract,
            liq_depth=primary_depth,
            cost_by_network_usd=primary_depth / primary_amount,
        ),
    ]


def build_feeds(pools: Iterable[Pool], reference: ReferencePrice | None) -> list[ReserveFeed]:
    """Feeds for any mix of pool variants."""
    feeds: list[ReserveFeed] = []
    for pool in pools:
        match pool:
            case FixedRatioPool():
                feeds.extend(fixed_ratio_feeds(pool, reference))
            case WeightedPool():
                feeds.extend(weighted_feeds(pool, reference))
    return feeds


__all__ = [
    "ReferencePrice",
    "ReferencePriceSource",
    "StaticPriceSource",
    "network_reserve_index",
    "fixed_ratio_feeds",
    "weighted_feeds",
    "build_feeds",
]
