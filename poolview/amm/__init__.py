"""AMM math: feeds, liquidity quotes, conversion quotes and slippage."""

from poolview.amm.feeds import (
    ReferencePrice,
    ReferencePriceSource,
    StaticPriceSource,
    build_feeds,
    fixed_ratio_feeds,
    network_reserve_index,
    weighted_feeds,
)
from poolview.amm.liquidity import (
    quote_fixed_deposit,
    quote_fixed_withdraw,
    quote_weighted_deposit,
    quote_weighted_withdraw,
)
from poolview.amm.slippage import calculate_slippage, probe_amount
from poolview.amm.swap import find_routes, quote_swap
from poolview.amm.units import expand_token, shrink_token

__all__ = [
    "ReferencePrice",
    "ReferencePriceSource",
    "StaticPriceSource",
    "build_feeds",
    "calculate_slippage",
    "expand_token",
    "find_routes",
    "fixed_ratio_feeds",
    "network_reserve_index",
    "probe_amount",
    "quote_fixed_deposit",
    "quote_fixed_withdraw",
    "quote_swap",
    "quote_weighted_deposit",
    "quote_weighted_withdraw",
    "shrink_token",
    "weighted_feeds",
]
