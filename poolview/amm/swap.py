"""Conversion quoting over loaded pools.

Returns are computed locally from the balances the registry holds:

    out = to_balance * (1 - (from_balance / (from_balance + amount)) ^ (w_from / w_to))

with both weights equal for fixed-ratio pools, which reduces to
to_balance * amount / (from_balance + amount). The pool fee is taken from the
output. Routes are direct or go through one intermediate token.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

import structlog

from poolview.amm.slippage import calculate_slippage, probe_amount
from poolview.amm.units import shrink_token
from poolview.constants import SLIPPAGE_PROBE_FRACTION
from poolview.errors import NoRouteError, QuoteError, SelfConversionError
from poolview.models.pool import FixedRatioPool, Pool, WeightedPool
from poolview.models.quotes import SwapQuote
from poolview.models.types import normalize_address

logger = structlog.get_logger()


@dataclass(frozen=True)
class Hop:
    """One conversion through one pool."""

    pool: Pool
    source: str
    target: str


def _side(pool: Pool, token: str) -> tuple[Decimal, Decimal]:
    """Decimal balance and weight of one reserve."""
    index = pool.reserve_index(token)
    if index is None:
        raise QuoteError(f"{token} is not a reserve of pool {pool.id}")
    decimals = pool.reserves[index].decimals
    match pool:
        case FixedRatioPool():
            return shrink_token(pool.balances[index], decimals), Decimal(1)
        case WeightedPool():
            return shrink_token(pool.staked_balances[index], decimals), Decimal(pool.weights[index])
    raise TypeError(f"Unknown pool type: {type(pool)}")


def hop_return(hop: Hop, amount: Decimal, *, apply_fee: bool = True) -> Decimal:
    """Output of converting `amount` through one pool.

    Raises:
        QuoteError: If either reserve is empty
    """
    from_balance, from_weight = _side(hop.pool, hop.source)
    to_balance, to_weight = _side(hop.pool, hop.target)
    if from_balance <= 0 or to_balance <= 0:
        raise QuoteError(f"Pool {hop.pool.id} has an empty reserve")

    if from_weight == to_weight:
        gross = to_balance * amount / (from_balance + amount)
    else:
        base = from_balance / (from_balance + amount)
        gross = to_balance * (1 - base ** (from_weight / to_weight))

    if not apply_fee:
        return gross
    return gross * (1 - hop.pool.fee)


def route_return(route: list[Hop], amount: Decimal, *, apply_fee: bool = True) -> Decimal:
    for hop in route:
        amount = hop_return(hop, amount, apply_fee=apply_fee)
    return amount


def find_routes(pools: Iterable[Pool], source: str, target: str) -> list[list[Hop]]:
    """All direct and single-intermediate routes from source to target."""
    by_token: dict[str, list[Pool]] = defaultdict(list)
    for pool in pools:
        for reserve in pool.reserves:
            by_token[reserve.contract].append(pool)

    routes: list[list[Hop]] = []
    for first in by_token.get(source, []):
        middle = next(r.contract for r in first.reserves if r.contract != source)
        if middle == target:
            routes.append([Hop(first, source, target)])
            continue
        for second in by_token.get(middle, []):
            if second.id != first.id and second.get_reserve(target) is not None:
                routes.append([Hop(first, source, middle), Hop(second, middle, target)])
    return routes


def quote_swap(
    pools: Iterable[Pool],
    source: str,
    target: str,
    amount: Decimal,
    *,
    probe_fraction: Decimal = SLIPPAGE_PROBE_FRACTION,
) -> SwapQuote:
    """Quote converting `amount` of source into target over the best route.

    Slippage is the user's rate measured against a probe trade of
    probe_fraction of the source reserve. It is left as None when the probe
    would not be smaller than the user's amount.

    Raises:
        SelfConversionError: If source and target are the same token
        NoRouteError: If no loaded pool route connects them
        SlippageDirectionError: If the user's rate beats the probe rate
    """
    source = normalize_address(source)
    target = normalize_address(target)
    if source == target:
        raise SelfConversionError()
    if amount <= 0:
        raise QuoteError(f"Amount must be positive, got {amount}")

    routes = find_routes(pools, source, target)
    if not routes:
        raise NoRouteError(f"No pool route from {source} to {target}")

    quoted = []
    for route in routes:
        try:
            quoted.append((route_return(route, amount), route))
        except QuoteError as e:
            logger.debug("route_skipped", pools=[hop.pool.id for hop in route], error=str(e))
    if not quoted:
        raise NoRouteError(f"No liquid pool route from {source} to {target}")

    out, route = max(quoted, key=lambda item: item[0])
    fee = route_return(route, amount, apply_fee=False) - out

    slippage = None
    source_balance, _ = _side(route[0].pool, source)
    probe = probe_amount(source_balance, amount, probe_fraction)
    if probe is not None:
        clean_rate = route_return(route, probe) / probe
        slippage = calculate_slippage(clean_rate, out / amount)

    return SwapQuote(
        amount=out,
        fee=fee,
        path=(source, *(hop.target for hop in route)),
        pools=tuple(hop.pool.id for hop in route),
        slippage=slippage,
    )


__all__ = ["Hop", "hop_return", "route_return", "find_routes", "quote_swap"]
