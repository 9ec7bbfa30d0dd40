"""Deposit and withdrawal quoting for both pool variants.

All functions are pure: callers pass a pool carrying fresh balances plus any
converter-reported values the quote needs.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from poolview.amm.units import expand_token, round_down, shrink_token
from poolview.constants import FUND_REWARD_HAIRCUT, PPM, WITHDRAW_RETURN_BUFFER
from poolview.errors import (
    LiquidationLimitError,
    QuoteError,
    StakingCapExceededError,
    UnknownReserveError,
)
from poolview.models.pool import FixedRatioPool, ReserveToken, WeightedPool
from poolview.models.quotes import DepositQuote, ViewAmount, WithdrawQuote


@dataclass(frozen=True)
class _Sides:
    """A pool's reserves split into the side being quoted and the other side."""

    same: ReserveToken
    opposing: ReserveToken
    same_balance: Decimal
    opposing_balance: Decimal


def _fixed_sides(pool: FixedRatioPool, reserve_id: str) -> _Sides:
    index = pool.reserve_index(reserve_id)
    if index is None:
        raise UnknownReserveError(f"{reserve_id} is not a reserve of pool {pool.id}")
    other = 1 - index
    same_balance = shrink_token(pool.balances[index], pool.reserves[index].decimals)
    opposing_balance = shrink_token(pool.balances[other], pool.reserves[other].decimals)
    if same_balance <= 0 or opposing_balance <= 0:
        raise QuoteError(f"Pool {pool.id} has an empty reserve")
    return _Sides(pool.reserves[index], pool.reserves[other], same_balance, opposing_balance)


def _unit_costs(sides: _Sides) -> tuple[ViewAmount, ViewAmount]:
    return (
        ViewAmount(id=sides.same.contract, amount=sides.opposing_balance / sides.same_balance),
        ViewAmount(id=sides.opposing.contract, amount=sides.same_balance / sides.opposing_balance),
    )


def quote_fixed_deposit(
    pool: FixedRatioPool,
    reserve_id: str,
    amount: Decimal,
    supply: int,
    *,
    haircut: Decimal = FUND_REWARD_HAIRCUT,
) -> DepositQuote:
    """Quote a fund-style deposit into a fixed-ratio pool.

    Args:
        pool: Pool carrying current reserve balances
        reserve_id: Reserve the amount is denominated in
        amount: Decimal amount of that reserve
        supply: Raw anchor token supply
        haircut: Multiplier on the anchor tokens expected to be minted

    Returns:
        Opposite reserve requirement, expected fund reward, share of pool and
        single unit costs

    Raises:
        UnknownReserveError: If reserve_id is not in the pool
    """
    sides = _fixed_sides(pool, reserve_id)
    ratio = amount / sides.same_balance
    supply_dec = shrink_token(supply, pool.anchor.decimals)

    opposing = ratio * sides.opposing_balance
    fund_reward = round_down(ratio * supply_dec * haircut, pool.anchor.decimals)
    share_of_pool = fund_reward / supply_dec if supply_dec > 0 else Decimal(1)

    return DepositQuote(
        share_of_pool=share_of_pool,
        single_unit_costs=_unit_costs(sides),
        opposing_amount=ViewAmount(id=sides.opposing.contract, amount=opposing),
        fund_reward=ViewAmount(id=pool.anchor.contract, amount=fund_reward),
    )


def quote_fixed_withdraw(
    pool: FixedRatioPool,
    reserve_id: str,
    amount: Decimal,
    supply: int,
    *,
    buffer: Decimal = WITHDRAW_RETURN_BUFFER,
) -> WithdrawQuote:
    """Quote a liquidation from a fixed-ratio pool, sized by one reserve.

    Args:
        pool: Pool carrying current reserve balances
        reserve_id: Reserve the amount is denominated in
        amount: Decimal amount of that reserve to withdraw
        supply: Raw anchor token supply
        buffer: Multiplier turning expected returns into minimum returns

    Returns:
        Opposite reserve released, anchor tokens to burn, share of the reserve,
        single unit costs and minimum returns
    """
    sides = _fixed_sides(pool, reserve_id)
    ratio = amount / sides.same_balance
    supply_dec = shrink_token(supply, pool.anchor.decimals)

    opposing = ratio * sides.opposing_balance
    anchor_amount = round_down(ratio * supply_dec, pool.anchor.decimals)

    return WithdrawQuote(
        share_of_pool=ratio,
        single_unit_costs=_unit_costs(sides),
        opposing_amount=ViewAmount(id=sides.opposing.contract, amount=opposing),
        anchor_amount=ViewAmount(id=pool.anchor.contract, amount=anchor_amount),
        minimum_returns=(
            ViewAmount(id=sides.same.contract, amount=amount * buffer),
            ViewAmount(id=sides.opposing.contract, amount=opposing * buffer),
        ),
    )


@dataclass(frozen=True)
class _WeightedSide:
    reserve: ReserveToken
    staked_balance: int
    weight: int


def _weighted_sides(pool: WeightedPool) -> tuple[_WeightedSide, _WeightedSide]:
    """Reserves ordered by weight, bigger first."""
    if sum(pool.weights) != PPM:
        raise QuoteError("Was expecting reserve weights to equal 100%")
    sides = [
        _WeightedSide(reserve, staked, weight)
        for reserve, staked, weight in zip(
            pool.reserves, pool.staked_balances, pool.weights, strict=True
        )
    ]
    sides.sort(key=lambda side: side.weight, reverse=True)
    return sides[0], sides[1]


def _weighted_common(
    pool: WeightedPool, reserve_id: str, amount: Decimal
) -> tuple[_WeightedSide, Decimal, tuple[ViewAmount, ViewAmount]]:
    """Same-reserve side, share of pool and single unit costs."""
    bigger, smaller = _weighted_sides(pool)
    distance = Decimal(bigger.weight) / PPM - Decimal("0.5")

    adjusted_bigger = Decimal(bigger.staked_balance) / (1 - distance)
    adjusted_smaller = Decimal(smaller.staked_balance) / (1 + distance)
    unit_costs = (
        ViewAmount(
            id=bigger.reserve.contract,
            amount=shrink_token(adjusted_bigger, bigger.reserve.decimals),
        ),
        ViewAmount(
            id=smaller.reserve.contract,
            amount=shrink_token(adjusted_smaller, smaller.reserve.decimals),
        ),
    )

    index = pool.reserve_index(reserve_id)
    if index is None:
        raise UnknownReserveError(f"{reserve_id} is not a reserve of pool {pool.id}")
    same = bigger if bigger.reserve.contract == pool.reserves[index].contract else smaller

    staked = shrink_token(same.staked_balance, same.reserve.decimals)
    share_of_pool = amount / staked if staked > 0 else Decimal(1)
    return same, share_of_pool, unit_costs


def quote_weighted_deposit(
    pool: WeightedPool,
    reserve_id: str,
    amount: Decimal,
    *,
    max_staked_balance: int | None = None,
) -> DepositQuote:
    """Quote a single-reserve deposit into a weighted pool.

    Args:
        pool: Pool carrying current staked balances and weights
        reserve_id: Reserve being deposited
        amount: Decimal amount to deposit
        max_staked_balance: Raw staking cap for the reserve; None or 0 means uncapped

    Returns:
        Share of pool and single unit costs

    Raises:
        StakingCapExceededError: If the deposit would exceed the staking cap
    """
    same, share_of_pool, unit_costs = _weighted_common(pool, reserve_id, amount)

    if max_staked_balance:
        proposed = same.staked_balance + expand_token(amount, same.reserve.decimals)
        if proposed > max_staked_balance:
            remaining = max_staked_balance - same.staked_balance
            if remaining <= 0:
                raise StakingCapExceededError()
            raise StakingCapExceededError(shrink_token(remaining, same.reserve.decimals))

    return DepositQuote(share_of_pool=share_of_pool, single_unit_costs=unit_costs)


def quote_weighted_withdraw(
    pool: WeightedPool,
    reserve_id: str,
    amount: Decimal,
    *,
    return_and_fee: tuple[int, int],
    liquidation_limit: int,
    buffer: Decimal = WITHDRAW_RETURN_BUFFER,
) -> WithdrawQuote:
    """Quote a single-reserve withdrawal from a weighted pool.

    The pool token amount burned mirrors the reserve amount in the reserve's
    decimals.

    Args:
        pool: Pool carrying current staked balances and weights
        reserve_id: Reserve being withdrawn
        amount: Decimal amount of pool tokens to redeem
        return_and_fee: Raw (return, fee) reported by removeLiquidityReturnAndFee
        liquidation_limit: Raw liquidation limit for the reserve's pool token
        buffer: Multiplier turning the expected return into a minimum return

    Returns:
        Share of pool, single unit costs, expected return, fee and minimum return

    Raises:
        LiquidationLimitError: If the amount exceeds the liquidation limit
    """
    same, share_of_pool, unit_costs = _weighted_common(pool, reserve_id, amount)

    pool_token_amount = expand_token(amount, same.reserve.decimals)
    if pool_token_amount > liquidation_limit:
        raise LiquidationLimitError()

    return_amount, fee_amount = return_and_fee
    gross = return_amount + fee_amount
    withdraw_fee = Decimal(fee_amount) / gross if gross > 0 else Decimal(0)
    expected = shrink_token(return_amount, same.reserve.decimals)

    return WithdrawQuote(
        share_of_pool=share_of_pool,
        single_unit_costs=unit_costs,
        expected_return=ViewAmount(id=same.reserve.contract, amount=expected),
        withdraw_fee=withdraw_fee,
        minimum_returns=(ViewAmount(id=same.reserve.contract, amount=expected * buffer),),
    )


__all__ = [
    "quote_fixed_deposit",
    "quote_fixed_withdraw",
    "quote_weighted_deposit",
    "quote_weighted_withdraw",
]
