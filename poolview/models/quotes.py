"""Quote result dataclasses returned by the AMM layer."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ViewAmount:
    """A token id and a decimal (already shrunk) amount."""

    id: str
    amount: Decimal


@dataclass(frozen=True)
class DepositQuote:
    """Result of quoting a single-sided deposit amount.

    Attributes:
        share_of_pool: Fraction of the pool the deposit represents
        single_unit_costs: Per reserve, the amount of the other reserve one unit costs
        opposing_amount: Amount of the other reserve required (fixed-ratio only)
        fund_reward: Anchor tokens expected to be minted, after the haircut
            (fixed-ratio only)
    """

    share_of_pool: Decimal
    single_unit_costs: tuple[ViewAmount, ...]
    opposing_amount: ViewAmount | None = None
    fund_reward: ViewAmount | None = None


@dataclass(frozen=True)
class WithdrawQuote:
    """Result of quoting a single-sided withdrawal amount.

    Attributes:
        share_of_pool: Fraction of the reserve being withdrawn
        single_unit_costs: Per reserve, the amount of the other reserve one unit costs
        opposing_amount: Amount of the other reserve released (fixed-ratio only)
        anchor_amount: Anchor tokens to burn (fixed-ratio only)
        expected_return: Converter-reported return net of fee (weighted only)
        withdraw_fee: Fee as a fraction of the gross return (weighted only)
        minimum_returns: Expected reserve returns scaled by the withdrawal buffer
    """

    share_of_pool: Decimal
    single_unit_costs: tuple[ViewAmount, ...]
    opposing_amount: ViewAmount | None = None
    anchor_amount: ViewAmount | None = None
    expected_return: ViewAmount | None = None
    withdraw_fee: Decimal | None = None
    minimum_returns: tuple[ViewAmount, ...] = ()


@dataclass(frozen=True)
class SwapQuote:
    """Result of quoting a conversion.

    Attributes:
        amount: Destination tokens received
        fee: Conversion fees paid, denominated in the destination token
        path: Token addresses visited, source first
        pools: Pool ids traversed, one per hop
        slippage: Fractional slippage versus the probe trade, if estimated
    """

    amount: Decimal
    fee: Decimal
    path: tuple[str, ...]
    pools: tuple[str, ...]
    slippage: Decimal | None = None


__all__ = ["ViewAmount", "DepositQuote", "WithdrawQuote", "SwapQuote"]
