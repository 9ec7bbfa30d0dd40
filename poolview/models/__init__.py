"""Pool, feed and quote models."""

from poolview.models.pool import (
    AnchorToken,
    ConverterAndAnchor,
    ConverterKind,
    FixedRatioPool,
    Pool,
    PoolContainer,
    PoolToken,
    ReserveFeed,
    ReserveToken,
    WeightedPool,
)
from poolview.models.quotes import DepositQuote, SwapQuote, ViewAmount, WithdrawQuote
from poolview.models.types import Address, is_valid_address, normalize_address

__all__ = [
    "Address",
    "AnchorToken",
    "ConverterAndAnchor",
    "ConverterKind",
    "DepositQuote",
    "FixedRatioPool",
    "Pool",
    "PoolContainer",
    "PoolToken",
    "ReserveFeed",
    "ReserveToken",
    "SwapQuote",
    "ViewAmount",
    "WeightedPool",
    "WithdrawQuote",
    "is_valid_address",
    "normalize_address",
]
