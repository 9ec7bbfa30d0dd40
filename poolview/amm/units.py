"""Conversions between raw token units (wei) and decimal amounts."""

from decimal import ROUND_DOWN, Decimal


def shrink_token(amount: int | str | Decimal, decimals: int) -> Decimal:
    """Convert a raw integer amount to a decimal amount.

    Example: shrink_token(1_500_000, 6) == Decimal("1.5")
    """
    return Decimal(amount).scaleb(-decimals)


def expand_token(amount: int | str | Decimal, decimals: int) -> int:
    """Convert a decimal amount to raw integer units, rounding down."""
    return int(Decimal(amount).scaleb(decimals).to_integral_value(rounding=ROUND_DOWN))


def round_down(amount: Decimal, decimals: int) -> Decimal:
    """Truncate a decimal amount to what a token with `decimals` can represent."""
    return shrink_token(expand_token(amount, decimals), decimals)


__all__ = ["shrink_token", "expand_token", "round_down"]
