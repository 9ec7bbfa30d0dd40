"""Slippage estimation against a probe trade."""

from decimal import Decimal

from poolview.constants import SLIPPAGE_PROBE_FRACTION
from poolview.errors import SlippageDirectionError


def calculate_slippage(slippage_less_rate: Decimal, slippaged_rate: Decimal) -> Decimal:
    """Fractional slippage of a trade rate against a clean baseline rate.

    Args:
        slippage_less_rate: Rate of the probe trade (output per unit input)
        slippaged_rate: Rate of the user's trade

    Returns:
        |clean - dirty| / clean

    Raises:
        SlippageDirectionError: If the user's rate beats the probe rate
    """
    if slippaged_rate > slippage_less_rate:
        raise SlippageDirectionError(
            f"Rates are bad: trade rate {slippaged_rate} exceeds probe rate {slippage_less_rate}"
        )
    if slippage_less_rate <= 0:
        raise SlippageDirectionError(f"Probe rate must be positive, got {slippage_less_rate}")
    return abs(slippage_less_rate - slippaged_rate) / slippage_less_rate


def probe_amount(
    source_balance: Decimal,
    user_amount: Decimal,
    fraction: Decimal = SLIPPAGE_PROBE_FRACTION,
) -> Decimal | None:
    """Probe trade size, or None when it would not be smaller than the user's trade."""
    probe = source_balance * fraction
    if probe <= 0 or probe >= user_amount:
        return None
    return probe


__all__ = ["calculate_slippage", "probe_amount"]
