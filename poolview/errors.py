"""Error classes for the pool aggregator.

Only batch exhaustion, quoting precondition violations and address
resolution timeouts are raised to callers. Per-call, per-field and per-pool
failures are logged and absorbed where they are detected.
"""


class PoolviewError(Exception):
    """Base error for aggregator operations."""

    pass


class AggregationError(PoolviewError):
    """A whole batch failed at the aggregation endpoint."""

    pass


class AggregationExhaustedError(AggregationError):
    """Every candidate chunk size failed for some part of a call list."""

    def __init__(self, chunk_sizes: tuple[int, ...], call_count: int) -> None:
        self.chunk_sizes = chunk_sizes
        self.call_count = call_count
        super().__init__(
            f"Ran out of chunk sizes to try ({call_count} calls, sizes {list(chunk_sizes)})"
        )


class CallGroupMismatchError(PoolviewError, ValueError):
    """A call group does not line up with its template.

    Raised for mixed origin addresses within one group, result counts that do
    not match the template field count, and templates whose query names differ
    between entities. These are programming errors, not chain state.
    """

    pass


class QuoteError(PoolviewError):
    """Base error for quoting precondition violations."""

    pass


class SelfConversionError(QuoteError):
    """Source and destination token are the same."""

    def __init__(self) -> None:
        super().__init__("Cannot convert a token to itself.")


class StakingCapExceededError(QuoteError):
    """A weighted pool deposit would push the staked balance above its cap."""

    def __init__(self, remaining: object | None = None) -> None:
        self.remaining = remaining
        if remaining is None:
            message = "This pool has reached the max liquidity cap"
        else:
            message = f"This pool is currently capped and can receive {remaining} additional tokens"
        super().__init__(message)


class LiquidationLimitError(QuoteError):
    """A weighted pool withdrawal exceeds the converter's liquidation limit."""

    def __init__(self) -> None:
        super().__init__("Withdrawal amount above current liquidation limit")


class SlippageDirectionError(QuoteError):
    """The user trade rate beat the probe rate, so slippage would be negative."""

    pass


class UnknownPoolError(QuoteError):
    """No pool with the requested id is loaded."""

    pass


class UnknownReserveError(QuoteError):
    """The requested token is not a reserve of the pool."""

    pass


class NoRouteError(QuoteError):
    """No loaded pool path connects the two tokens."""

    pass


class PoolVariantError(QuoteError):
    """The pool variant cannot answer this kind of quote."""

    pass


class DiscoveryError(PoolviewError):
    """The pool registry contracts could not be read."""

    pass


class ResolutionTimeoutError(PoolviewError):
    """A transaction receipt did not yield the expected address in time."""

    def __init__(self, tx_hash: str, attempts: int) -> None:
        self.tx_hash = tx_hash
        self.attempts = attempts
        super().__init__(
            f"Failed to find new address in decent time ({attempts} polls for {tx_hash})"
        )


__all__ = [
    "PoolviewError",
    "AggregationError",
    "AggregationExhaustedError",
    "CallGroupMismatchError",
    "QuoteError",
    "SelfConversionError",
    "StakingCapExceededError",
    "LiquidationLimitError",
    "SlippageDirectionError",
    "UnknownPoolError",
    "UnknownReserveError",
    "NoRouteError",
    "PoolVariantError",
    "DiscoveryError",
    "ResolutionTimeoutError",
]
