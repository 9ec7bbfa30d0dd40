"""Aggregator configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from poolview.constants import (
    DEFAULT_CHUNK_SIZES,
    FUND_REWARD_HAIRCUT,
    KNOWN_CONVERTER_VERSIONS,
    POOL_BATCH_SIZE,
    PPM,
    RECEIPT_POLL_ATTEMPTS,
    RECEIPT_POLL_INTERVAL_SECONDS,
    SLIPPAGE_PROBE_FRACTION,
    WITHDRAW_RETURN_BUFFER,
)


@dataclass(frozen=True)
class AggregatorConfig:
    """Centralized configuration for discovery, batching and quoting.

    Attributes:
        rpc_url: JSON-RPC endpoint used by the web3 collaborators
        chain_id: Chain whose deployment addresses are used
        chunk_sizes: Candidate chunk sizes for aggregated calls, tried largest first
        pool_batch_size: Anchor/converter pairs assembled per round
        fund_reward_haircut: Multiplier applied to fixed-ratio fund rewards
        withdraw_return_buffer: Multiplier applied to expected withdrawal returns
            to produce minimum returns
        slippage_probe_fraction: Fraction of the source reserve used as the probe trade
        receipt_poll_attempts: Receipt polls before address resolution gives up
        receipt_poll_interval: Seconds between receipt polls
        weight_total: Reserve weights of a weighted pool must sum to this (ppm)
        priority_pool_count: Pools loaded during initialise() before the rest
            are left for load_more_pools()
        version_overrides: Converter address -> protocol version for legacy
            converters that misreport their version
        reference_usd_price: Fixed USD price of the network token used for
            feeds; None leaves pools unpriced
    """

    rpc_url: str = "http://localhost:8545"
    chain_id: int = 1
    chunk_sizes: tuple[int, ...] = DEFAULT_CHUNK_SIZES
    pool_batch_size: int = POOL_BATCH_SIZE
    fund_reward_haircut: Decimal = FUND_REWARD_HAIRCUT
    withdraw_return_buffer: Decimal = WITHDRAW_RETURN_BUFFER
    slippage_probe_fraction: Decimal = SLIPPAGE_PROBE_FRACTION
    receipt_poll_attempts: int = RECEIPT_POLL_ATTEMPTS
    receipt_poll_interval: float = RECEIPT_POLL_INTERVAL_SECONDS
    weight_total: int = PPM
    priority_pool_count: int = 3
    version_overrides: Mapping[str, int] = field(
        default_factory=lambda: dict(KNOWN_CONVERTER_VERSIONS)
    )
    reference_usd_price: Decimal | None = None

    def __post_init__(self) -> None:
        if not self.chunk_sizes:
            raise ValueError("chunk_sizes must not be empty")
        if any(size <= 0 for size in self.chunk_sizes):
            raise ValueError(f"chunk_sizes must be positive: {self.chunk_sizes}")
        if list(self.chunk_sizes) != sorted(self.chunk_sizes, reverse=True):
            raise ValueError(f"chunk_sizes must be descending: {self.chunk_sizes}")
        if self.pool_batch_size <= 0:
            raise ValueError(f"pool_batch_size must be positive: {self.pool_batch_size}")
        if self.receipt_poll_attempts <= 0:
            raise ValueError(
                f"receipt_poll_attempts must be positive: {self.receipt_poll_attempts}"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AggregatorConfig:
        """Build a configuration from POOLVIEW_* environment variables.

        Unset variables keep their defaults.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            The configuration
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}

        if "POOLVIEW_RPC_URL" in env:
            kwargs["rpc_url"] = env["POOLVIEW_RPC_URL"]
        if "POOLVIEW_CHAIN_ID" in env:
            kwargs["chain_id"] = int(env["POOLVIEW_CHAIN_ID"])
        if "POOLVIEW_CHUNK_SIZES" in env:
            kwargs["chunk_sizes"] = tuple(
                int(part) for part in env["POOLVIEW_CHUNK_SIZES"].split(",") if part.strip()
            )
        if "POOLVIEW_POOL_BATCH_SIZE" in env:
            kwargs["pool_batch_size"] = int(env["POOLVIEW_POOL_BATCH_SIZE"])
        if "POOLVIEW_FUND_REWARD_HAIRCUT" in env:
            kwargs["fund_reward_haircut"] = Decimal(env["POOLVIEW_FUND_REWARD_HAIRCUT"])
        if "POOLVIEW_WITHDRAW_BUFFER" in env:
            kwargs["withdraw_return_buffer"] = Decimal(env["POOLVIEW_WITHDRAW_BUFFER"])
        if "POOLVIEW_PROBE_FRACTION" in env:
            kwargs["slippage_probe_fraction"] = Decimal(env["POOLVIEW_PROBE_FRACTION"])
        if "POOLVIEW_RECEIPT_POLL_ATTEMPTS" in env:
            kwargs["receipt_poll_attempts"] = int(env["POOLVIEW_RECEIPT_POLL_ATTEMPTS"])
        if "POOLVIEW_RECEIPT_POLL_INTERVAL" in env:
            kwargs["receipt_poll_interval"] = float(env["POOLVIEW_RECEIPT_POLL_INTERVAL"])
        if "POOLVIEW_PRIORITY_POOLS" in env:
            kwargs["priority_pool_count"] = int(env["POOLVIEW_PRIORITY_POOLS"])
        if "POOLVIEW_REFERENCE_USD_PRICE" in env:
            kwargs["reference_usd_price"] = Decimal(env["POOLVIEW_REFERENCE_USD_PRICE"])

        return cls(**kwargs)  # type: ignore[arg-type]


# Default configuration instance
DEFAULT_CONFIG = AggregatorConfig()


__all__ = ["AggregatorConfig", "DEFAULT_CONFIG"]
