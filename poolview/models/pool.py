"""Pool dataclasses.

Two pool variants are assembled from chain state:

- FixedRatioPool: a single supply-tracking anchor token over two implicitly
  50/50 weighted reserves.
- WeightedPool: a container anchor wrapping one pool token per reserve, with
  explicit reserve weights (ppm) and staked balances.

Consumers dispatch on the variant with match statements; see `Pool`.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TypeAlias

from poolview.models.types import normalize_address


class ConverterKind(str, Enum):
    """Classification of a converter from its type discriminator."""

    FIXED_RATIO = "fixed_ratio"
    WEIGHTED = "weighted"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ConverterAndAnchor:
    """A pool anchor paired with the converter serving it."""

    anchor: str
    converter: str

    def normalized(self) -> ConverterAndAnchor:
        return ConverterAndAnchor(
            anchor=normalize_address(self.anchor),
            converter=normalize_address(self.converter),
        )


@dataclass(frozen=True)
class ReserveToken:
    """A token held and traded by a pool.

    Attributes:
        contract: Token address (lowercase)
        symbol: Token symbol
        decimals: Token decimals; must agree across every pool holding the token
        network: Chain family label
    """

    contract: str
    symbol: str
    decimals: int
    network: str = "ETH"

    @property
    def id(self) -> str:
        return self.contract


@dataclass(frozen=True)
class AnchorToken:
    """Supply-tracking token of a fixed-ratio pool."""

    contract: str
    symbol: str
    decimals: int


@dataclass(frozen=True)
class PoolToken:
    """Ownership token a weighted pool issues for one of its reserves."""

    reserve_id: str
    contract: str
    symbol: str
    decimals: int


@dataclass(frozen=True)
class PoolContainer:
    """Container anchor of a weighted pool, wrapping one pool token per reserve."""

    contract: str
    symbol: str
    decimals: int
    pool_tokens: tuple[PoolToken, ...]

    def pool_token_for(self, reserve_id: str) -> PoolToken | None:
        reserve_lower = normalize_address(reserve_id)
        for pool_token in self.pool_tokens:
            if pool_token.reserve_id == reserve_lower:
                return pool_token
        return None


@dataclass(frozen=True)
class _PoolBase:
    """Fields shared by both pool variants.

    Attributes:
        id: Anchor address; the identity of the pool
        contract: Converter address serving reads for this pool
        reserves: Exactly two reserve tokens
        fee: Conversion fee as a decimal fraction (fee ppm / 1,000,000)
        owner: Converter owner address
        version: Converter protocol version
        network: Chain family label
    """

    id: str
    contract: str
    reserves: tuple[ReserveToken, ReserveToken]
    fee: Decimal
    owner: str
    version: int
    network: str

    def get_reserve(self, token: str) -> ReserveToken | None:
        """Get reserve for a specific token."""
        token_lower = normalize_address(token)
        for reserve in self.reserves:
            if reserve.contract == token_lower:
                return reserve
        return None

    def reserve_index(self, token: str) -> int | None:
        token_lower = normalize_address(token)
        for i, reserve in enumerate(self.reserves):
            if reserve.contract == token_lower:
                return i
        return None

    @property
    def reserve_ids(self) -> tuple[str, str]:
        return (self.reserves[0].contract, self.reserves[1].contract)


@dataclass(frozen=True)
class FixedRatioPool(_PoolBase):
    """Fixed-ratio pool tracked by reserve balances and one anchor supply.

    Attributes:
        anchor: The pool's supply-tracking anchor token
        balances: Raw reserve balances in reserve order, as of assembly
    """

    anchor: AnchorToken
    balances: tuple[int, int]


@dataclass(frozen=True)
class WeightedPool(_PoolBase):
    """Weighted pool with per-reserve staked balances and weights.

    Attributes:
        anchor: The container wrapping one pool token per reserve
        staked_balances: Raw staked balances in reserve order, as of assembly
        weights: Effective reserve weights in ppm, in reserve order; sum to 1,000,000
    """

    anchor: PoolContainer
    staked_balances: tuple[int, int]
    weights: tuple[int, int]


Pool: TypeAlias = FixedRatioPool | WeightedPool


@dataclass(frozen=True)
class ReserveFeed:
    """Price and depth feed for one reserve side of a pool.

    Attributes:
        pool_id: Anchor address of the pool
        token_id: Reserve token address
        liq_depth: USD value contributed by this side (or the pool, for
            fixed-ratio pools where both sides carry the whole depth)
        cost_by_network_usd: USD price of one unit of the token, if priced
        change_24h: 24h price change, when market data is available
        volume_24h: 24h volume, when market data is available
    """

    pool_id: str
    token_id: str
    liq_depth: Decimal
    cost_by_network_usd: Decimal | None = None
    change_24h: Decimal | None = None
    volume_24h: Decimal | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.pool_id, self.token_id)

    @property
    def has_market_data(self) -> bool:
        return self.change_24h is not None or self.volume_24h is not None


__all__ = [
    "ConverterKind",
    "ConverterAndAnchor",
    "ReserveToken",
    "AnchorToken",
    "PoolToken",
    "PoolContainer",
    "FixedRatioPool",
    "WeightedPool",
    "Pool",
    "ReserveFeed",
]
