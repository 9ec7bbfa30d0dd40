"""Pydantic response models for the HTTP read surface.

Decimal values are serialized as strings so no precision is lost.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, Field, PlainSerializer

from poolview.models.pool import FixedRatioPool, Pool, ReserveFeed, ReserveToken, WeightedPool
from poolview.models.quotes import DepositQuote, SwapQuote, ViewAmount, WithdrawQuote
from poolview.models.types import Address

DecimalStr = Annotated[Decimal, PlainSerializer(lambda v: str(v), return_type=str)]


class ReserveView(BaseModel):
    contract: Address
    symbol: str
    decimals: int
    network: str = "ETH"

    @classmethod
    def from_model(cls, reserve: ReserveToken) -> ReserveView:
        return cls(
            contract=reserve.contract,
            symbol=reserve.symbol,
            decimals=reserve.decimals,
            network=reserve.network,
        )


class PoolTokenView(BaseModel):
    reserve_id: Address = Field(alias="reserveId")
    contract: Address
    symbol: str
    decimals: int

    model_config = {"populate_by_name": True}


class PoolView(BaseModel):
    """A loaded pool as returned by GET /pools.

    Balance fields are raw integer strings in reserve order. Fixed-ratio pools
    carry `balances`; weighted pools carry `stakedBalances`, `weights` and
    `poolTokens`.
    """

    id: Address
    kind: Literal["fixedRatio", "weighted"]
    converter: Address
    reserves: list[ReserveView]
    fee: DecimalStr
    owner: Address
    version: int
    network: str
    anchor_symbol: str = Field(alias="anchorSymbol")
    anchor_decimals: int = Field(alias="anchorDecimals")
    balances: list[str] | None = None
    staked_balances: list[str] | None = Field(default=None, alias="stakedBalances")
    weights: list[int] | None = None
    pool_tokens: list[PoolTokenView] | None = Field(default=None, alias="poolTokens")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_model(cls, pool: Pool) -> PoolView:
        common = {
            "id": pool.id,
            "converter": pool.contract,
            "reserves": [ReserveView.from_model(r) for r in pool.reserves],
            "fee": pool.fee,
            "owner": pool.owner,
            "version": pool.version,
            "network": pool.network,
            "anchor_symbol": pool.anchor.symbol,
            "anchor_decimals": pool.anchor.decimals,
        }
        if isinstance(pool, WeightedPool):
            return cls(
                kind="weighted",
                staked_balances=[str(b) for b in pool.staked_balances],
                weights=list(pool.weights),
                pool_tokens=[
                    PoolTokenView(
                        reserve_id=t.reserve_id,
                        contract=t.contract,
                        symbol=t.symbol,
                        decimals=t.decimals,
                    )
                    for t in pool.anchor.pool_tokens
                ],
                **common,
            )
        assert isinstance(pool, FixedRatioPool)
        return cls(kind="fixedRatio", balances=[str(b) for b in pool.balances], **common)


class FeedView(BaseModel):
    pool_id: Address = Field(alias="poolId")
    token_id: Address = Field(alias="tokenId")
    liq_depth: DecimalStr = Field(alias="liqDepth")
    cost_by_network_usd: DecimalStr | None = Field(default=None, alias="costByNetworkUsd")
    change_24h: DecimalStr | None = Field(default=None, alias="change24h")
    volume_24h: DecimalStr | None = Field(default=None, alias="volume24h")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_model(cls, feed: ReserveFeed) -> FeedView:
        return cls(
            pool_id=feed.pool_id,
            token_id=feed.token_id,
            liq_depth=feed.liq_depth,
            cost_by_network_usd=feed.cost_by_network_usd,
            change_24h=feed.change_24h,
            volume_24h=feed.volume_24h,
        )


class AmountView(BaseModel):
    id: Address
    amount: DecimalStr

    @classmethod
    def from_model(cls, amount: ViewAmount | None) -> AmountView | None:
        if amount is None:
            return None
        return cls(id=amount.id, amount=amount.amount)


class DepositQuoteView(BaseModel):
    share_of_pool: DecimalStr = Field(alias="shareOfPool")
    single_unit_costs: list[AmountView] = Field(alias="singleUnitCosts")
    opposing_amount: AmountView | None = Field(default=None, alias="opposingAmount")
    fund_reward: AmountView | None = Field(default=None, alias="fundReward")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_model(cls, quote: DepositQuote) -> DepositQuoteView:
        return cls(
            share_of_pool=quote.share_of_pool,
            single_unit_costs=[AmountView(id=c.id, amount=c.amount) for c in quote.single_unit_costs],
            opposing_amount=AmountView.from_model(quote.opposing_amount),
            fund_reward=AmountView.from_model(quote.fund_reward),
        )


class WithdrawQuoteView(BaseModel):
    share_of_pool: DecimalStr = Field(alias="shareOfPool")
    single_unit_costs: list[AmountView] = Field(alias="singleUnitCosts")
    opposing_amount: AmountView | None = Field(default=None, alias="opposingAmount")
    anchor_amount: AmountView | None = Field(default=None, alias="anchorAmount")
    expected_return: AmountView | None = Field(default=None, alias="expectedReturn")
    withdraw_fee: DecimalStr | None = Field(default=None, alias="withdrawFee")
    minimum_returns: list[AmountView] = Field(default_factory=list, alias="minimumReturns")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_model(cls, quote: WithdrawQuote) -> WithdrawQuoteView:
        return cls(
            share_of_pool=quote.share_of_pool,
            single_unit_costs=[AmountView(id=c.id, amount=c.amount) for c in quote.single_unit_costs],
            opposing_amount=AmountView.from_model(quote.opposing_amount),
            anchor_amount=AmountView.from_model(quote.anchor_amount),
            expected_return=AmountView.from_model(quote.expected_return),
            withdraw_fee=quote.withdraw_fee,
            minimum_returns=[AmountView(id=m.id, amount=m.amount) for m in quote.minimum_returns],
        )


class SwapQuoteView(BaseModel):
    amount: DecimalStr
    fee: DecimalStr
    path: list[Address]
    pools: list[Address]
    slippage: DecimalStr | None = None

    @classmethod
    def from_model(cls, quote: SwapQuote) -> SwapQuoteView:
        return cls(
            amount=quote.amount,
            fee=quote.fee,
            path=list(quote.path),
            pools=list(quote.pools),
            slippage=quote.slippage,
        )


class LoadResultView(BaseModel):
    """Outcome of a pool loading request."""

    loaded: list[Address]
    failed: list[Address] = Field(default_factory=list)
    total_pools: int = Field(alias="totalPools")

    model_config = {"populate_by_name": True}


__all__ = [
    "AmountView",
    "DepositQuoteView",
    "FeedView",
    "LoadResultView",
    "PoolTokenView",
    "PoolView",
    "ReserveView",
    "SwapQuoteView",
    "WithdrawQuoteView",
]
