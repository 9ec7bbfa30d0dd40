"""Fresh on-chain pool state for quoting.

Registry pools carry balances as of assembly. Liquidity quotes re-read the
balances, supply and converter-reported limits they depend on.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal

import structlog

from poolview.amm.units import expand_token
from poolview.codec import abis
from poolview.codec.methods import ContractCall
from poolview.codec.templates import CallTemplate, DecodedRecord, decode_call_group
from poolview.errors import LiquidationLimitError, QuoteError, UnknownReserveError
from poolview.models.pool import FixedRatioPool, WeightedPool
from poolview.multicall.batcher import CallBatcher
from poolview.pools.assembler import reserve_balance_template, weighted_template

logger = structlog.get_logger()


@dataclass(frozen=True)
class FixedRatioState:
    pool: FixedRatioPool
    supply: int


@dataclass(frozen=True)
class WithdrawTerms:
    """Converter-reported terms for redeeming a weighted pool token."""

    return_amount: int
    fee_amount: int
    liquidation_limit: int


class PoolStateReader:
    """Reads current pool state through the call batcher."""

    def __init__(self, batcher: CallBatcher) -> None:
        self.batcher = batcher

    async def _read(self, target: str, template: CallTemplate) -> DecodedRecord:
        calls = [call.to_call(target) for call in template.values()]
        results = await self.batcher.send_in_chunks(calls)
        return decode_call_group(template, results)

    async def fixed_ratio_state(self, pool: FixedRatioPool) -> FixedRatioState:
        """Current reserve balances and anchor supply.

        Raises:
            QuoteError: If any value could not be read
        """
        balance_template = reserve_balance_template({pool.contract: pool.reserve_ids})(pool.contract)
        supply_template: CallTemplate = {"total_supply": abis.TOTAL_SUPPLY()}
        balance_results, supply_results = await self.batcher.send_groups(
            [
                [call.to_call(pool.contract) for call in balance_template.values()],
                [call.to_call(pool.anchor.contract) for call in supply_template.values()],
            ]
        )
        balances = decode_call_group(balance_template, balance_results)
        supply = decode_call_group(supply_template, supply_results)
        if not balances.has("balance_0", "balance_1") or not supply.has("total_supply"):
            logger.warning(
                "pool_state_unavailable",
                pool_id=pool.id,
                missing=balances.missing + supply.missing,
            )
            raise QuoteError(f"Could not read current balances for pool {pool.id}")
        fresh = replace(pool, balances=(balances["balance_0"], balances["balance_1"]))
        return FixedRatioState(pool=fresh, supply=supply["total_supply"])

    async def weighted_state(self, pool: WeightedPool) -> WeightedPool:
        """Pool with current staked balances and weights.

        Raises:
            QuoteError: If any value could not be read
        """
        template = weighted_template({pool.contract: pool.reserve_ids})(pool.contract)
        record = await self._read(pool.contract, template)
        if record.missing:
            logger.warning("pool_state_unavailable", pool_id=pool.id, missing=record.missing)
            raise QuoteError(f"Could not read current staking state for pool {pool.id}")

        by_token = dict(
            zip(
                (record["primary_reserve_token"], record["secondary_reserve_token"]),
                record["effective_reserve_weights"],
                strict=True,
            )
        )
        try:
            weights = (int(by_token[pool.reserve_ids[0]]), int(by_token[pool.reserve_ids[1]]))
        except KeyError:
            raise QuoteError(f"Pool {pool.id} reports reserves that do not match its record") from None
        return replace(
            pool,
            staked_balances=(record["staked_balance_0"], record["staked_balance_1"]),
            weights=weights,
        )

    async def staking_cap(self, pool: WeightedPool, reserve_id: str) -> int | None:
        """Raw max staked balance for a reserve, or None if staking is uncapped."""
        template: CallTemplate = {
            "enabled": abis.MAX_STAKED_BALANCE_ENABLED(),
            "cap": abis.MAX_STAKED_BALANCES(reserve_id),
        }
        record = await self._read(pool.contract, template)
        if not record.get("enabled", False):
            return None
        cap = record.get("cap", 0)
        return cap or None

    async def withdraw_terms(
        self, pool: WeightedPool, reserve_id: str, amount: Decimal
    ) -> WithdrawTerms:
        """Return, fee and liquidation limit for redeeming a reserve's pool token.

        Raises:
            UnknownReserveError: If the pool has no pool token for the reserve
            LiquidationLimitError: If the amount exceeds the liquidation limit
            QuoteError: If the converter could not answer
        """
        reserve = pool.get_reserve(reserve_id)
        pool_token = pool.anchor.pool_token_for(reserve_id)
        if reserve is None or pool_token is None:
            raise UnknownReserveError(f"{reserve_id} is not a reserve of pool {pool.id}")

        pool_token_amount = expand_token(amount, reserve.decimals)
        template: dict[str, ContractCall] = {
            "return_and_fee": abis.REMOVE_LIQUIDITY_RETURN_AND_FEE(
                pool_token.contract, pool_token_amount
            ),
            "liquidation_limit": abis.LIQUIDATION_LIMIT(pool_token.contract),
        }
        record = await self._read(pool.contract, template)
        limit = record.get("liquidation_limit")
        if limit is not None and pool_token_amount > limit:
            raise LiquidationLimitError()
        if record.missing:
            logger.warning("withdraw_terms_unavailable", pool_id=pool.id, missing=record.missing)
            raise QuoteError(f"Could not read withdrawal terms for pool {pool.id}")

        return_amount, fee_amount = record["return_and_fee"]
        return WithdrawTerms(
            return_amount=int(return_amount),
            fee_amount=int(fee_amount),
            liquidation_limit=int(record["liquidation_limit"]),
        )


__all__ = ["FixedRatioState", "WithdrawTerms", "PoolStateReader"]
