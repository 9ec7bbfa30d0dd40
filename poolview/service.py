"""Consumer-facing query surface over the pool registry.

PoolService wires discovery, assembly and the registry together and answers
pool, feed and quote queries. Liquidity quotes re-read the state they depend
on before running the quote math; swap quotes use registry balances.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from decimal import Decimal

import structlog
from web3 import AsyncWeb3

from poolview.amm.feeds import ReferencePrice, ReferencePriceSource, StaticPriceSource
from poolview.amm.liquidity import (
    quote_fixed_deposit,
    quote_fixed_withdraw,
    quote_weighted_deposit,
    quote_weighted_withdraw,
)
from poolview.amm.swap import quote_swap
from poolview.codec import abis
from poolview.codec.templates import decode_call_group
from poolview.config import DEFAULT_CONFIG, AggregatorConfig
from poolview.constants import get_network_variables
from poolview.errors import (
    AggregationError,
    DiscoveryError,
    PoolVariantError,
    UnknownPoolError,
    UnknownReserveError,
)
from poolview.models.pool import ConverterAndAnchor, FixedRatioPool, Pool, ReserveFeed, WeightedPool
from poolview.models.quotes import DepositQuote, SwapQuote, WithdrawQuote
from poolview.models.types import normalize_address
from poolview.multicall.batcher import CallBatcher
from poolview.multicall.endpoint import Web3AggregationEndpoint
from poolview.pools.assembler import AssembledPools, PoolAssembler
from poolview.pools.discovery import (
    AnchorConverterCache,
    ContractDiscoverySource,
    DiscoverySource,
    InMemoryAnchorConverterCache,
    fetch_pairs,
    load_cached_pairs,
    replay_if_difference,
    store_pairs,
)
from poolview.pools.receipts import ReceiptSource, Web3ReceiptSource, wait_for_new_address
from poolview.pools.registry import PoolRegistry
from poolview.pools.state import PoolStateReader
from poolview.pools.tokens import TokenRegistry

logger = structlog.get_logger()


class PoolService:
    """Discovers pools on demand and quotes against them.

    Args:
        batcher: Batcher used for every chain read
        discovery: Source of anchors and their converters
        registry: Registry to fill (a fresh one by default)
        tokens: Known reserve token metadata
        price_source: Reference price for feeds
        cache: Persisted anchor -> converter mapping
        receipts: Receipt source for track_new_pool()
        config: Aggregator configuration
    """

    def __init__(
        self,
        batcher: CallBatcher,
        discovery: DiscoverySource,
        *,
        registry: PoolRegistry | None = None,
        tokens: TokenRegistry | None = None,
        price_source: ReferencePriceSource | None = None,
        cache: AnchorConverterCache | None = None,
        receipts: ReceiptSource | None = None,
        config: AggregatorConfig = DEFAULT_CONFIG,
    ) -> None:
        self.batcher = batcher
        self.discovery = discovery
        self.registry = registry if registry is not None else PoolRegistry()
        self.cache = cache
        self.receipts = receipts
        self.config = config
        self.assembler = PoolAssembler(
            batcher,
            self.registry,
            tokens=tokens,
            price_source=price_source,
            config=config,
        )
        self.state = PoolStateReader(batcher)
        # Anchor -> converter for every anchor discovery has returned
        self._converters: dict[str, str] = {}
        self._initialised = False
        self._init_lock = asyncio.Lock()

    @property
    def initialised(self) -> bool:
        return self._initialised

    @property
    def known_anchors(self) -> list[str]:
        return list(self._converters)

    def _remember(self, pairs: Iterable[ConverterAndAnchor]) -> None:
        for pair in pairs:
            self._converters[pair.anchor] = pair.converter

    def _pairs_for(self, anchors: Iterable[str]) -> list[ConverterAndAnchor]:
        return [
            ConverterAndAnchor(anchor=anchor, converter=self._converters[anchor])
            for anchor in anchors
            if anchor in self._converters
        ]

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def initialise(self) -> AssembledPools:
        """Discover anchors and load the priority pools.

        When the cache covers every anchor, the cached pairs are used for the
        first load and the fresh mapping is fetched afterwards; anchors whose
        converter changed are reloaded.

        Returns:
            Outcome of the priority load

        Raises:
            DiscoveryError: If the registry contracts could not be read
            AggregationExhaustedError: If pool state could not be read at all
        """
        anchors = await self.discovery.fetch_anchor_addresses()
        cached = await load_cached_pairs(self.cache, anchors)
        if cached is None:
            pairs = await fetch_pairs(self.discovery, anchors)
            await store_pairs(self.cache, pairs)
        else:
            pairs = cached
        self._remember(pairs)

        outcome = await self.assembler.add_pools(pairs[: self.config.priority_pool_count])

        if cached is not None:
            fresh = await fetch_pairs(self.discovery, anchors)
            self._converters = {}
            self._remember(fresh)
            await replay_if_difference(self.assembler, self.cache, cached, fresh)

        self._initialised = True
        logger.info(
            "service_initialised",
            anchors=len(anchors),
            from_cache=cached is not None,
            pools=self.registry.pool_count,
        )
        return outcome

    async def ensure_initialised(self) -> None:
        """Run initialise() once, however many callers are waiting."""
        async with self._init_lock:
            if not self._initialised:
                await self.initialise()

    async def load_more_pools(self) -> AssembledPools:
        """Assemble every known anchor that is not loaded, loading or failed."""
        remaining = self.registry.remaining(self._converters)
        logger.info("load_more_pools", remaining=len(remaining))
        return await self.assembler.add_pools(self._pairs_for(remaining))

    async def load_pools_containing(self, token_id: str) -> list[Pool]:
        """Assemble every pool holding the token and return them.

        Raises:
            DiscoveryError: If the converter registry could not be read
        """
        anchors = [
            normalize_address(a) for a in await self.discovery.fetch_anchors_containing(token_id)
        ]
        unknown = [a for a in anchors if a not in self._converters]
        if unknown:
            self._remember(await fetch_pairs(self.discovery, unknown))
        await self.assembler.add_pools(self._pairs_for(self.registry.remaining(anchors)))
        return self.registry.pools_containing(token_id)

    async def reload_pools(self, pairs: Iterable[ConverterAndAnchor]) -> AssembledPools:
        pairs = [pair.normalized() for pair in pairs]
        self._remember(pairs)
        return await self.assembler.reload_pools(pairs)

    async def track_new_pool(self, tx_hash: str) -> AssembledPools:
        """Resolve the converter a transaction deployed and assemble its pool.

        Raises:
            DiscoveryError: If no receipt source is configured or the new
                converter reports no anchor
            ResolutionTimeoutError: If the receipt did not arrive in time
        """
        if self.receipts is None:
            raise DiscoveryError("No receipt source configured")
        converter = await wait_for_new_address(
            self.receipts,
            tx_hash,
            attempts=self.config.receipt_poll_attempts,
            interval=self.config.receipt_poll_interval,
        )

        template = {"anchor": abis.ANCHOR()}
        try:
            results = await self.batcher.send_in_chunks([abis.ANCHOR().to_call(converter)])
        except AggregationError as e:
            raise DiscoveryError(f"Could not read anchor of {converter}: {e}") from e
        anchor = decode_call_group(template, results).get("anchor")
        if anchor is None:
            raise DiscoveryError(f"Converter {converter} reports no anchor")

        pair = ConverterAndAnchor(anchor=anchor, converter=converter).normalized()
        self._remember([pair])
        await store_pairs(self.cache, self._pairs_for(self._converters))
        return await self.assembler.add_pools([pair])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_pools(self) -> list[Pool]:
        return self.registry.pools

    def get_pool(self, pool_id: str) -> Pool:
        pool = self.registry.get_pool(pool_id)
        if pool is None:
            raise UnknownPoolError(f"Pool {pool_id} is not loaded")
        return pool

    def get_feed(self, pool_id: str, token_id: str) -> ReserveFeed | None:
        """Feed for one reserve of a loaded pool, or None if it has no feed.

        Raises:
            UnknownPoolError: If the pool is not loaded
            UnknownReserveError: If the token is not a reserve of the pool
        """
        pool = self.get_pool(pool_id)
        if pool.get_reserve(token_id) is None:
            raise UnknownReserveError(f"{token_id} is not a reserve of pool {pool.id}")
        return self.registry.get_feed(pool.id, token_id)

    def _pool_with_reserve(self, pool_id: str, reserve_id: str) -> Pool:
        pool = self.get_pool(pool_id)
        if pool.get_reserve(reserve_id) is None:
            raise UnknownReserveError(f"{reserve_id} is not a reserve of pool {pool.id}")
        return pool

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    async def quote_deposit(self, pool_id: str, reserve_id: str, amount: Decimal) -> DepositQuote:
        """Quote depositing `amount` of one reserve into a pool.

        Raises:
            UnknownPoolError: If the pool is not loaded
            UnknownReserveError: If reserve_id is not a reserve of the pool
            StakingCapExceededError: If a weighted reserve's staking cap is hit
            QuoteError: If current pool state could not be read
        """
        reserve_id = normalize_address(reserve_id)
        pool = self._pool_with_reserve(pool_id, reserve_id)
        match pool:
            case FixedRatioPool():
                state = await self.state.fixed_ratio_state(pool)
                return quote_fixed_deposit(
                    state.pool,
                    reserve_id,
                    amount,
                    state.supply,
                    haircut=self.config.fund_reward_haircut,
                )
            case WeightedPool():
                fresh = await self.state.weighted_state(pool)
                cap = await self.state.staking_cap(fresh, reserve_id)
                return quote_weighted_deposit(fresh, reserve_id, amount, max_staked_balance=cap)
        raise PoolVariantError(f"Pool {pool.id} has an unsupported variant")

    async def quote_withdraw(self, pool_id: str, reserve_id: str, amount: Decimal) -> WithdrawQuote:
        """Quote withdrawing `amount` of one reserve from a pool.

        Raises:
            UnknownPoolError: If the pool is not loaded
            UnknownReserveError: If reserve_id is not a reserve of the pool
            LiquidationLimitError: If a weighted withdrawal exceeds the limit
            QuoteError: If current pool state could not be read
        """
        reserve_id = normalize_address(reserve_id)
        pool = self._pool_with_reserve(pool_id, reserve_id)
        match pool:
            case FixedRatioPool():
                state = await self.state.fixed_ratio_state(pool)
                return quote_fixed_withdraw(
                    state.pool,
                    reserve_id,
                    amount,
                    state.supply,
                    buffer=self.config.withdraw_return_buffer,
                )
            case WeightedPool():
                fresh = await self.state.weighted_state(pool)
                terms = await self.state.withdraw_terms(fresh, reserve_id, amount)
                return quote_weighted_withdraw(
                    fresh,
                    reserve_id,
                    amount,
                    return_and_fee=(terms.return_amount, terms.fee_amount),
                    liquidation_limit=terms.liquidation_limit,
                    buffer=self.config.withdraw_return_buffer,
                )
        raise PoolVariantError(f"Pool {pool.id} has an unsupported variant")

    async def quote_swap(self, from_id: str, to_id: str, amount: Decimal) -> SwapQuote:
        """Quote converting between two tokens over loaded pools.

        Raises:
            SelfConversionError: If both tokens are the same
            NoRouteError: If no loaded pools connect the tokens
            SlippageDirectionError: If the probe rate is worse than the quoted rate
        """
        return quote_swap(
            self.registry.pools,
            from_id,
            to_id,
            amount,
            probe_fraction=self.config.slippage_probe_fraction,
        )


def build_service(config: AggregatorConfig = DEFAULT_CONFIG) -> PoolService:
    """Create a service reading from the configured RPC endpoint.

    Args:
        config: Aggregator configuration; chain_id selects deployment addresses

    Returns:
        An uninitialised PoolService
    """
    network = get_network_variables(config.chain_id)
    w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.rpc_url))
    batcher = CallBatcher(Web3AggregationEndpoint(w3, network.multicall), config.chunk_sizes)

    price_source = None
    if config.reference_usd_price is not None:
        price_source = StaticPriceSource(ReferencePrice(usd_price=config.reference_usd_price))
    else:
        logger.info("reference_price_disabled", reason="POOLVIEW_REFERENCE_USD_PRICE not set")

    logger.info("service_configured", network=network.name, rpc_url=config.rpc_url[:50])
    return PoolService(
        batcher,
        ContractDiscoverySource(batcher, network.contract_registry),
        price_source=price_source,
        cache=InMemoryAnchorConverterCache(),
        receipts=Web3ReceiptSource(w3),
        config=config,
    )


_default_service: PoolService | None = None


def get_default_service() -> PoolService:
    """Process-wide service built from POOLVIEW_* environment variables."""
    global _default_service
    if _default_service is None:
        _default_service = build_service(AggregatorConfig.from_env())
    return _default_service


__all__ = ["PoolService", "build_service", "get_default_service"]
