"""Pool assembly from converter and anchor state.

Anchor/converter pairs are assembled in chunks, each in two batched rounds:

1. Converter metadata (owner, type, version, fee, connector tokens) and
   anchor metadata (symbol, decimals, pool tokens for containers).
2. Symbol/decimals for reserve and pool tokens not yet known, reserve
   balances for fixed-ratio pools, and staked balances, weights and pool
   tokens for weighted pools.

Candidates that are incomplete, unsupported, or structurally invalid are
dropped with a warning. Surviving pools and their feeds are merged into the
registry; anchors that produced no pool are marked failed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal

import structlog

from poolview.amm.feeds import ReferencePrice, ReferencePriceSource, build_feeds
from poolview.codec import abis
from poolview.codec.handlers import run_handlers, template_handler
from poolview.codec.templates import CallTemplate, DecodedRecord, TemplateFn
from poolview.config import DEFAULT_CONFIG, AggregatorConfig
from poolview.constants import CONVERTER_TYPE_FIXED_RATIO, CONVERTER_TYPE_WEIGHTED, PPM
from poolview.errors import AggregationExhaustedError
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
from poolview.models.types import normalize_address
from poolview.multicall.batcher import CallBatcher
from poolview.pools.registry import PoolRegistry
from poolview.pools.tokens import TokenRegistry

logger = structlog.get_logger()


# ----------------------------------------------------------------------
# Templates
# ----------------------------------------------------------------------


def converter_template(converter: str) -> CallTemplate:
    return {
        "owner": abis.OWNER(),
        "converter_type": abis.CONVERTER_TYPE(),
        "version": abis.VERSION(),
        "connector_token_count": abis.CONNECTOR_TOKEN_COUNT(),
        "conversion_fee": abis.CONVERSION_FEE(),
        "connector_token_0": abis.CONNECTOR_TOKENS(0),
        "connector_token_1": abis.CONNECTOR_TOKENS(1),
    }


def anchor_template(anchor: str) -> CallTemplate:
    # poolTokens() reverts on plain smart tokens
    return {
        "symbol": abis.SYMBOL(),
        "decimals": abis.DECIMALS(),
        "pool_tokens": abis.POOL_TOKENS(),
    }


def token_template(token: str) -> CallTemplate:
    return {"symbol": abis.SYMBOL(), "decimals": abis.DECIMALS()}


def reserve_balance_template(reserves: Mapping[str, tuple[str, str]]) -> TemplateFn:
    """Template over converters reading both connector balances."""

    def template(converter: str) -> CallTemplate:
        first, second = reserves[normalize_address(converter)]
        return {
            "balance_0": abis.GET_CONNECTOR_BALANCE(first),
            "balance_1": abis.GET_CONNECTOR_BALANCE(second),
        }

    return template


def weighted_template(reserves: Mapping[str, tuple[str, str]]) -> TemplateFn:
    """Template over weighted converters reading staking state."""

    def template(converter: str) -> CallTemplate:
        first, second = reserves[normalize_address(converter)]
        return {
            "primary_reserve_token": abis.PRIMARY_RESERVE_TOKEN(),
            "secondary_reserve_token": abis.SECONDARY_RESERVE_TOKEN(),
            "pool_token_0": abis.POOL_TOKEN(first),
            "pool_token_1": abis.POOL_TOKEN(second),
            "staked_balance_0": abis.RESERVE_STAKED_BALANCE(first),
            "staked_balance_1": abis.RESERVE_STAKED_BALANCE(second),
            "effective_reserve_weights": abis.EFFECTIVE_RESERVE_WEIGHTS(),
        }

    return template


# ----------------------------------------------------------------------
# Records
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class ConverterRecord:
    """Converter metadata needed to classify and build a pool."""

    converter: str
    owner: str
    version: int
    converter_type: int | None
    fee_ppm: int
    reserves: tuple[str, str]


@dataclass(frozen=True)
class AnchorRecord:
    """Anchor metadata; pool_tokens is None for plain smart tokens."""

    anchor: str
    symbol: str | None
    decimals: int | None
    pool_tokens: tuple[str, ...] | None


@dataclass(frozen=True)
class Candidate:
    pair: ConverterAndAnchor
    kind: ConverterKind
    converter: ConverterRecord
    anchor: AnchorRecord


@dataclass
class AssembledPools:
    """Outcome of one add_pools() call.

    Attributes:
        pools: Pools newly stored in the registry
        feeds: Feeds computed for those pools
        failed: Anchors that produced no stored pool
    """

    pools: list[Pool] = field(default_factory=list)
    feeds: list[ReserveFeed] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def classify_converter(converter_type: int | None) -> ConverterKind:
    """Map a converterType() value to a pool variant.

    Converters too old to report a type are fixed-ratio.
    """
    if converter_type is None or converter_type in CONVERTER_TYPE_FIXED_RATIO:
        return ConverterKind.FIXED_RATIO
    if converter_type == CONVERTER_TYPE_WEIGHTED:
        return ConverterKind.WEIGHTED
    return ConverterKind.UNSUPPORTED


def build_anchor_record(record: DecodedRecord) -> AnchorRecord:
    pool_tokens = record.get("pool_tokens")
    return AnchorRecord(
        anchor=record.origin,
        symbol=record.get("symbol"),
        decimals=record.get("decimals"),
        pool_tokens=tuple(pool_tokens) if pool_tokens else None,
    )


def _dedupe(pairs: Iterable[ConverterAndAnchor]) -> list[ConverterAndAnchor]:
    seen: set[str] = set()
    out = []
    for pair in pairs:
        pair = pair.normalized()
        if pair.anchor not in seen:
            seen.add(pair.anchor)
            out.append(pair)
    return out


def _drop(pair: ConverterAndAnchor, reason: str, **context: object) -> None:
    logger.warning(
        "pool_dropped",
        anchor=pair.anchor,
        converter=pair.converter,
        reason=reason,
        **context,
    )


# ----------------------------------------------------------------------
# Assembler
# ----------------------------------------------------------------------


class PoolAssembler:
    """Resolves pool topology for anchor/converter pairs and merges it into the registry."""

    def __init__(
        self,
        batcher: CallBatcher,
        registry: PoolRegistry,
        tokens: TokenRegistry | None = None,
        price_source: ReferencePriceSource | None = None,
        config: AggregatorConfig = DEFAULT_CONFIG,
    ) -> None:
        """Initialize the assembler.

        Args:
            batcher: Batcher used for every chain read
            registry: Registry results are merged into
            tokens: Known reserve token metadata (extended as tokens are fetched)
            price_source: Reference price for feeds; None means no priced feeds
            config: Batch sizes, weight total and version overrides
        """
        self.batcher = batcher
        self.registry = registry
        self.tokens = tokens if tokens is not None else TokenRegistry()
        self.price_source = price_source
        self.config = config
        self._version_overrides = {
            normalize_address(address): version
            for address, version in config.version_overrides.items()
        }

    async def add_pools(self, pairs: Iterable[ConverterAndAnchor]) -> AssembledPools:
        """Assemble pools for anchor/converter pairs and merge them into the registry.

        Chunks of pool_batch_size pairs are processed concurrently.

        Args:
            pairs: Anchor/converter pairs to assemble

        Returns:
            Stored pools, their feeds and the anchors that failed

        Raises:
            AggregationExhaustedError: If a chunk could not be read at any chunk
                size. Pools from the other chunks are still merged first.

        Any other error raised while assembling a chunk aborts the round: its
        anchors return to unloaded and the error propagates from the task group.
        """
        pairs = _dedupe(pairs)
        if not pairs:
            return AssembledPools()

        anchors = [pair.anchor for pair in pairs]
        self.registry.mark_discovering(anchors)
        reference = await self._reference_price()

        size = self.config.pool_batch_size
        chunks = [pairs[i : i + size] for i in range(0, len(pairs), size)]
        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [tg.create_task(self._guarded_chunk(chunk)) for chunk in chunks]
        except BaseException:
            # Nothing from this round is merged; anchors go back to unloaded
            self.registry.release(anchors)
            logger.error("pool_round_aborted", pairs=len(pairs), chunks=len(chunks))
            raise

        pools: list[Pool] = []
        errors: list[AggregationExhaustedError] = []
        aborted: set[str] = set()
        for chunk, task in zip(chunks, tasks, strict=True):
            outcome = task.result()
            if isinstance(outcome, AggregationExhaustedError):
                errors.append(outcome)
                aborted.update(pair.anchor for pair in chunk)
            else:
                pools.extend(outcome)

        feeds = build_feeds(pools, reference)
        merged = self.registry.merge(pools, feeds)
        stored = {pool.id for pool in merged.added}

        built = {pool.id for pool in pools}
        failed = [a for a in anchors if a not in aborted and a not in built]
        failed.extend(pool.id for pool in merged.rejected)
        self.registry.mark_failed(failed)
        self.registry.release(aborted)

        logger.info(
            "pools_assembled",
            requested=len(pairs),
            chunks=len(chunks),
            stored=len(stored),
            failed=len(failed),
            aborted=len(aborted),
        )
        if errors:
            raise errors[0]

        return AssembledPools(
            pools=merged.added,
            feeds=[feed for feed in feeds if feed.pool_id in stored],
            failed=failed,
        )

    async def reload_pools(self, pairs: Iterable[ConverterAndAnchor]) -> AssembledPools:
        """Drop registry entries for the pairs' anchors and assemble them again."""
        pairs = _dedupe(pairs)
        self.registry.reload(pair.anchor for pair in pairs)
        return await self.add_pools(pairs)

    async def _reference_price(self) -> ReferencePrice | None:
        if self.price_source is None:
            return None
        try:
            return await self.price_source.get_reference_price()
        except Exception as e:
            logger.warning("reference_price_unavailable", error=str(e))
            return None

    async def _guarded_chunk(
        self, chunk: list[ConverterAndAnchor]
    ) -> list[Pool] | AggregationExhaustedError:
        """Assemble one chunk; exhaustion is returned so sibling chunks finish."""
        try:
            return await self._assemble_chunk(chunk)
        except AggregationExhaustedError as e:
            logger.error("pool_chunk_aborted", pairs=len(chunk), error=str(e))
            return e

    async def _assemble_chunk(self, chunk: list[ConverterAndAnchor]) -> list[Pool]:
        candidates = await self._fetch_candidates(chunk)
        if not candidates:
            return []

        fixed = [c for c in candidates if c.kind is ConverterKind.FIXED_RATIO]
        weighted = [c for c in candidates if c.kind is ConverterKind.WEIGHTED]
        reserves_by_converter = {c.pair.converter: c.converter.reserves for c in candidates}

        missing = self.tokens.missing(r for c in candidates for r in c.converter.reserves)
        pool_token_addresses = [
            token
            for c in weighted
            for token in (c.anchor.pool_tokens or ())
            if token not in missing
        ]
        token_entities = missing + list(dict.fromkeys(pool_token_addresses))

        def keep(record: DecodedRecord) -> DecodedRecord:
            return record

        token_records, balance_records, weighted_records = await run_handlers(
            self.batcher,
            [
                template_handler(token_entities, token_template, keep),
                template_handler(
                    [c.pair.converter for c in fixed],
                    reserve_balance_template(reserves_by_converter),
                    keep,
                ),
                template_handler(
                    [c.pair.converter for c in weighted],
                    weighted_template(reserves_by_converter),
                    keep,
                ),
            ],
        )

        token_meta: dict[str, DecodedRecord] = {r.origin: r for r in token_records}
        for contract in missing:
            record = token_meta.get(contract)
            polished = self.tokens.polish(
                contract,
                record.get("symbol") if record else None,
                record.get("decimals") if record else None,
            )
            if polished is not None:
                self.tokens.add(polished)

        balances = {r.origin: r for r in balance_records}
        staking = {r.origin: r for r in weighted_records}

        pools: list[Pool] = []
        for candidate in fixed:
            pool = self._build_fixed(candidate, balances.get(candidate.pair.converter))
            if pool is not None:
                pools.append(pool)
        for candidate in weighted:
            pool = self._build_weighted(
                candidate, staking.get(candidate.pair.converter), token_meta
            )
            if pool is not None:
                pools.append(pool)
        return pools

    async def _fetch_candidates(self, chunk: list[ConverterAndAnchor]) -> list[Candidate]:
        """Round one: classify converters and filter structurally invalid pools."""
        converter_records, anchor_records = await run_handlers(
            self.batcher,
            [
                template_handler(
                    [pair.converter for pair in chunk], converter_template, self._build_converter
                ),
                template_handler([pair.anchor for pair in chunk], anchor_template, build_anchor_record),
            ],
        )
        converters = {record.converter: record for record in converter_records}
        anchors = {record.anchor: record for record in anchor_records}

        candidates = []
        for pair in chunk:
            converter = converters.get(pair.converter)
            anchor = anchors[pair.anchor]
            if converter is None:
                continue

            kind = classify_converter(converter.converter_type)
            if kind is ConverterKind.UNSUPPORTED:
                _drop(pair, "unsupported_converter_type", converter_type=converter.converter_type)
                continue
            if kind is ConverterKind.WEIGHTED and not anchor.pool_tokens:
                _drop(pair, "weighted_without_container")
                continue
            if kind is ConverterKind.FIXED_RATIO and anchor.pool_tokens:
                _drop(pair, "fixed_ratio_with_container")
                continue
            if kind is ConverterKind.FIXED_RATIO and anchor.decimals is None:
                _drop(pair, "anchor_decimals_missing")
                continue
            candidates.append(Candidate(pair=pair, kind=kind, converter=converter, anchor=anchor))
        return candidates

    def _build_converter(self, record: DecodedRecord) -> ConverterRecord | None:
        required = ("owner", "connector_token_count", "conversion_fee")
        if not record.has(*required):
            logger.warning(
                "converter_dropped",
                converter=record.origin,
                reason="incomplete_converter",
                missing=record.missing,
            )
            return None
        count = record["connector_token_count"]
        if count != 2:
            logger.warning(
                "converter_dropped",
                converter=record.origin,
                reason="connector_count",
                connector_count=count,
            )
            return None
        if not record.has("connector_token_0", "connector_token_1"):
            logger.warning(
                "converter_dropped",
                converter=record.origin,
                reason="incomplete_converter",
                missing=record.missing,
            )
            return None

        version = self._version_overrides.get(record.origin, record.get("version"))
        if version is None:
            logger.debug("converter_version_missing", converter=record.origin)
            version = 0

        return ConverterRecord(
            converter=record.origin,
            owner=record["owner"],
            version=int(version),
            converter_type=record.get("converter_type"),
            fee_ppm=int(record["conversion_fee"]),
            reserves=(record["connector_token_0"], record["connector_token_1"]),
        )

    def _reserve_tokens(self, candidate: Candidate) -> tuple[ReserveToken, ReserveToken] | None:
        first, second = (self.tokens.get(r) for r in candidate.converter.reserves)
        if first is None or second is None:
            _drop(candidate.pair, "reserve_token_unknown", reserves=list(candidate.converter.reserves))
            return None
        if first.contract == second.contract:
            _drop(candidate.pair, "duplicate_reserve", reserve=first.contract)
            return None
        return (first, second)

    def _build_fixed(self, candidate: Candidate, record: DecodedRecord | None) -> Pool | None:
        reserves = self._reserve_tokens(candidate)
        if reserves is None:
            return None
        if record is None or not record.has("balance_0", "balance_1"):
            _drop(candidate.pair, "incomplete_balances")
            return None

        anchor = candidate.anchor
        return FixedRatioPool(
            id=candidate.pair.anchor,
            contract=candidate.pair.converter,
            reserves=reserves,
            fee=Decimal(candidate.converter.fee_ppm) / PPM,
            owner=candidate.converter.owner,
            version=candidate.converter.version,
            network="ETH",
            anchor=AnchorToken(
                contract=anchor.anchor,
                symbol=anchor.symbol or "",
                decimals=int(anchor.decimals or 0),
            ),
            balances=(int(record["balance_0"]), int(record["balance_1"])),
        )

    def _build_weighted(
        self,
        candidate: Candidate,
        record: DecodedRecord | None,
        token_meta: Mapping[str, DecodedRecord],
    ) -> Pool | None:
        reserves = self._reserve_tokens(candidate)
        if reserves is None:
            return None
        if record is None or record.missing:
            _drop(
                candidate.pair,
                "incomplete_staking_state",
                missing=record.missing if record else None,
            )
            return None

        primary = record["primary_reserve_token"]
        secondary = record["secondary_reserve_token"]
        reserve_ids = {r.contract for r in reserves}
        if {primary, secondary} != reserve_ids:
            _drop(candidate.pair, "reserve_order_mismatch", primary=primary, secondary=secondary)
            return None

        primary_weight, secondary_weight = record["effective_reserve_weights"]
        by_token = {primary: int(primary_weight), secondary: int(secondary_weight)}
        weights = (by_token[reserves[0].contract], by_token[reserves[1].contract])
        if sum(weights) != self.config.weight_total:
            _drop(candidate.pair, "weights_invalid", weights=list(weights))
            return None

        pool_token_addresses = (record["pool_token_0"], record["pool_token_1"])
        if pool_token_addresses[0] == pool_token_addresses[1]:
            _drop(candidate.pair, "pool_tokens_not_distinct", pool_token=pool_token_addresses[0])
            return None

        pool_tokens = []
        for reserve, address in zip(reserves, pool_token_addresses, strict=True):
            meta = token_meta.get(address)
            pool_tokens.append(
                PoolToken(
                    reserve_id=reserve.contract,
                    contract=address,
                    symbol=(meta.get("symbol") if meta else None) or "",
                    decimals=int((meta.get("decimals") if meta else None) or reserve.decimals),
                )
            )

        anchor = candidate.anchor
        return WeightedPool(
            id=candidate.pair.anchor,
            contract=candidate.pair.converter,
            reserves=reserves,
            fee=Decimal(candidate.converter.fee_ppm) / PPM,
            owner=candidate.converter.owner,
            version=candidate.converter.version,
            network="ETH",
            anchor=PoolContainer(
                contract=anchor.anchor,
                symbol=anchor.symbol or "",
                decimals=int(anchor.decimals or 0),
                pool_tokens=tuple(pool_tokens),
            ),
            staked_balances=(int(record["staked_balance_0"]), int(record["staked_balance_1"])),
            weights=weights,
        )


__all__ = [
    "AnchorRecord",
    "AssembledPools",
    "Candidate",
    "ConverterRecord",
    "PoolAssembler",
    "anchor_template",
    "build_anchor_record",
    "classify_converter",
    "converter_template",
    "reserve_balance_template",
    "token_template",
    "weighted_template",
]
