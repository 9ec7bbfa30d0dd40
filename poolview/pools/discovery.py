"""Anchor and converter discovery.

Anchors come from the converter registry; each anchor's current converter
is looked up in bulk. A persisted anchor -> converter mapping lets startup
skip the lookup, after which the fresh mapping is compared against it and
any drifted anchors are reloaded.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol

import structlog

from poolview.codec import abis
from poolview.codec.methods import ContractCall
from poolview.codec.templates import decode_call_group
from poolview.errors import AggregationError, DiscoveryError
from poolview.models.pool import ConverterAndAnchor
from poolview.models.types import normalize_address
from poolview.multicall.batcher import CallBatcher
from poolview.pools.assembler import AssembledPools, PoolAssembler
from poolview.pools.registry import PoolStatus

logger = structlog.get_logger()

ZERO_ADDRESS = "0x" + "00" * 20

# Contract registry key of the converter registry
CONVERTER_REGISTRY_KEY = b"BancorConverterRegistry".ljust(32, b"\0")

# Anchors passed to one getConvertersByAnchors() call
ANCHORS_PER_LOOKUP = 100


class DiscoverySource(Protocol):
    """Protocol for anchor/converter discovery.

    This allows swapping between the on-chain registry and a static list for
    testing.
    """

    async def fetch_anchor_addresses(self) -> list[str]:
        """Every anchor known to the converter registry."""
        ...

    async def fetch_converter_addresses(self, anchors: Sequence[str]) -> list[str]:
        """Current converter of each anchor, in input order."""
        ...

    async def fetch_anchors_containing(self, token: str) -> list[str]:
        """Anchors of pools holding the token as a reserve."""
        ...


class AnchorConverterCache(Protocol):
    """Persisted anchor -> converter mapping."""

    async def load(self) -> dict[str, str]:
        ...

    async def store(self, mapping: Mapping[str, str]) -> None:
        ...


class ContractDiscoverySource:
    """Reads the converter registry through the call batcher."""

    def __init__(
        self,
        batcher: CallBatcher,
        contract_registry: str,
        anchors_per_lookup: int = ANCHORS_PER_LOOKUP,
    ) -> None:
        """Initialize the source.

        Args:
            batcher: Batcher used for every registry read
            contract_registry: Root contract registry address
            anchors_per_lookup: Anchors per getConvertersByAnchors() call
        """
        self.batcher = batcher
        self.contract_registry = normalize_address(contract_registry)
        self.anchors_per_lookup = anchors_per_lookup
        self._converter_registry: str | None = None

    async def _read(self, target: str, call: ContractCall) -> Any:
        template = {"value": call}
        try:
            results = await self.batcher.send_in_chunks([call.to_call(target)])
        except AggregationError as e:
            raise DiscoveryError(f"{call.name} on {target} failed: {e}") from e
        value = decode_call_group(template, results).get("value")
        if value is None:
            raise DiscoveryError(f"{call.name} on {target} returned no data")
        return value

    async def converter_registry(self) -> str:
        """Converter registry address, resolved once from the contract registry."""
        if self._converter_registry is None:
            address = await self._read(
                self.contract_registry, abis.ADDRESS_OF(CONVERTER_REGISTRY_KEY)
            )
            if address == ZERO_ADDRESS:
                raise DiscoveryError("Contract registry has no converter registry entry")
            self._converter_registry = address
            logger.debug("converter_registry_resolved", address=address)
        return self._converter_registry

    async def fetch_anchor_addresses(self) -> list[str]:
        registry = await self.converter_registry()
        anchors = list(await self._read(registry, abis.GET_ANCHORS()))
        logger.info("anchors_fetched", count=len(anchors))
        return anchors

    async def fetch_converter_addresses(self, anchors: Sequence[str]) -> list[str]:
        anchors = [normalize_address(a) for a in anchors]
        if not anchors:
            return []
        registry = await self.converter_registry()
        slices = [
            anchors[i : i + self.anchors_per_lookup]
            for i in range(0, len(anchors), self.anchors_per_lookup)
        ]
        calls = [abis.GET_CONVERTERS_BY_ANCHORS(part) for part in slices]
        try:
            results = await self.batcher.send_in_chunks([call.to_call(registry) for call in calls])
        except AggregationError as e:
            raise DiscoveryError(f"Converter lookup failed: {e}") from e

        converters: list[str] = []
        for part, call, result in zip(slices, calls, results, strict=True):
            value = decode_call_group({"converters": call}, [result]).get("converters")
            if value is None or len(value) != len(part):
                raise DiscoveryError(
                    f"Converter lookup returned no usable result for {len(part)} anchors"
                )
            converters.extend(value)
        return converters

    async def fetch_anchors_containing(self, token: str) -> list[str]:
        registry = await self.converter_registry()
        return list(
            await self._read(registry, abis.GET_CONVERTIBLE_TOKEN_ANCHORS(normalize_address(token)))
        )


class StaticDiscoverySource:
    """Discovery over a fixed list of pairs."""

    def __init__(
        self,
        pairs: Iterable[ConverterAndAnchor] = (),
        reserves: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        """Initialize the source.

        Args:
            pairs: Known anchor/converter pairs
            reserves: Anchor -> reserve token addresses, for fetch_anchors_containing()
        """
        self.pairs = {p.anchor: p.converter for p in (pair.normalized() for pair in pairs)}
        self.reserves = {
            normalize_address(anchor): {normalize_address(t) for t in tokens}
            for anchor, tokens in (reserves or {}).items()
        }
        self.calls: list[str] = []

    async def fetch_anchor_addresses(self) -> list[str]:
        self.calls.append("fetch_anchor_addresses")
        return list(self.pairs)

    async def fetch_converter_addresses(self, anchors: Sequence[str]) -> list[str]:
        self.calls.append("fetch_converter_addresses")
        return [self.pairs.get(normalize_address(a), ZERO_ADDRESS) for a in anchors]

    async def fetch_anchors_containing(self, token: str) -> list[str]:
        self.calls.append("fetch_anchors_containing")
        token = normalize_address(token)
        return [anchor for anchor, tokens in self.reserves.items() if token in tokens]


class InMemoryAnchorConverterCache:
    """Process-local mapping cache."""

    def __init__(self, mapping: Mapping[str, str] | None = None) -> None:
        self.mapping = {
            normalize_address(k): normalize_address(v) for k, v in (mapping or {}).items()
        }
        self.stores = 0

    async def load(self) -> dict[str, str]:
        return dict(self.mapping)

    async def store(self, mapping: Mapping[str, str]) -> None:
        self.mapping = {normalize_address(k): normalize_address(v) for k, v in mapping.items()}
        self.stores += 1


def zip_anchors_and_converters(
    anchors: Sequence[str], converters: Sequence[str]
) -> list[ConverterAndAnchor]:
    """Pair anchors with their converters, dropping anchors without one.

    Raises:
        DiscoveryError: If the two lists differ in length
    """
    if len(anchors) != len(converters):
        raise DiscoveryError(
            f"Got {len(converters)} converters for {len(anchors)} anchors"
        )
    pairs = []
    for anchor, converter in zip(anchors, converters, strict=True):
        pair = ConverterAndAnchor(anchor=anchor, converter=converter).normalized()
        if pair.converter == ZERO_ADDRESS:
            logger.debug("anchor_without_converter", anchor=pair.anchor)
            continue
        pairs.append(pair)
    return pairs


async def fetch_pairs(source: DiscoverySource, anchors: Sequence[str]) -> list[ConverterAndAnchor]:
    """Look up the current converter of every anchor."""
    converters = await source.fetch_converter_addresses(anchors)
    return zip_anchors_and_converters(anchors, converters)


async def load_cached_pairs(
    cache: AnchorConverterCache | None, anchors: Sequence[str]
) -> list[ConverterAndAnchor] | None:
    """Pairs for the anchors from the cache, or None if it cannot cover them all.

    A cache that fails to load is treated as empty.
    """
    if cache is None:
        return None
    try:
        mapping = await cache.load()
    except Exception as e:
        logger.warning("anchor_cache_unavailable", error=str(e))
        return None

    mapping = {normalize_address(k): v for k, v in mapping.items()}
    pairs = []
    for anchor in anchors:
        converter = mapping.get(normalize_address(anchor))
        if converter is None:
            logger.debug("anchor_cache_miss", anchor=anchor, cached=len(mapping))
            return None
        pairs.append(ConverterAndAnchor(anchor=anchor, converter=converter).normalized())
    return pairs


async def store_pairs(
    cache: AnchorConverterCache | None, pairs: Iterable[ConverterAndAnchor]
) -> None:
    """Persist pairs; a failing cache is logged and ignored."""
    if cache is None:
        return
    try:
        await cache.store({pair.anchor: pair.converter for pair in pairs})
    except Exception as e:
        logger.warning("anchor_cache_store_failed", error=str(e))


async def replay_if_difference(
    assembler: PoolAssembler,
    cache: AnchorConverterCache | None,
    cached: Iterable[ConverterAndAnchor],
    fresh: Iterable[ConverterAndAnchor],
) -> AssembledPools:
    """Reload anchors whose converter changed since the cached mapping.

    Only anchors the registry has already seen are reloaded; unseen anchors
    will be assembled from the fresh mapping when they are first requested.
    The fresh mapping is persisted either way.

    Args:
        assembler: Assembler owning the registry
        cache: Cache to persist the fresh mapping to
        cached: Pairs the registry was loaded from
        fresh: Pairs just read from the converter registry

    Returns:
        Outcome of the reload (empty if nothing drifted)
    """
    fresh = [pair.normalized() for pair in fresh]
    previous = {pair.anchor: pair.converter for pair in (p.normalized() for p in cached)}
    drifted = [
        pair
        for pair in fresh
        if pair.anchor in previous
        and previous[pair.anchor] != pair.converter
        and assembler.registry.status(pair.anchor) is not PoolStatus.UNLOADED
    ]

    outcome = AssembledPools()
    if drifted:
        logger.info("converter_drift_detected", anchors=[pair.anchor for pair in drifted])
        outcome = await assembler.reload_pools(drifted)
    await store_pairs(cache, fresh)
    return outcome


__all__ = [
    "ANCHORS_PER_LOOKUP",
    "CONVERTER_REGISTRY_KEY",
    "ZERO_ADDRESS",
    "AnchorConverterCache",
    "ContractDiscoverySource",
    "DiscoverySource",
    "InMemoryAnchorConverterCache",
    "StaticDiscoverySource",
    "fetch_pairs",
    "load_cached_pairs",
    "replay_if_difference",
    "store_pairs",
    "zip_anchors_and_converters",
]
