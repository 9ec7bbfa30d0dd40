"""Tests for anchor/converter discovery and the mapping cache."""

import asyncio

import pytest

from poolview.codec import abis
from poolview.errors import DiscoveryError
from poolview.models.pool import ConverterAndAnchor
from poolview.pools.assembler import PoolAssembler
from poolview.pools.discovery import (
    CONVERTER_REGISTRY_KEY,
    ZERO_ADDRESS,
    ContractDiscoverySource,
    InMemoryAnchorConverterCache,
    StaticDiscoverySource,
    fetch_pairs,
    load_cached_pairs,
    replay_if_difference,
    store_pairs,
    zip_anchors_and_converters,
)
from poolview.pools.registry import PoolRegistry
from tests.helpers import (
    ANCHOR_1,
    ANCHOR_2,
    ANCHOR_3,
    BNT,
    CONTRACT_REGISTRY,
    CONVERTER_1,
    CONVERTER_2,
    CONVERTER_3,
    CONVERTER_4,
    CONVERTER_REGISTRY,
    DAI,
    FakeChain,
)

PAIRS = [(ANCHOR_1, CONVERTER_1), (ANCHOR_2, CONVERTER_2), (ANCHOR_3, CONVERTER_3)]


class BrokenCache:
    """Cache whose backend is down."""

    async def load(self) -> dict[str, str]:
        raise ConnectionError("cache offline")

    async def store(self, mapping) -> None:
        raise ConnectionError("cache offline")


@pytest.fixture
def registry_chain(chain: FakeChain) -> FakeChain:
    chain.add_converter_registry(CONTRACT_REGISTRY, CONVERTER_REGISTRY, PAIRS, anchors_per_lookup=2)
    return chain


class TestContractDiscoverySource:
    """Reads against fake registry contracts."""

    def test_fetch_anchor_addresses(self, registry_chain: FakeChain) -> None:
        source = ContractDiscoverySource(registry_chain.batcher(), CONTRACT_REGISTRY)
        anchors = asyncio.run(source.fetch_anchor_addresses())
        assert anchors == [ANCHOR_1, ANCHOR_2, ANCHOR_3]

    def test_converter_registry_resolved_once(self, registry_chain: FakeChain) -> None:
        source = ContractDiscoverySource(registry_chain.batcher(), CONTRACT_REGISTRY)

        async def twice() -> None:
            await source.fetch_anchor_addresses()
            await source.fetch_anchor_addresses()

        asyncio.run(twice())

        address_lookups = [
            batch
            for batch in registry_chain.endpoint.batches
            if batch[0].target == CONTRACT_REGISTRY
        ]
        assert len(address_lookups) == 1

    def test_fetch_converter_addresses_in_slices(self, registry_chain: FakeChain) -> None:
        source = ContractDiscoverySource(
            registry_chain.batcher(), CONTRACT_REGISTRY, anchors_per_lookup=2
        )
        converters = asyncio.run(
            source.fetch_converter_addresses([ANCHOR_1, ANCHOR_2, ANCHOR_3])
        )
        assert converters == [CONVERTER_1, CONVERTER_2, CONVERTER_3]

    def test_dropped_batch_retried(self, registry_chain: FakeChain) -> None:
        """A transport error on the registry lookup falls back instead of failing."""
        registry_chain.drop_next_batches(1)
        source = ContractDiscoverySource(registry_chain.batcher(), CONTRACT_REGISTRY)

        anchors = asyncio.run(source.fetch_anchor_addresses())

        assert anchors == [ANCHOR_1, ANCHOR_2, ANCHOR_3]
        assert source.batcher.smallest_fallback_size is not None

    def test_unreachable_registry(self, registry_chain: FakeChain) -> None:
        registry_chain.endpoint.fail_all = True
        source = ContractDiscoverySource(registry_chain.batcher((10, 2)), CONTRACT_REGISTRY)
        with pytest.raises(DiscoveryError, match="failed"):
            asyncio.run(source.fetch_anchor_addresses())

    def test_missing_registry_entry(self, chain: FakeChain) -> None:
        chain.respond(CONTRACT_REGISTRY, abis.ADDRESS_OF(CONVERTER_REGISTRY_KEY), ZERO_ADDRESS)
        source = ContractDiscoverySource(chain.batcher(), CONTRACT_REGISTRY)
        with pytest.raises(DiscoveryError, match="no converter registry entry"):
            asyncio.run(source.fetch_anchor_addresses())

    def test_reverting_read_raises(self, chain: FakeChain) -> None:
        source = ContractDiscoverySource(chain.batcher(), CONTRACT_REGISTRY)
        with pytest.raises(DiscoveryError, match="returned no data"):
            asyncio.run(source.fetch_anchor_addresses())

    def test_short_lookup_raises(self, registry_chain: FakeChain) -> None:
        """A slice answered with fewer converters than anchors is an error."""
        registry_chain.respond(
            CONVERTER_REGISTRY,
            abis.GET_CONVERTERS_BY_ANCHORS([ANCHOR_3]),
            [],
        )
        source = ContractDiscoverySource(
            registry_chain.batcher(), CONTRACT_REGISTRY, anchors_per_lookup=2
        )
        with pytest.raises(DiscoveryError):
            asyncio.run(source.fetch_converter_addresses([ANCHOR_1, ANCHOR_2, ANCHOR_3]))

    def test_fetch_anchors_containing(self, registry_chain: FakeChain) -> None:
        registry_chain.respond(
            CONVERTER_REGISTRY, abis.GET_CONVERTIBLE_TOKEN_ANCHORS(DAI), [ANCHOR_1, ANCHOR_3]
        )
        source = ContractDiscoverySource(registry_chain.batcher(), CONTRACT_REGISTRY)
        assert asyncio.run(source.fetch_anchors_containing(DAI)) == [ANCHOR_1, ANCHOR_3]


class TestStaticDiscoverySource:
    def test_unknown_anchor_has_zero_converter(self) -> None:
        source = StaticDiscoverySource([ConverterAndAnchor(anchor=ANCHOR_1, converter=CONVERTER_1)])
        converters = asyncio.run(source.fetch_converter_addresses([ANCHOR_1, ANCHOR_2]))
        assert converters == [CONVERTER_1, ZERO_ADDRESS]

    def test_anchors_containing(self) -> None:
        source = StaticDiscoverySource(reserves={ANCHOR_1: [BNT, DAI], ANCHOR_2: [BNT]})
        assert asyncio.run(source.fetch_anchors_containing(DAI)) == [ANCHOR_1]


class TestPairing:
    def test_zero_converter_dropped(self) -> None:
        pairs = zip_anchors_and_converters([ANCHOR_1, ANCHOR_2], [CONVERTER_1, ZERO_ADDRESS])
        assert pairs == [ConverterAndAnchor(anchor=ANCHOR_1, converter=CONVERTER_1)]

    def test_length_mismatch(self) -> None:
        with pytest.raises(DiscoveryError, match="Got 1 converters for 2 anchors"):
            zip_anchors_and_converters([ANCHOR_1, ANCHOR_2], [CONVERTER_1])

    def test_fetch_pairs(self) -> None:
        source = StaticDiscoverySource(
            [ConverterAndAnchor(anchor=a, converter=c) for a, c in PAIRS]
        )
        pairs = asyncio.run(fetch_pairs(source, [ANCHOR_3, ANCHOR_1]))
        assert [p.converter for p in pairs] == [CONVERTER_3, CONVERTER_1]


class TestCache:
    """The mapping cache is optional and never fatal."""

    def test_cache_hit(self) -> None:
        cache = InMemoryAnchorConverterCache({ANCHOR_1: CONVERTER_1, ANCHOR_2: CONVERTER_2})
        pairs = asyncio.run(load_cached_pairs(cache, [ANCHOR_2]))
        assert pairs == [ConverterAndAnchor(anchor=ANCHOR_2, converter=CONVERTER_2)]

    def test_partial_cache_is_a_miss(self) -> None:
        cache = InMemoryAnchorConverterCache({ANCHOR_1: CONVERTER_1})
        assert asyncio.run(load_cached_pairs(cache, [ANCHOR_1, ANCHOR_2])) is None

    def test_no_cache(self) -> None:
        assert asyncio.run(load_cached_pairs(None, [ANCHOR_1])) is None

    def test_broken_cache_degrades(self) -> None:
        pairs = [ConverterAndAnchor(anchor=ANCHOR_1, converter=CONVERTER_1)]
        assert asyncio.run(load_cached_pairs(BrokenCache(), [ANCHOR_1])) is None
        asyncio.run(store_pairs(BrokenCache(), pairs))

    def test_store_round_trip(self) -> None:
        cache = InMemoryAnchorConverterCache()
        pairs = [ConverterAndAnchor(anchor=ANCHOR_1, converter=CONVERTER_1)]
        asyncio.run(store_pairs(cache, pairs))
        assert cache.mapping == {ANCHOR_1: CONVERTER_1}
        assert cache.stores == 1


class TestReplayIfDifference:
    """Drifted anchors are reloaded from the fresh mapping."""

    def test_reloads_only_drifted_loaded_anchors(
        self, two_pool_chain: FakeChain, registry: PoolRegistry
    ) -> None:
        assembler = PoolAssembler(two_pool_chain.batcher(), registry)
        cached = [
            ConverterAndAnchor(anchor=ANCHOR_1, converter=CONVERTER_1),
            ConverterAndAnchor(anchor=ANCHOR_2, converter=CONVERTER_2),
            ConverterAndAnchor(anchor=ANCHOR_3, converter=CONVERTER_3),
        ]
        asyncio.run(assembler.add_pools(cached[:2]))

        # ANCHOR_1 moved to a new converter; ANCHOR_3 moved but was never loaded
        two_pool_chain.add_fixed_pool(
            ANCHOR_1, CONVERTER_4, (BNT, DAI), (3 * 10**18, 4 * 10**18), supply=10**18
        )
        fresh = [
            ConverterAndAnchor(anchor=ANCHOR_1, converter=CONVERTER_4),
            ConverterAndAnchor(anchor=ANCHOR_2, converter=CONVERTER_2),
            ConverterAndAnchor(anchor=ANCHOR_3, converter=CONVERTER_1),
        ]
        cache = InMemoryAnchorConverterCache()

        outcome = asyncio.run(replay_if_difference(assembler, cache, cached, fresh))

        assert [p.id for p in outcome.pools] == [ANCHOR_1]
        assert registry.get_pool(ANCHOR_1).contract == CONVERTER_4
        assert registry.get_pool(ANCHOR_1).balances == (3 * 10**18, 4 * 10**18)
        assert registry.get_pool(ANCHOR_3) is None
        assert cache.mapping[ANCHOR_1] == CONVERTER_4
        assert cache.stores == 1

    def test_no_drift_still_stores(self, chain: FakeChain, registry: PoolRegistry) -> None:
        assembler = PoolAssembler(chain.batcher(), registry)
        pairs = [ConverterAndAnchor(anchor=ANCHOR_1, converter=CONVERTER_1)]
        cache = InMemoryAnchorConverterCache()

        outcome = asyncio.run(replay_if_difference(assembler, cache, pairs, pairs))

        assert outcome.pools == []
        assert chain.endpoint.batches == []
        assert cache.stores == 1
