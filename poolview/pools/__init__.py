"""Pool discovery, assembly and the pool registry."""

from poolview.pools.assembler import AssembledPools, PoolAssembler, classify_converter
from poolview.pools.discovery import (
    AnchorConverterCache,
    ContractDiscoverySource,
    DiscoverySource,
    InMemoryAnchorConverterCache,
    StaticDiscoverySource,
    fetch_pairs,
    load_cached_pairs,
    replay_if_difference,
    store_pairs,
    zip_anchors_and_converters,
)
from poolview.pools.receipts import ReceiptSource, Web3ReceiptSource, wait_for_new_address
from poolview.pools.registry import MergeResult, PoolRegistry, PoolStatus
from poolview.pools.state import FixedRatioState, PoolStateReader, WithdrawTerms
from poolview.pools.tokens import ETH_TOKEN, TokenRegistry

__all__ = [
    "ETH_TOKEN",
    "AnchorConverterCache",
    "AssembledPools",
    "ContractDiscoverySource",
    "DiscoverySource",
    "FixedRatioState",
    "InMemoryAnchorConverterCache",
    "MergeResult",
    "PoolAssembler",
    "PoolRegistry",
    "PoolStateReader",
    "PoolStatus",
    "ReceiptSource",
    "StaticDiscoverySource",
    "TokenRegistry",
    "Web3ReceiptSource",
    "WithdrawTerms",
    "classify_converter",
    "fetch_pairs",
    "load_cached_pairs",
    "replay_if_difference",
    "store_pairs",
    "wait_for_new_address",
    "zip_anchors_and_converters",
]
