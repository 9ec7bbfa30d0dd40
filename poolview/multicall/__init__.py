"""Batched read queries against an on-chain aggregation endpoint."""

from poolview.multicall.batcher import CallBatcher
from poolview.multicall.endpoint import (
    MULTICALL_ABI,
    AggregationEndpoint,
    Call,
    CallOutcome,
    CallResult,
    MockAggregationEndpoint,
    Web3AggregationEndpoint,
)
from poolview.multicall.shape import Shape, flatten, rebuild_from_index, shape_of, shape_size

__all__ = [
    "AggregationEndpoint",
    "Call",
    "CallBatcher",
    "CallOutcome",
    "CallResult",
    "MULTICALL_ABI",
    "MockAggregationEndpoint",
    "Shape",
    "Web3AggregationEndpoint",
    "flatten",
    "rebuild_from_index",
    "shape_of",
    "shape_size",
]
