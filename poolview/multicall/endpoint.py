"""Aggregation endpoint implementations for batched contract reads."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import structlog
from web3 import AsyncWeb3

from poolview.errors import AggregationError
from poolview.models.types import normalize_address

logger = structlog.get_logger()


@dataclass(frozen=True)
class Call:
    """One encoded read query against a target contract."""

    target: str
    data: bytes


@dataclass(frozen=True)
class CallOutcome:
    """Raw per-call result reported by the aggregation endpoint."""

    success: bool
    data: bytes


@dataclass(frozen=True)
class CallResult:
    """A call outcome paired with the address it was sent to."""

    origin: str
    success: bool
    data: bytes


class AggregationEndpoint(Protocol):
    """Protocol for aggregation endpoint implementations.

    This allows swapping between the on-chain aggregation contract and a mock
    endpoint for testing.
    """

    async def aggregate(self, calls: Sequence[Call], strict: bool) -> list[CallOutcome]:
        """Execute calls in one request.

        Args:
            calls: Ordered calls to execute
            strict: If True the whole batch reverts when any call reverts

        Returns:
            One outcome per call, in input order

        Raises:
            Exception: Any transport failure for the batch as a whole
        """
        ...


# Aggregation contract ABI - minimal, just aggregate(Call[] calls, bool strict)
MULTICALL_ABI = [
    {
        "name": "aggregate",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {
                "name": "calls",
                "type": "tuple[]",
                "components": [
                    {"name": "target", "type": "address"},
                    {"name": "callData", "type": "bytes"},
                ],
            },
            {"name": "strict", "type": "bool"},
        ],
        "outputs": [
            {"name": "blockNumber", "type": "uint256"},
            {
                "name": "returnData",
                "type": "tuple[]",
                "components": [
                    {"name": "success", "type": "bool"},
                    {"name": "data", "type": "bytes"},
                ],
            },
        ],
    }
]


class Web3AggregationEndpoint:
    """Endpoint that calls the on-chain aggregation contract via RPC."""

    def __init__(self, w3: AsyncWeb3, multicall_address: str):
        """Initialize the endpoint.

        Args:
            w3: Async web3 instance
            multicall_address: Aggregation contract address
        """
        self.w3 = w3
        self.contract = w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(multicall_address),
            abi=MULTICALL_ABI,
        )

    async def aggregate(self, calls: Sequence[Call], strict: bool) -> list[CallOutcome]:
        """Execute calls through aggregate(), letting transport errors propagate."""
        payload = [(AsyncWeb3.to_checksum_address(call.target), call.data) for call in calls]
        logger.debug("aggregate_request", call_count=len(payload), strict=strict)
        _block_number, return_data = await self.contract.functions.aggregate(
            payload, strict
        ).call()
        return [CallOutcome(success=bool(success), data=bytes(data)) for success, data in return_data]


class MockAggregationEndpoint:
    """Mock endpoint serving canned payloads without RPC calls.

    Configure with expected responses, and track batches for assertions.
    Calls without a configured response behave like reverts.
    """

    def __init__(
        self,
        responses: dict[tuple[str, bytes], bytes] | None = None,
        max_batch_size: int | None = None,
    ):
        """Initialize mock endpoint.

        Args:
            responses: Mapping of (target, calldata) -> ABI-encoded return data
            max_batch_size: If set, any batch larger than this fails as a whole
        """
        self.responses: dict[tuple[str, bytes], bytes] = {}
        for (target, data), payload in (responses or {}).items():
            self.set_response(target, data, payload)
        self.max_batch_size = max_batch_size
        self.fail_all = False
        # Upcoming batches to drop with a raw transport error
        self.dropped_batches = 0
        self.batches: list[list[Call]] = []

    def set_response(self, target: str, data: bytes, payload: bytes) -> None:
        self.responses[(normalize_address(target), data)] = payload

    def clear_response(self, target: str, data: bytes) -> None:
        self.responses.pop((normalize_address(target), data), None)

    @property
    def batch_sizes(self) -> list[int]:
        return [len(batch) for batch in self.batches]

    async def aggregate(self, calls: Sequence[Call], strict: bool) -> list[CallOutcome]:
        """Serve configured responses, failing dropped and oversized batches."""
        self.batches.append(list(calls))

        if self.dropped_batches:
            self.dropped_batches -= 1
            raise ConnectionError("Mock endpoint dropped the batch")
        if self.fail_all:
            raise AggregationError("Mock endpoint is failing every batch")
        if self.max_batch_size is not None and len(calls) > self.max_batch_size:
            raise AggregationError(
                f"Batch of {len(calls)} calls exceeds mock limit {self.max_batch_size}"
            )

        outcomes = []
        for call in calls:
            payload = self.responses.get((normalize_address(call.target), call.data))
            if payload is None:
                if strict:
                    raise AggregationError(f"Call to {call.target} reverted in strict batch")
                outcomes.append(CallOutcome(success=False, data=b""))
            else:
                outcomes.append(CallOutcome(success=True, data=payload))
        return outcomes


__all__ = [
    "Call",
    "CallOutcome",
    "CallResult",
    "AggregationEndpoint",
    "MULTICALL_ABI",
    "Web3AggregationEndpoint",
    "MockAggregationEndpoint",
]
