"""Batched call sending with adaptive chunk-size fallback.

A large call list is split into chunks of the first candidate size and the
chunks are sent concurrently. Chunks that fail as a whole are re-split with
the next smaller size and sent again, until every call has a result or the
candidate list runs out.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import structlog

from poolview.constants import DEFAULT_CHUNK_SIZES
from poolview.errors import AggregationError, AggregationExhaustedError
from poolview.multicall.endpoint import AggregationEndpoint, Call, CallResult
from poolview.multicall.shape import flatten, rebuild_from_index, shape_of

logger = structlog.get_logger()

# Half-open [start, end) slice of the flat call list
Span = tuple[int, int]


class CallBatcher:
    """Sends calls to an aggregation endpoint, preserving input order.

    Per-call reverts come back as unsuccessful results and never fail a
    batch. Whole-batch failures are retried with smaller chunks.
    """

    def __init__(
        self,
        endpoint: AggregationEndpoint,
        chunk_sizes: Sequence[int] = DEFAULT_CHUNK_SIZES,
    ) -> None:
        """Initialize the batcher.

        Args:
            endpoint: Aggregation endpoint to send batches to
            chunk_sizes: Candidate chunk sizes, largest first
        """
        if not chunk_sizes:
            raise ValueError("At least one chunk size is required")
        self.endpoint = endpoint
        self.chunk_sizes = tuple(chunk_sizes)
        self.smallest_fallback_size: int | None = None

    async def send_batch(self, calls: Sequence[Call], strict: bool = False) -> list[CallResult]:
        """Send calls as one batch.

        Args:
            calls: Ordered calls
            strict: Forwarded to the endpoint; False lets calls fail independently

        Returns:
            One result per call, in input order, tagged with its target

        Raises:
            AggregationError: If the endpoint returns a different number of results
            Exception: Whatever the endpoint raises for a whole-batch failure
        """
        if not calls:
            return []
        outcomes = await self.endpoint.aggregate(list(calls), strict)
        if len(outcomes) != len(calls):
            raise AggregationError(
                f"Endpoint returned {len(outcomes)} results for {len(calls)} calls"
            )
        return [
            CallResult(origin=call.target, success=outcome.success, data=outcome.data)
            for call, outcome in zip(calls, outcomes, strict=True)
        ]

    async def send_in_chunks(self, calls: Sequence[Call]) -> list[CallResult]:
        """Send a call list of any size using the chunk-size strategy list.

        Args:
            calls: Ordered calls

        Returns:
            One result per call, in input order

        Raises:
            AggregationExhaustedError: If some chunk failed at every candidate size
        """
        calls = list(calls)
        results: list[CallResult | None] = [None] * len(calls)
        pending: list[Span] = [(0, len(calls))] if calls else []

        for size in self.chunk_sizes:
            if not pending:
                break
            spans = [
                (start, min(start + size, end))
                for span_start, end in pending
                for start in range(span_start, end, size)
            ]
            async with asyncio.TaskGroup() as tg:
                tasks = [tg.create_task(self._try_span(calls, span, size)) for span in spans]

            pending = []
            for span, task in zip(spans, tasks, strict=True):
                chunk_results = task.result()
                if chunk_results is None:
                    pending.append(span)
                else:
                    results[span[0] : span[1]] = chunk_results

            if pending:
                self._record_fallback(size)
                logger.warning(
                    "chunk_size_fallback",
                    chunk_size=size,
                    failed_chunks=len(pending),
                    failed_calls=sum(end - start for start, end in pending),
                )

        if pending:
            failed_calls = sum(end - start for start, end in pending)
            logger.error(
                "aggregation_exhausted",
                chunk_sizes=list(self.chunk_sizes),
                failed_calls=failed_calls,
            )
            raise AggregationExhaustedError(self.chunk_sizes, failed_calls)

        return [result for result in results if result is not None]

    async def send_groups(self, groups: Sequence[Any]) -> Any:
        """Send nested call groups in one chunked round.

        Args:
            groups: Calls nested to any depth (lists of lists of Calls)

        Returns:
            Results nested exactly like the input
        """
        shape = shape_of(groups)
        flat_results = await self.send_in_chunks(flatten(groups))
        return rebuild_from_index(flat_results, shape)

    async def _try_span(
        self, calls: list[Call], span: Span, size: int
    ) -> list[CallResult] | None:
        """Send one chunk, returning None instead of raising on failure.

        Failures stay inside the chunk so sibling chunks in the task group
        keep running.
        """
        start, end = span
        try:
            return await self.send_batch(calls[start:end])
        except Exception as e:
            logger.warning(
                "chunk_failed",
                chunk_size=size,
                call_count=end - start,
                error=str(e),
            )
            return None

    def _record_fallback(self, size: int) -> None:
        if self.smallest_fallback_size is None or size < self.smallest_fallback_size:
            self.smallest_fallback_size = size


__all__ = ["CallBatcher"]
