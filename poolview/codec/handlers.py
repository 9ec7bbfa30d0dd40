"""Handlers: several templated call sets sent in one batched round."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from poolview.codec.templates import DecodedRecord, TemplateFn, build_call_groups, decode_call_groups
from poolview.multicall.batcher import CallBatcher
from poolview.multicall.endpoint import Call, CallResult

T = TypeVar("T")


@dataclass(frozen=True)
class Handler(Generic[T]):
    """Call groups plus the finisher that turns their results into records.

    Attributes:
        call_groups: One list of calls per entity
        finisher: Receives the results, grouped like call_groups, and returns
            the records for this handler
    """

    call_groups: list[list[Call]]
    finisher: Callable[[list[list[CallResult]]], list[T]]


def template_handler(
    entities: Sequence[str],
    template_fn: TemplateFn,
    build: Callable[[DecodedRecord], T | None],
) -> Handler[T]:
    """Build a handler from a template function and a record builder.

    Records for which build() returns None are dropped.

    Args:
        entities: Target addresses
        template_fn: Produces the template for one entity
        build: Turns one decoded record into a typed record, or None

    Returns:
        The handler
    """
    entities = list(entities)

    def finish(groups: list[list[CallResult]]) -> list[T]:
        records = decode_call_groups(entities, template_fn, groups)
        built = (build(record) for record in records)
        return [item for item in built if item is not None]

    return Handler(call_groups=build_call_groups(entities, template_fn), finisher=finish)


async def run_handlers(batcher: CallBatcher, handlers: Sequence[Handler[Any]]) -> list[list[Any]]:
    """Send every handler's calls in one chunked round.

    Args:
        batcher: Batcher to send through
        handlers: Handlers to run

    Returns:
        One list of finished records per handler, in handler order
    """
    nested = await batcher.send_groups([handler.call_groups for handler in handlers])
    return [
        handler.finisher(groups) for handler, groups in zip(handlers, nested, strict=True)
    ]


__all__ = ["Handler", "template_handler", "run_handlers"]
