"""Flatten nested call groups into one arena and slice results back.

A shape records how many items each innermost group held, at any nesting
depth: an int for a leaf group, a tuple of shapes for a list of groups. For
example two handlers over three entities of four fields each flatten into
24 calls with shape ((4, 4, 4), (4, 4, 4)).

Everything here is a pure function of its arguments.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeAlias, TypeVar

from poolview.multicall.endpoint import Call

T = TypeVar("T")

Shape: TypeAlias = int | tuple["Shape", ...]


def _is_leaf(nested: Sequence[Any]) -> bool:
    return all(isinstance(item, Call) for item in nested)


def shape_of(nested: Sequence[Any]) -> Shape:
    """Record the nesting of a call structure.

    Args:
        nested: A list of Calls, or a list of such lists, to any depth

    Returns:
        The shape descriptor
    """
    if _is_leaf(nested):
        return len(nested)
    return tuple(shape_of(child) for child in nested)


def flatten(nested: Sequence[Any]) -> list[Call]:
    """Flatten a nested call structure, depth first, preserving order."""
    if _is_leaf(nested):
        return list(nested)
    flat: list[Call] = []
    for child in nested:
        flat.extend(flatten(child))
    return flat


def rebuild_from_index(flat: Sequence[T], shape: Shape) -> Any:
    """Slice a flat result arena back into its original nesting.

    Args:
        flat: Results in the same order as flatten() produced the calls
        shape: Shape recorded by shape_of() before flattening

    Returns:
        Nested lists mirroring the shape, with results as leaves

    Raises:
        ValueError: If the arena length does not match the shape
    """

    def take(node: Shape, offset: int) -> tuple[Any, int]:
        if isinstance(node, int):
            return list(flat[offset : offset + node]), offset + node
        children = []
        for child in node:
            value, offset = take(child, offset)
            children.append(value)
        return children, offset

    rebuilt, consumed = take(shape, 0)
    if consumed != len(flat):
        raise ValueError(f"Shape covers {consumed} results but {len(flat)} were given")
    return rebuilt


def shape_size(shape: Shape) -> int:
    """Total number of leaves a shape covers."""
    if isinstance(shape, int):
        return shape
    return sum(shape_size(child) for child in shape)


__all__ = ["Shape", "shape_of", "flatten", "rebuild_from_index", "shape_size"]
