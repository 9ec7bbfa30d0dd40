"""Per-entity call templates: building call groups and decoding results.

A template maps query names to contract calls for one target entity. Every
entity handed to build_call_groups() must produce the same query names in the
same order, so results can be decoded positionally.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeAlias

import structlog
from eth_abi.exceptions import DecodingError

from poolview.codec.methods import ContractCall
from poolview.errors import CallGroupMismatchError
from poolview.models.types import normalize_address
from poolview.multicall.endpoint import Call, CallResult

logger = structlog.get_logger()

CallTemplate: TypeAlias = dict[str, ContractCall]
TemplateFn: TypeAlias = Callable[[str], CallTemplate]


@dataclass(frozen=True)
class DecodedRecord:
    """Decoded fields for one entity.

    Fields whose call reverted or whose payload failed to decode (malformed
    ABI data, invalid UTF-8 in a string) are None.
    """

    origin: str
    data: dict[str, Any]

    def __getitem__(self, name: str) -> Any:
        return self.data[name]

    def get(self, name: str, default: Any = None) -> Any:
        value = self.data.get(name)
        return default if value is None else value

    @property
    def missing(self) -> list[str]:
        return [name for name, value in self.data.items() if value is None]

    def has(self, *names: str) -> bool:
        """True if every named field decoded."""
        return all(self.data.get(name) is not None for name in names)


def build_call_groups(entities: Sequence[str], template_fn: TemplateFn) -> list[list[Call]]:
    """Build one call group per entity from a template function.

    Queries with no arguments, or with identical arguments for every entity,
    are encoded once and reused. Queries whose arguments vary are encoded per
    entity.

    Args:
        entities: Target addresses
        template_fn: Produces the template for one entity

    Returns:
        One list of calls per entity, in template field order

    Raises:
        CallGroupMismatchError: If templates disagree on query names or order
    """
    templates = [template_fn(entity) for entity in entities]
    if not templates:
        return []

    names = list(templates[0])
    for entity, template in zip(entities, templates, strict=True):
        if list(template) != names:
            raise CallGroupMismatchError(
                f"Template for {entity} has fields {list(template)}, expected {names}"
            )

    static: dict[str, bytes] = {}
    for name in names:
        first = templates[0][name]
        if not first.args or all(template[name] == first for template in templates[1:]):
            static[name] = first.encode()

    groups = []
    for entity, template in zip(entities, templates, strict=True):
        target = normalize_address(entity)
        groups.append(
            [
                Call(target=target, data=static[name] if name in static else template[name].encode())
                for name in names
            ]
        )
    return groups


def decode_call_group(template: CallTemplate, results: Sequence[CallResult]) -> DecodedRecord:
    """Decode one entity's results against its template.

    Args:
        template: The template the calls were built from
        results: Results for exactly the template's calls, in order

    Returns:
        The decoded record; failed fields are None

    Raises:
        CallGroupMismatchError: If origins differ or counts do not match
    """
    origins = {normalize_address(result.origin) for result in results}
    if len(origins) != 1:
        raise CallGroupMismatchError(
            f"Was expecting all origin addresses to be the same, got {sorted(origins)}"
        )
    if len(results) != len(template):
        raise CallGroupMismatchError(
            f"Template has {len(template)} fields but {len(results)} results were returned"
        )

    origin = origins.pop()
    data: dict[str, Any] = {}
    for (name, call), result in zip(template.items(), results, strict=True):
        if not result.success:
            data[name] = None
            continue
        try:
            data[name] = call.method.decode_output(result.data)
        except (DecodingError, UnicodeDecodeError, ValueError) as e:
            logger.warning(
                "field_decode_failed",
                origin=origin,
                field=name,
                signature=call.method.signature,
                error=str(e),
            )
            data[name] = None
    return DecodedRecord(origin=origin, data=data)


def decode_call_groups(
    entities: Sequence[str], template_fn: TemplateFn, groups: Sequence[Sequence[CallResult]]
) -> list[DecodedRecord]:
    """Decode a list of groups produced by build_call_groups()."""
    if len(entities) != len(groups):
        raise CallGroupMismatchError(
            f"Expected {len(entities)} call groups, got {len(groups)}"
        )
    return [
        decode_call_group(template_fn(entity), group)
        for entity, group in zip(entities, groups, strict=True)
    ]


__all__ = [
    "CallTemplate",
    "TemplateFn",
    "DecodedRecord",
    "build_call_groups",
    "decode_call_group",
    "decode_call_groups",
]
