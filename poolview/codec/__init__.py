"""Call templates, ABI encoding and tolerant decoding."""

from poolview.codec.handlers import Handler, run_handlers, template_handler
from poolview.codec.methods import ContractCall, ContractMethod
from poolview.codec.templates import (
    CallTemplate,
    DecodedRecord,
    TemplateFn,
    build_call_groups,
    decode_call_group,
    decode_call_groups,
)
from poolview.multicall.shape import flatten, rebuild_from_index, shape_of

__all__ = [
    "CallTemplate",
    "ContractCall",
    "ContractMethod",
    "DecodedRecord",
    "Handler",
    "TemplateFn",
    "build_call_groups",
    "decode_call_group",
    "decode_call_groups",
    "flatten",
    "rebuild_from_index",
    "run_handlers",
    "shape_of",
    "template_handler",
]
