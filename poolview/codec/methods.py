"""Contract method descriptors and call encoding."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from eth_abi import decode, encode  # type: ignore[attr-defined]
from eth_utils import function_signature_to_4byte_selector

from poolview.models.types import normalize_address
from poolview.multicall.endpoint import Call


@dataclass(frozen=True)
class ContractMethod:
    """A read-only contract method: name plus ABI input and output types.

    Calling the method with arguments produces a ContractCall.
    """

    name: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    selector: bytes = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "selector", bytes(function_signature_to_4byte_selector(self.signature))
        )

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    def __call__(self, *args: Any) -> ContractCall:
        if len(args) != len(self.inputs):
            raise TypeError(f"{self.signature} takes {len(self.inputs)} arguments, got {len(args)}")
        return ContractCall(method=self, args=tuple(args))

    def decode_output(self, data: bytes) -> Any:
        """Decode return data.

        Single-output methods return the bare value, multi-output methods a
        tuple. Addresses come back lowercased.

        Raises:
            eth_abi.exceptions.DecodingError: If the data does not match the outputs
            UnicodeDecodeError: If a string output is not valid UTF-8
        """
        values = decode(list(self.outputs), data)
        decoded = tuple(
            _normalize(kind, value) for kind, value in zip(self.outputs, values, strict=True)
        )
        if len(decoded) == 1:
            return decoded[0]
        return decoded


def _normalize(kind: str, value: Any) -> Any:
    if kind == "address":
        return normalize_address(value)
    if kind == "address[]":
        return tuple(normalize_address(v) for v in value)
    return value


@dataclass(frozen=True)
class ContractCall:
    """A method bound to its arguments, ready to encode."""

    method: ContractMethod
    args: tuple[Any, ...] = ()

    @property
    def name(self) -> str:
        return self.method.name

    def encode(self) -> bytes:
        """Encode calldata: selector followed by ABI-encoded arguments."""
        if not self.method.inputs:
            return self.method.selector
        return self.method.selector + encode(list(self.method.inputs), list(self.args))

    def to_call(self, target: str) -> Call:
        return Call(target=normalize_address(target), data=self.encode())


__all__ = ["ContractMethod", "ContractCall"]
