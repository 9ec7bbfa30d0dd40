"""Fake chain state served through MockAggregationEndpoint.

Responses are registered per (target, ContractCall) and ABI-encoded the way
the real contracts would return them. Anything not registered reverts.

Usage:
    chain = FakeChain()
    chain.add_token(DAI, "DAI", 18)
    chain.add_fixed_pool(ANCHOR_1, CONVERTER_1, (BNT, DAI), (10**21, 2 * 10**21), supply=5 * 10**20)
    batcher = chain.batcher()
"""

from collections.abc import Sequence
from typing import Any

from eth_abi import encode

from poolview.codec import abis
from poolview.codec.methods import ContractCall
from poolview.constants import DEFAULT_CHUNK_SIZES
from poolview.multicall import CallBatcher, MockAggregationEndpoint
from poolview.pools.discovery import ANCHORS_PER_LOOKUP, CONVERTER_REGISTRY_KEY
from tests.helpers.constants import OWNER, TOKEN_DECIMALS, TOKEN_SYMBOLS


def encode_output(call: ContractCall, *values: Any) -> bytes:
    """ABI-encode return values for a call's method."""
    return encode(list(call.method.outputs), list(values))


class FakeChain:
    """Contract read responses for tests."""

    def __init__(self, max_batch_size: int | None = None) -> None:
        self.endpoint = MockAggregationEndpoint(max_batch_size=max_batch_size)

    def batcher(self, chunk_sizes: Sequence[int] = DEFAULT_CHUNK_SIZES) -> CallBatcher:
        return CallBatcher(self.endpoint, chunk_sizes)

    def respond(self, target: str, call: ContractCall, *values: Any) -> None:
        self.endpoint.set_response(target, call.encode(), encode_output(call, *values))

    def respond_raw(self, target: str, call: ContractCall, payload: bytes) -> None:
        self.endpoint.set_response(target, call.encode(), payload)

    def revert(self, target: str, call: ContractCall) -> None:
        self.endpoint.clear_response(target, call.encode())

    def drop_next_batches(self, count: int = 1) -> None:
        """Make the next `count` batches fail in transport with ConnectionError."""
        self.endpoint.dropped_batches = count

    def add_token(self, address: str, symbol: str | None = None, decimals: int | None = None) -> None:
        self.respond(address, abis.SYMBOL(), symbol or TOKEN_SYMBOLS.get(address, "TKN"))
        if decimals is None:
            decimals = TOKEN_DECIMALS.get(address, 18)
        self.respond(address, abis.DECIMALS(), decimals)

    def add_converter(
        self,
        converter: str,
        anchor: str,
        reserves: tuple[str, str],
        *,
        converter_type: int | None,
        version: int = 46,
        fee_ppm: int = 3000,
        owner: str = OWNER,
    ) -> None:
        """Converter metadata; converter_type=None leaves converterType() reverting."""
        self.respond(converter, abis.OWNER(), owner)
        if converter_type is not None:
            self.respond(converter, abis.CONVERTER_TYPE(), converter_type)
        self.respond(converter, abis.VERSION(), version)
        self.respond(converter, abis.CONNECTOR_TOKEN_COUNT(), 2)
        self.respond(converter, abis.CONVERSION_FEE(), fee_ppm)
        self.respond(converter, abis.CONNECTOR_TOKENS(0), reserves[0])
        self.respond(converter, abis.CONNECTOR_TOKENS(1), reserves[1])
        self.respond(converter, abis.ANCHOR(), anchor)

    def add_fixed_pool(
        self,
        anchor: str,
        converter: str,
        reserves: tuple[str, str],
        balances: tuple[int, int],
        *,
        supply: int,
        symbol: str = "POOL",
        decimals: int = 18,
        converter_type: int | None = 1,
        **converter_kwargs: Any,
    ) -> None:
        """Fixed-ratio pool; balances and supply are raw units."""
        self.add_converter(
            converter, anchor, reserves, converter_type=converter_type, **converter_kwargs
        )
        self.respond(anchor, abis.SYMBOL(), symbol)
        self.respond(anchor, abis.DECIMALS(), decimals)
        self.respond(anchor, abis.TOTAL_SUPPLY(), supply)
        self.set_balances(converter, reserves, balances)

    def set_balances(self, converter: str, reserves: tuple[str, str], balances: tuple[int, int]) -> None:
        for reserve, balance in zip(reserves, balances, strict=True):
            self.respond(converter, abis.GET_CONNECTOR_BALANCE(reserve), balance)

    def add_weighted_pool(
        self,
        anchor: str,
        converter: str,
        reserves: tuple[str, str],
        staked_balances: tuple[int, int],
        weights: tuple[int, int],
        pool_tokens: tuple[str, str],
        *,
        symbol: str = "POOLC",
        decimals: int = 18,
        **converter_kwargs: Any,
    ) -> None:
        """Weighted pool; reserves[0] is the primary reserve, weights in ppm."""
        self.add_converter(converter, anchor, reserves, converter_type=2, **converter_kwargs)
        self.respond(anchor, abis.SYMBOL(), symbol)
        self.respond(anchor, abis.DECIMALS(), decimals)
        self.respond(anchor, abis.POOL_TOKENS(), list(pool_tokens))

        self.respond(converter, abis.PRIMARY_RESERVE_TOKEN(), reserves[0])
        self.respond(converter, abis.SECONDARY_RESERVE_TOKEN(), reserves[1])
        self.respond(converter, abis.EFFECTIVE_RESERVE_WEIGHTS(), *weights)
        for reserve, staked, pool_token in zip(reserves, staked_balances, pool_tokens, strict=True):
            self.respond(converter, abis.POOL_TOKEN(reserve), pool_token)
            self.respond(converter, abis.RESERVE_STAKED_BALANCE(reserve), staked)
            self.add_token(
                pool_token,
                f"{TOKEN_SYMBOLS.get(reserve, 'TKN')}P",
                TOKEN_DECIMALS.get(reserve, 18),
            )

    def add_converter_registry(
        self,
        contract_registry: str,
        converter_registry: str,
        pairs: Sequence[tuple[str, str]],
        *,
        anchors_per_lookup: int = ANCHORS_PER_LOOKUP,
    ) -> None:
        """Registry contracts listing (anchor, converter) pairs."""
        self.respond(contract_registry, abis.ADDRESS_OF(CONVERTER_REGISTRY_KEY), converter_registry)
        anchors = [anchor for anchor, _ in pairs]
        converters = [converter for _, converter in pairs]
        self.respond(converter_registry, abis.GET_ANCHORS(), anchors)
        for i in range(0, len(anchors), anchors_per_lookup):
            self.respond(
                converter_registry,
                abis.GET_CONVERTERS_BY_ANCHORS(anchors[i : i + anchors_per_lookup]),
                converters[i : i + anchors_per_lookup],
            )


__all__ = ["FakeChain", "encode_output"]
