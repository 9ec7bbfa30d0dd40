"""Test helpers module for shared test utilities.

This module consolidates common test utilities to reduce duplication:
- constants: Token and contract addresses
- factories: Pool factory functions
- chain: Fake chain state served through the mock aggregation endpoint
"""

from tests.helpers.chain import FakeChain, encode_output
from tests.helpers.constants import (
    ANCHOR_1,
    ANCHOR_2,
    ANCHOR_3,
    ANCHOR_4,
    BNT,
    CONTRACT_REGISTRY,
    CONVERTER_1,
    CONVERTER_2,
    CONVERTER_3,
    CONVERTER_4,
    CONVERTER_REGISTRY,
    DAI,
    ETH,
    LINK,
    OWNER,
    POOL_TOKEN_A,
    POOL_TOKEN_B,
    TOKEN_DECIMALS,
    USDB,
    USDC,
)
from tests.helpers.factories import make_fixed_pool, make_reserve, make_weighted_pool

__all__ = [
    # Constants
    "ETH",
    "BNT",
    "USDB",
    "DAI",
    "USDC",
    "LINK",
    "TOKEN_DECIMALS",
    "ANCHOR_1",
    "ANCHOR_2",
    "ANCHOR_3",
    "ANCHOR_4",
    "CONVERTER_1",
    "CONVERTER_2",
    "CONVERTER_3",
    "CONVERTER_4",
    "POOL_TOKEN_A",
    "POOL_TOKEN_B",
    "OWNER",
    "CONTRACT_REGISTRY",
    "CONVERTER_REGISTRY",
    # Factories
    "make_reserve",
    "make_fixed_pool",
    "make_weighted_pool",
    # Chain
    "FakeChain",
    "encode_output",
]
