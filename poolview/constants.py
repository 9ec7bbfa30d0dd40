"""Protocol constants for the pool aggregator.

Centralizes well-known addresses and protocol parameters.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from poolview.models.types import is_valid_address, normalize_address

# Reserve weights and conversion fees are expressed in parts-per-million
PPM = 1_000_000

# Candidate chunk sizes for aggregated calls, largest first
DEFAULT_CHUNK_SIZES: tuple[int, ...] = (5000, 150, 45, 15, 5)

# Anchor/converter pairs assembled per round
POOL_BATCH_SIZE = 30

# Safety margins on liquidity quotes
FUND_REWARD_HAIRCUT = Decimal("0.99")
WITHDRAW_RETURN_BUFFER = Decimal("0.98")

# Probe trade size as a fraction of the source reserve balance (0.001%)
SLIPPAGE_PROBE_FRACTION = Decimal("0.00001")

# Transaction receipt polling for freshly deployed converters
RECEIPT_POLL_ATTEMPTS = 10
RECEIPT_POLL_INTERVAL_SECONDS = 1.0


def _validate_address(name: str, address: str) -> str:
    """Validate an address constant and return it lowercased.

    Args:
        name: Name of the constant (for error messages)
        address: The address to validate

    Returns:
        The normalized address

    Raises:
        ValueError: If the address is invalid
    """
    normalized = normalize_address(address)
    if not is_valid_address(normalized):
        raise ValueError(f"Invalid {name} address: {address} (must be 0x + 40 hex chars)")
    return normalized


# Placeholder address converters use for the native ether reserve
ETH_RESERVE = _validate_address("ETH reserve", "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE")
ETH_RESERVE_SYMBOL = "ETH"
ETH_RESERVE_DECIMALS = 18

BNT = _validate_address("BNT", "0x1F573D6Fb3F13d689FF844B4cE37794d79a7FF1C")
USDB = _validate_address("USDB", "0x309627af60F0926daa6041B8279484312f2bf060")

# Reserves that count as the network side of a pool when pricing feeds.
# USD pegged network tokens are priced at exactly 1.
NETWORK_TOKENS: tuple[str, ...] = (USDB, BNT)
USD_PEGGED_NETWORK_TOKENS: frozenset[str] = frozenset({USDB})


@dataclass(frozen=True)
class NetworkVariables:
    """Per-chain deployment addresses.

    Attributes:
        chain_id: EIP-155 chain id
        name: Human readable network name
        contract_registry: Root contract registry address
        network_token: The network reference token (priced in USD by an oracle)
        eth_reserve: Placeholder address used for the native ether reserve
        multicall: Aggregation contract serving batched reads
    """

    chain_id: int
    name: str
    contract_registry: str
    network_token: str
    eth_reserve: str
    multicall: str


MAINNET = NetworkVariables(
    chain_id=1,
    name="mainnet",
    contract_registry=_validate_address(
        "mainnet registry", "0x52Ae12ABe5D8BD778BD5397F99cA900624CfADD4"
    ),
    network_token=BNT,
    eth_reserve=ETH_RESERVE,
    multicall=_validate_address("mainnet multicall", "0x5Eb3fa2DFECdDe21C950813C665E9364fa609bD2"),
)

ROPSTEN = NetworkVariables(
    chain_id=3,
    name="ropsten",
    contract_registry=_validate_address(
        "ropsten registry", "0xA6DB4B0963C37Bc959CbC0a874B5bDDf2250f26F"
    ),
    network_token=_validate_address("ropsten BNT", "0x98474564A00d15989F16BFB7c162c782b0e2b336"),
    eth_reserve=ETH_RESERVE,
    multicall=_validate_address("ropsten multicall", "0xf3ad7e31b052ff96566eedd218a823430e74b406"),
)

NETWORKS: dict[int, NetworkVariables] = {n.chain_id: n for n in (MAINNET, ROPSTEN)}


def get_network_variables(chain_id: int) -> NetworkVariables:
    """Look up deployment addresses for a chain.

    Raises:
        ValueError: If the chain is not supported
    """
    try:
        return NETWORKS[chain_id]
    except KeyError:
        raise ValueError(f"Unsupported chain id: {chain_id}") from None


# Converter type discriminators reported by converterType()
CONVERTER_TYPE_FIXED_RATIO = (1, 32)
CONVERTER_TYPE_WEIGHTED = 2

# Legacy converters whose on-chain version() is wrong or missing.
# Keys are lowercase converter addresses.
KNOWN_CONVERTER_VERSIONS: dict[str, int] = {}


__all__ = [
    "PPM",
    "DEFAULT_CHUNK_SIZES",
    "POOL_BATCH_SIZE",
    "FUND_REWARD_HAIRCUT",
    "WITHDRAW_RETURN_BUFFER",
    "SLIPPAGE_PROBE_FRACTION",
    "RECEIPT_POLL_ATTEMPTS",
    "RECEIPT_POLL_INTERVAL_SECONDS",
    "ETH_RESERVE",
    "ETH_RESERVE_SYMBOL",
    "ETH_RESERVE_DECIMALS",
    "BNT",
    "USDB",
    "NETWORK_TOKENS",
    "USD_PEGGED_NETWORK_TOKENS",
    "NetworkVariables",
    "MAINNET",
    "ROPSTEN",
    "NETWORKS",
    "get_network_variables",
    "CONVERTER_TYPE_FIXED_RATIO",
    "CONVERTER_TYPE_WEIGHTED",
    "KNOWN_CONVERTER_VERSIONS",
]
