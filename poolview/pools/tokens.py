"""Known reserve token metadata.

Reserve tokens missing from the registry are fetched on chain (symbol and
decimals) during assembly and polished before use.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from poolview.constants import ETH_RESERVE, ETH_RESERVE_DECIMALS, ETH_RESERVE_SYMBOL
from poolview.models.pool import ReserveToken
from poolview.models.types import normalize_address

logger = structlog.get_logger()

ETH_TOKEN = ReserveToken(
    contract=ETH_RESERVE, symbol=ETH_RESERVE_SYMBOL, decimals=ETH_RESERVE_DECIMALS
)


class TokenRegistry:
    """Lookup of reserve token metadata by contract address."""

    def __init__(self, tokens: Iterable[ReserveToken] = ()) -> None:
        self._tokens: dict[str, ReserveToken] = {ETH_TOKEN.contract: ETH_TOKEN}
        for token in tokens:
            self.add(token)

    def __contains__(self, contract: str) -> bool:
        return normalize_address(contract) in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def get(self, contract: str) -> ReserveToken | None:
        return self._tokens.get(normalize_address(contract))

    def add(self, token: ReserveToken) -> None:
        contract = normalize_address(token.contract)
        if contract == ETH_TOKEN.contract:
            return
        self._tokens[contract] = ReserveToken(
            contract=contract,
            symbol=token.symbol,
            decimals=token.decimals,
            network=token.network,
        )

    def missing(self, contracts: Iterable[str]) -> list[str]:
        """Contracts not yet known, deduplicated, in first-seen order."""
        out: list[str] = []
        for contract in contracts:
            contract = normalize_address(contract)
            if contract not in self._tokens and contract not in out:
                out.append(contract)
        return out

    def polish(self, contract: str, symbol: str | None, decimals: int | None) -> ReserveToken | None:
        """Turn fetched token fields into a ReserveToken, filling gaps from known data.

        The ether placeholder is always ETH with 18 decimals. A blank symbol or
        missing decimals fall back to any known entry. Tokens whose decimals
        cannot be determined are dropped.

        Args:
            contract: Token address
            symbol: Symbol read on chain, if the call succeeded
            decimals: Decimals read on chain, if the call succeeded

        Returns:
            The token, or None if it cannot be used as a reserve
        """
        contract = normalize_address(contract)
        if contract == ETH_TOKEN.contract:
            return ETH_TOKEN

        known = self._tokens.get(contract)
        if not symbol:
            symbol = known.symbol if known is not None else None
        if decimals is None and known is not None:
            decimals = known.decimals

        if decimals is None:
            logger.warning("token_dropped", contract=contract, reason="unknown_decimals")
            return None
        if not symbol:
            logger.warning("token_symbol_missing", contract=contract)
            symbol = contract[:8]

        return ReserveToken(contract=contract, symbol=symbol, decimals=int(decimals))


__all__ = ["ETH_TOKEN", "TokenRegistry"]
