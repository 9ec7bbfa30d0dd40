"""Address resolution for freshly deployed converters.

A pool created by a transaction is only discoverable once the receipt is
mined. The receipt is polled a fixed number of times at a fixed interval.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any, Protocol

import structlog
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound

from poolview.constants import RECEIPT_POLL_ATTEMPTS, RECEIPT_POLL_INTERVAL_SECONDS
from poolview.errors import ResolutionTimeoutError
from poolview.models.types import normalize_address

logger = structlog.get_logger()


class ReceiptSource(Protocol):
    """Protocol for transaction receipt lookups."""

    async def get_receipt(self, tx_hash: str) -> Mapping[str, Any] | None:
        """Receipt for a transaction, or None while it is pending."""
        ...


class Web3ReceiptSource:
    """Receipt lookups over JSON-RPC."""

    def __init__(self, w3: AsyncWeb3):
        self.w3 = w3

    async def get_receipt(self, tx_hash: str) -> Mapping[str, Any] | None:
        try:
            return await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None


def new_address_from_receipt(receipt: Mapping[str, Any]) -> str | None:
    """Address of the contract a transaction created.

    The first log emitter is the new converter when a factory deployed it;
    otherwise the receipt's contractAddress is used.
    """
    logs = receipt.get("logs") or []
    if logs and logs[0].get("address"):
        return normalize_address(logs[0]["address"])
    address = receipt.get("contractAddress")
    return normalize_address(address) if address else None


async def wait_for_new_address(
    source: ReceiptSource,
    tx_hash: str,
    *,
    attempts: int = RECEIPT_POLL_ATTEMPTS,
    interval: float = RECEIPT_POLL_INTERVAL_SECONDS,
) -> str:
    """Poll for a transaction receipt and return the address it created.

    Args:
        source: Receipt source to poll
        tx_hash: Transaction hash
        attempts: Polls before giving up
        interval: Seconds between polls

    Returns:
        The new contract address

    Raises:
        ResolutionTimeoutError: If no receipt with an address arrived in time
    """
    for attempt in range(1, attempts + 1):
        receipt = await source.get_receipt(tx_hash)
        if receipt is not None:
            address = new_address_from_receipt(receipt)
            if address is not None:
                logger.info("new_address_resolved", tx_hash=tx_hash, address=address, attempt=attempt)
                return address
        logger.debug("receipt_pending", tx_hash=tx_hash, attempt=attempt)
        if attempt < attempts:
            await asyncio.sleep(interval)

    logger.error("new_address_timeout", tx_hash=tx_hash, attempts=attempts)
    raise ResolutionTimeoutError(tx_hash, attempts)


__all__ = [
    "ReceiptSource",
    "Web3ReceiptSource",
    "new_address_from_receipt",
    "wait_for_new_address",
]
