"""Address handling shared by the pool models.

Addresses are carried around as lowercase hex strings with a 0x prefix.
Checksumming only happens at the web3 boundary.
"""

import re
from typing import Annotated

from pydantic import AfterValidator, Field

ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"

_ADDRESS_RE = re.compile(ADDRESS_PATTERN)


def normalize_address(address: str) -> str:
    """Lowercase an address and make sure it carries the 0x prefix.

    No validation is done; registry keys, call targets and API path
    parameters all go through here so they compare equal.
    """
    lowered = address.lower()
    return lowered if lowered.startswith("0x") else f"0x{lowered}"


def is_valid_address(address: object) -> bool:
    """True for a 0x-prefixed string of 40 hex digits."""
    return isinstance(address, str) and _ADDRESS_RE.match(address) is not None


Address = Annotated[str, Field(pattern=ADDRESS_PATTERN), AfterValidator(normalize_address)]


__all__ = ["ADDRESS_PATTERN", "Address", "is_valid_address", "normalize_address"]
