"""
Account Identifiers

The ledger treats identifiers as opaque, immutable keys. Only the null
identifier has meaning to the core; format validation happens at the
API boundary.
"""

import re
from typing import Optional

ZERO_ADDRESS = "0x" + "0" * 40

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_zero_address(address: Optional[str]) -> bool:
    """Check if an identifier is the zero/null identifier"""
    if not address:
        return True
    return address.lower() == ZERO_ADDRESS


def is_valid_address(address: str) -> bool:
    """Check for the 0x-prefixed 40 hex digit form"""
    return isinstance(address, str) and bool(_ADDRESS_PATTERN.match(address))


def normalize_address(address: str) -> str:
    """
    Validate and lower-case an address

    Raises:
        ValueError: If the address is not 0x followed by 40 hex digits
    """
    if not is_valid_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return address.lower()
