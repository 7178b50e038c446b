"""Placeholder values for identifiers that are not known yet."""

from typing import Optional

ZERO_BYTES32 = "0x" + "00" * 32
ZERO_ADDRESS = "0x" + "00" * 20


def is_unset(value: Optional[str]) -> bool:
    """True for None and for any all-zero hex value such as the placeholders above."""
    if not value or value == "0x":
        return True
    return int(value, 16) == 0
