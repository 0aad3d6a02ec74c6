from __future__ import annotations

from typing import Any

from web3 import Web3

from .errors import InvalidAddress


def normalize_address(value: Any) -> str:
    """Return the EIP-55 checksum form of ``value``.

    Accepts any hex casing; raises `InvalidAddress` for anything that is not a
    20-byte hex address.
    """
    if not isinstance(value, str) or not Web3.is_address(value):
        raise InvalidAddress(f"not an address: {value!r}")
    return Web3.to_checksum_address(value)
