"""
escrow.types.address — 20-byte account addresses.

Addresses are raw `bytes` of length 20 everywhere inside the engine. Callers may
pass `0x`-prefixed hex strings at the public surface; `to_address()` normalizes
both shapes. The all-zero address doubles as the "native asset" marker and the
"no partner" marker.
"""

from __future__ import annotations

from typing import Optional, Union

from Crypto.Hash import keccak

ADDRESS_LEN = 20
ZERO_ADDRESS = b"\x00" * ADDRESS_LEN

AddressLike = Union[str, bytes, bytearray, memoryview]


def to_address(v: Optional[AddressLike], *, name: str = "address") -> bytes:
    """Normalize hex/bytes into a 20-byte address. `None` maps to the zero address."""
    if v is None:
        return ZERO_ADDRESS
    if isinstance(v, (bytes, bytearray, memoryview)):
        b = bytes(v)
    elif isinstance(v, str):
        s = v.strip()
        if s.startswith(("0x", "0X")):
            s = s[2:]
        try:
            b = bytes.fromhex(s)
        except ValueError as e:
            raise ValueError(f"{name}: invalid hex {v!r}") from e
    else:
        raise TypeError(f"{name} must be hex str or bytes, got {type(v).__name__}")
    if len(b) != ADDRESS_LEN:
        raise ValueError(f"{name} must be {ADDRESS_LEN} bytes, got {len(b)}")
    return b


def is_zero(addr: bytes) -> bool:
    return addr == ZERO_ADDRESS


def to_hex(addr: bytes) -> str:
    return "0x" + addr.hex()


def address_from_label(label: str) -> bytes:
    """
    Deterministic address for a human label (last 20 bytes of keccak256(label)).
    Handy for fixtures, devnets and scripted scenarios.
    """
    h = keccak.new(digest_bits=256)
    h.update(label.encode("utf-8"))
    return h.digest()[-ADDRESS_LEN:]


__all__ = [
    "ADDRESS_LEN",
    "ZERO_ADDRESS",
    "AddressLike",
    "to_address",
    "is_zero",
    "to_hex",
    "address_from_label",
]
