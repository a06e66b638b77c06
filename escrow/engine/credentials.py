"""
escrow.engine.credentials — the fee-discount capability.

Holding at least one unit of a designated non-fungible collection waives the
protocol fee. The engine only asks one question, `holds(address) -> bool`; the
answer comes from one of:

  • NoDiscount            — nobody holds anything (no collection configured)
  • CollectionCredential  — backed by a collection exposing `balance_of(owner)`
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from ..types.address import ZERO_ADDRESS


@runtime_checkable
class HoldsDiscountCredential(Protocol):
    address: bytes

    def holds(self, account: bytes) -> bool: ...


class NoDiscount:
    address = ZERO_ADDRESS

    def holds(self, account: bytes) -> bool:
        return False

    def __repr__(self) -> str:
        return "NoDiscount()"


class CollectionCredential:
    def __init__(self, collection: Any) -> None:
        self.collection = collection
        self.address = getattr(collection, "address", ZERO_ADDRESS)

    def holds(self, account: bytes) -> bool:
        return int(self.collection.balance_of(account)) > 0

    def __repr__(self) -> str:
        return f"CollectionCredential(0x{self.address.hex()})"


def as_credential(source: Optional[Any]) -> HoldsDiscountCredential:
    """
    Coerce a configuration value into a credential check:
    None → NoDiscount, a credential → itself, a collection → CollectionCredential.
    """
    if source is None:
        return NoDiscount()
    if isinstance(source, HoldsDiscountCredential):
        return source
    if hasattr(source, "balance_of"):
        return CollectionCredential(source)
    raise TypeError(f"cannot use {type(source).__name__} as a discount credential")


__all__ = ["HoldsDiscountCredential", "NoDiscount", "CollectionCredential", "as_credential"]
