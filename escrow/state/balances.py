"""
escrow.state.balances — safe balance ops over the journaled state.

This module provides:
- debit(...) / credit(...): balance updates with non-negativity checks.
- safe_transfer(...): from→to movement with a sufficient-funds guard.
- NativeBalances / TokenBalances: adapters exposing the minimal balance API
  for native currency and for one fungible token.

The balance API every adapter satisfies:

    class BalanceAccess(Protocol):
        def get_balance(self, address: bytes) -> int: ...
        def set_balance(self, address: bytes, value: int) -> None: ...

All amounts are integers in base units.
"""

from __future__ import annotations

from typing import Dict, Protocol

from ..errors import InsufficientBalance, InvalidArgument
from .journal import Journal


# =============================================================================
# Balance access protocol
# =============================================================================

class BalanceAccess(Protocol):
    def get_balance(self, address: bytes) -> int: ...
    def set_balance(self, address: bytes, value: int) -> None: ...


class NativeBalances:
    """Native currency balances stored under ("native", addr)."""

    def __init__(self, journal: Journal) -> None:
        self._j = journal

    def get_balance(self, address: bytes) -> int:
        return int(self._j.get(("native", address), 0))

    def set_balance(self, address: bytes, value: int) -> None:
        if value:
            self._j.set(("native", address), int(value))
        else:
            self._j.delete(("native", address))


class TokenBalances:
    """Balances of one fungible token stored under ("token", token, holder)."""

    def __init__(self, journal: Journal, token: bytes) -> None:
        self._j = journal
        self.token = token

    def get_balance(self, address: bytes) -> int:
        return int(self._j.get(("token", self.token, address), 0))

    def set_balance(self, address: bytes, value: int) -> None:
        if value:
            self._j.set(("token", self.token, address), int(value))
        else:
            self._j.delete(("token", self.token, address))

    def total_supply(self) -> int:
        return sum(int(v) for _, v in self._j.items(("token", self.token)))


# =============================================================================
# Internal helpers
# =============================================================================

def _ensure_non_negative(amount: int) -> None:
    if amount < 0:
        raise InvalidArgument(f"amount must be >= 0, got {amount}", arg="amount")


# =============================================================================
# Public balance operations
# =============================================================================

def credit(state: BalanceAccess, address: bytes, amount: int) -> int:
    """
    Increase `address` balance by `amount` and return the new balance.
    """
    _ensure_non_negative(amount)
    cur = state.get_balance(address)
    if amount == 0:
        return cur
    new = cur + amount
    state.set_balance(address, new)
    return new


def debit(state: BalanceAccess, address: bytes, amount: int) -> int:
    """
    Decrease `address` balance by `amount` and return the new balance.
    Raises InsufficientBalance if the account cannot cover the debit.
    """
    _ensure_non_negative(amount)
    cur = state.get_balance(address)
    if amount == 0:
        return cur
    if cur < amount:
        raise InsufficientBalance(holder=address, have=cur, need=amount)
    new = cur - amount
    state.set_balance(address, new)
    return new


def safe_transfer(state: BalanceAccess, sender: bytes, recipient: bytes, amount: int) -> Dict[str, int]:
    """
    Transfer `amount` from `sender` to `recipient` with checks.

    No-op if sender == recipient or amount == 0 (after validation).
    Returns a dict with {"debited": amount, "credited": amount}.
    """
    _ensure_non_negative(amount)
    if amount == 0 or sender == recipient:
        return {"debited": 0, "credited": 0}
    debit(state, sender, amount)
    credit(state, recipient, amount)
    return {"debited": amount, "credited": amount}


__all__ = [
    "BalanceAccess",
    "NativeBalances",
    "TokenBalances",
    "credit",
    "debit",
    "safe_transfer",
]
