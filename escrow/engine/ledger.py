"""
escrow.engine.ledger — per-instance balance ledger.

One escrow instance holds value for many trades in a single pool per asset. The
ledger splits the raw on-hand balance into

    in_use     — reserved by automatic ("instant") trades, which never moved new
                 funds at creation but earmarked an earlier deposit
    committed  — backing freshly funded trades, plus dispute stakes held (native)
    free       — on_hand - in_use - committed; the only part a new automatic
                 trade may reserve or the seller may withdraw

Settling an automatic trade releases its reservation. When the payee is the
seller nothing moves (the value is simply un-earmarked); when the payee is a
third party the engine also transfers the value out, so `in_use` never exceeds
what is actually on hand.

Journal keys (per instance `c`): ("in_use", c, asset), ("committed", c, asset).
"""

from __future__ import annotations

import logging

from ..errors import InvalidArgument, InvalidState
from ..runtime.chain import Chain
from ..runtime.transfers import on_hand

log = logging.getLogger(__name__)


class BalanceLedger:
    def __init__(self, chain: Chain, contract: bytes) -> None:
        self._chain = chain
        self._c = contract

    def on_hand(self, asset: bytes) -> int:
        return on_hand(self._chain, asset, self._c)

    def in_use(self, asset: bytes) -> int:
        return int(self._chain.journal.get(("in_use", self._c, asset), 0))

    def committed(self, asset: bytes) -> int:
        return int(self._chain.journal.get(("committed", self._c, asset), 0))

    def free_balance(self, asset: bytes) -> int:
        return max(0, self.on_hand(asset) - self.in_use(asset) - self.committed(asset))

    # ----------------------------------------------------------- reservation

    def reserve(self, asset: bytes, amount: int) -> int:
        """Earmark `amount` of free balance for an automatic trade."""
        free = self.free_balance(asset)
        if free < amount:
            raise InvalidArgument(
                "not enough tokens in escrow", arg="amount", data={"free": free, "required": amount}
            )
        new = self._chain.journal.add(("in_use", self._c, asset), amount)
        log.debug("reserved", extra={"asset": asset, "amount": amount, "in_use": new})
        return new

    def release_reservation(self, asset: bytes, amount: int) -> int:
        cur = self.in_use(asset)
        if amount > cur:
            raise InvalidState("balance in use underflow", data={"in_use": cur, "release": amount})
        return self._chain.journal.add(("in_use", self._c, asset), -amount)

    # ------------------------------------------------------------ commitment

    def commit(self, asset: bytes, amount: int) -> int:
        return self._chain.journal.add(("committed", self._c, asset), amount)

    def uncommit(self, asset: bytes, amount: int) -> int:
        cur = self.committed(asset)
        if amount > cur:
            raise InvalidState("committed balance underflow", data={"committed": cur, "release": amount})
        return self._chain.journal.add(("committed", self._c, asset), -amount)


__all__ = ["BalanceLedger"]
