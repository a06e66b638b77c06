"""
escrow.engine.records — per-instance trade records and dispute-stake flags.

Layout in the host journal (per escrow instance `c`):

    ("trade", c, trade_id)          -> TradeRecord
    ("stake", c, trade_id, party)   -> native amount staked by `party` (absent = not staked)
"""

from __future__ import annotations

from typing import Optional, Tuple

from ..errors import NotFound
from ..state.journal import Journal
from ..types.trade import TradeRecord


class TradeStore:
    def __init__(self, journal: Journal, contract: bytes) -> None:
        self._j = journal
        self._c = contract

    # --------------------------------------------------------------- records

    def get(self, trade_id: bytes) -> Optional[TradeRecord]:
        return self._j.get(("trade", self._c, trade_id))

    def require(self, trade_id: bytes) -> TradeRecord:
        rec = self.get(trade_id)
        if rec is None:
            raise NotFound(trade_id=trade_id)
        return rec

    def exists(self, trade_id: bytes) -> bool:
        return self._j.contains(("trade", self._c, trade_id))

    def put(self, trade_id: bytes, record: TradeRecord) -> None:
        self._j.set(("trade", self._c, trade_id), record)

    def delete(self, trade_id: bytes) -> None:
        self._j.delete(("trade", self._c, trade_id))

    # ---------------------------------------------------------------- stakes

    def stake_of(self, trade_id: bytes, party: bytes) -> int:
        return int(self._j.get(("stake", self._c, trade_id, party), 0))

    def has_staked(self, trade_id: bytes, party: bytes) -> bool:
        return self.stake_of(trade_id, party) > 0

    def set_stake(self, trade_id: bytes, party: bytes, amount: int) -> None:
        self._j.set(("stake", self._c, trade_id, party), int(amount))

    def clear_stakes(self, trade_id: bytes, seller: bytes, buyer: bytes) -> Tuple[int, int]:
        """Remove both parties' stake entries; returns (seller_stake, buyer_stake)."""
        s = self.stake_of(trade_id, seller)
        b = self.stake_of(trade_id, buyer)
        self._j.delete(("stake", self._c, trade_id, seller))
        self._j.delete(("stake", self._c, trade_id, buyer))
        return s, b


__all__ = ["TradeStore"]
