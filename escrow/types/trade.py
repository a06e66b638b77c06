"""
escrow.types.trade — the per-trade record and the parameters that identify it.

A `TradeRecord` is immutable; transitions produce a new record via
`dataclasses.replace` and write it back through the journaled state store, so a
reverted call can never leave a half-mutated record behind.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict

from .address import ZERO_ADDRESS, to_hex

# `seller_can_cancel_after` sentinel: buyer confirmed payment, seller may never cancel.
SELLER_CANNOT_CANCEL = 1


@dataclass(frozen=True)
class TradeKey:
    """The five creation parameters every call re-derives the trade id from."""
    order_id: bytes
    seller: bytes
    buyer: bytes
    asset: bytes
    principal: int

    @property
    def is_native(self) -> bool:
        return self.asset == ZERO_ADDRESS


@dataclass(frozen=True)
class TradeRecord:
    """
    Stored state of an open trade.

    seller_can_cancel_after:
        Unix timestamp after which the seller may cancel, or SELLER_CANNOT_CANCEL (1)
        once the buyer has marked the trade as paid. Never 0 for a live record.
    fee:
        Total fee (protocol + partner) in the trade's asset, frozen at creation.
    protocol_fee_share:
        Part of `fee` owed to the fee recipient; the remainder goes to `partner`.
    """
    key: TradeKey
    seller_can_cancel_after: int
    fee: int
    protocol_fee_share: int
    partner: bytes = ZERO_ADDRESS
    dispute: bool = False
    automatic: bool = False

    @property
    def exists(self) -> bool:
        return True

    @property
    def paid(self) -> bool:
        return self.seller_can_cancel_after == SELLER_CANNOT_CANCEL

    @property
    def partner_fee_share(self) -> int:
        return self.fee - self.protocol_fee_share

    @property
    def required_amount(self) -> int:
        """Principal plus fee: what funding or reservation backs this trade."""
        return self.key.principal + self.fee

    def mark_paid(self) -> "TradeRecord":
        return replace(self, seller_can_cancel_after=SELLER_CANNOT_CANCEL)

    def mark_disputed(self) -> "TradeRecord":
        return replace(self, dispute=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exists": True,
            "order_id": "0x" + self.key.order_id.hex(),
            "seller": to_hex(self.key.seller),
            "buyer": to_hex(self.key.buyer),
            "asset": to_hex(self.key.asset),
            "principal": self.key.principal,
            "seller_can_cancel_after": self.seller_can_cancel_after,
            "fee": self.fee,
            "protocol_fee_share": self.protocol_fee_share,
            "partner": to_hex(self.partner),
            "dispute": self.dispute,
            "automatic": self.automatic,
        }


__all__ = ["SELLER_CANNOT_CANCEL", "TradeKey", "TradeRecord"]
