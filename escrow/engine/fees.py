"""
escrow.engine.fees — protocol and partner fee computation.

Fees are expressed in basis points of the principal and charged in the trade's
own asset:

    protocol_bps = 0 if the caller holds the discount credential else policy.fee_bps
    total_bps    = protocol_bps + partner_fee_bps[partner]
    fee          = principal * total_bps // 10_000
    protocol     = principal * protocol_bps // 10_000
    partner      = fee - protocol

Integer floor division throughout; small principals legitimately yield a zero
fee (there is no minimum fee).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ..errors import InvalidArgument
from ..types.address import ZERO_ADDRESS, AddressLike, to_address

BPS_DENOM = 10_000  # basis-points denominator (100% = 10_000)


def validate_bps(bps: int, *, name: str = "fee_bps") -> int:
    if isinstance(bps, bool) or not isinstance(bps, int):
        raise InvalidArgument(f"{name} must be an integer", arg=name)
    if not 0 <= bps <= BPS_DENOM:
        raise InvalidArgument(f"{name} must be in [0, {BPS_DENOM}]", arg=name)
    return bps


def fee_amount(principal: int, bps: int) -> int:
    return principal * bps // BPS_DENOM


@dataclass(frozen=True)
class FeeQuote:
    """
    Fee breakdown for one trade. All values are integers in the trade's asset.
    """
    principal: int
    protocol_bps: int
    partner_bps: int
    fee: int               # protocol + partner, floored as a whole
    protocol_share: int    # floored protocol part of `fee`

    @property
    def partner_share(self) -> int:
        return self.fee - self.protocol_share

    @property
    def total_bps(self) -> int:
        return self.protocol_bps + self.partner_bps

    @property
    def total(self) -> int:
        """Principal plus fee: what the seller funds or reserves."""
        return self.principal + self.fee


def quote_fee(principal: int, *, protocol_bps: int, partner_bps: int = 0) -> FeeQuote:
    if principal < 0:
        raise InvalidArgument("principal must be non-negative", arg="principal")
    total_bps = protocol_bps + partner_bps
    return FeeQuote(
        principal=principal,
        protocol_bps=protocol_bps,
        partner_bps=partner_bps,
        fee=fee_amount(principal, total_bps),
        protocol_share=fee_amount(principal, protocol_bps),
    )


class FeeCalculator:
    """
    Fee rules bound to one policy snapshot.

    `policy` is anything exposing `fee_bps`, `discount` (a HoldsDiscountCredential)
    and `partner_fee_bps(partner)`, normally an `escrow.engine.policy.PolicySnapshot`.
    """

    def __init__(self, policy: Any) -> None:
        self.policy = policy

    def protocol_fee(self, caller: AddressLike) -> int:
        if self.policy.discount.holds(to_address(caller)):
            return 0
        return self.policy.fee_bps

    def partner_fee(self, partner: Optional[AddressLike]) -> int:
        p = to_address(partner)
        if p == ZERO_ADDRESS:
            return 0
        return self.policy.partner_fee_bps(p)

    def total_fee(self, caller: AddressLike, partner: Optional[AddressLike] = None) -> int:
        return self.protocol_fee(caller) + self.partner_fee(partner)

    def quote(self, caller: AddressLike, principal: int, partner: Optional[AddressLike] = None) -> FeeQuote:
        return quote_fee(
            principal,
            protocol_bps=self.protocol_fee(caller),
            partner_bps=self.partner_fee(partner),
        )


__all__ = [
    "BPS_DENOM",
    "validate_bps",
    "fee_amount",
    "FeeQuote",
    "quote_fee",
    "FeeCalculator",
]
