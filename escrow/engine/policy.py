"""
escrow.engine.policy — versioned global policy and its read-only capability.

The factory owns a `PolicyStore`; every escrow instance it deploys receives a
`PolicyReader` and nothing else, so instances can read but never change policy.
Each change produces a new frozen `PolicySnapshot` with `version + 1`.
Snapshots live in the host journal, so a reverted owner call leaves the policy
exactly as it was.

What instances read when:
  • fee rate, partner table, discount: at trade creation (the trade's fee is then frozen)
  • pause flag: at trade creation only (settlement is never paused)
  • dispute stake: when a party opens a dispute
  • arbitrator, fee recipient: when resolving / paying out
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from ..errors import InvalidArgument
from ..state.journal import Journal
from ..types.address import ZERO_ADDRESS
from .credentials import HoldsDiscountCredential, NoDiscount
from .fees import validate_bps


@dataclass(frozen=True)
class PolicySnapshot:
    version: int
    arbitrator: bytes
    fee_recipient: bytes
    fee_bps: int
    dispute_stake: int
    partner_fees: Mapping[bytes, int] = field(default_factory=lambda: MappingProxyType({}))
    discount: HoldsDiscountCredential = field(default_factory=NoDiscount)
    paused: bool = False
    min_waiting_time: int = 15 * 60
    max_waiting_time: int = 24 * 60 * 60

    def partner_fee_bps(self, partner: bytes) -> int:
        if partner == ZERO_ADDRESS:
            return 0
        return int(self.partner_fees.get(partner, 0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "arbitrator": "0x" + self.arbitrator.hex(),
            "fee_recipient": "0x" + self.fee_recipient.hex(),
            "fee_bps": self.fee_bps,
            "dispute_stake": self.dispute_stake,
            "partner_fees": {"0x" + k.hex(): v for k, v in self.partner_fees.items()},
            "discount": "0x" + self.discount.address.hex(),
            "paused": self.paused,
        }


def _check(snapshot: PolicySnapshot) -> PolicySnapshot:
    if snapshot.arbitrator == ZERO_ADDRESS:
        raise InvalidArgument("invalid arbitrator", arg="arbitrator")
    if snapshot.fee_recipient == ZERO_ADDRESS:
        raise InvalidArgument("invalid fee recipient", arg="fee_recipient")
    validate_bps(snapshot.fee_bps)
    for bps in snapshot.partner_fees.values():
        validate_bps(bps, name="partner_fee_bps")
    if snapshot.dispute_stake <= 0:
        raise InvalidArgument("dispute stake must be positive", arg="dispute_stake")
    return snapshot


class PolicyStore:
    """Writable policy, held by the factory only."""

    def __init__(self, journal: Journal, owner: bytes, initial: PolicySnapshot) -> None:
        self._j = journal
        self._key = ("policy", owner)
        self._j.set(self._key, _check(initial))

    def current(self) -> PolicySnapshot:
        return self._j.get(self._key)

    def update(self, **changes: Any) -> PolicySnapshot:
        cur = self.current()
        if "partner_fees" in changes:
            changes["partner_fees"] = MappingProxyType(dict(changes["partner_fees"]))
        nxt = _check(replace(cur, version=cur.version + 1, **changes))
        self._j.set(self._key, nxt)
        return nxt

    def reader(self) -> "PolicyReader":
        return PolicyReader(self)


class PolicyReader:
    """Read-only view of a PolicyStore handed to escrow instances."""

    __slots__ = ("_store",)

    def __init__(self, store: PolicyStore) -> None:
        self._store = store

    def current(self) -> PolicySnapshot:
        return self._store.current()

    @property
    def version(self) -> int:
        return self.current().version


def snapshot_from(
    *,
    arbitrator: bytes,
    fee_recipient: bytes,
    fee_bps: int,
    dispute_stake: int,
    discount: Optional[HoldsDiscountCredential] = None,
    min_waiting_time: int = 15 * 60,
    max_waiting_time: int = 24 * 60 * 60,
) -> PolicySnapshot:
    return PolicySnapshot(
        version=1,
        arbitrator=arbitrator,
        fee_recipient=fee_recipient,
        fee_bps=fee_bps,
        dispute_stake=dispute_stake,
        discount=discount or NoDiscount(),
        min_waiting_time=min_waiting_time,
        max_waiting_time=max_waiting_time,
    )


__all__ = ["PolicySnapshot", "PolicyStore", "PolicyReader", "snapshot_from"]
