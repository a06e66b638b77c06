"""
escrow.engine.settlement — terminal fund movement for a trade.

Every terminal transition (release, buyer cancel, seller cancel, dispute
resolution) funnels through `SettlementEngine.settle`, which runs in this order:

  1. delete the trade record and capture+clear both dispute-stake entries;
  2. release the trade's backing in the balance ledger;
  3. principal to the recipient;
  4. protocol share of the fee to the fee recipient (if > 0);
  5. partner share of the fee to the partner (if > 0);
  6. dispute stakes:
        neither staked             -> nothing
        only seller                -> refund seller
        only buyer                 -> refund buyer
        both, direct settlement    -> one stake to the recipient, other to fee recipient
        both, arbitrated           -> one stake to the winner, other to fee recipient

Steps 1–2 happen before any value leaves the contract, so a payee that calls
back into the escrow while being paid finds no record (NotFound). Any failed
transfer raises TransferFailure and the enclosing entrypoint reverts the lot.

Automatic trades: amounts owed to the seller are not transferred; releasing
the reservation is enough since the value never left the contract. Stakes are
always paid out in native currency with real transfers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .. import metrics
from ..runtime import transfers
from ..types.address import ZERO_ADDRESS
from ..types.trade import TradeRecord
from .ledger import BalanceLedger
from .policy import PolicyReader
from .records import TradeStore

log = logging.getLogger(__name__)

PRINCIPAL = "principal"
PROTOCOL_FEE = "protocol_fee"
PARTNER_FEE = "partner_fee"
STAKE_REFUND = "stake_refund"
STAKE_FORFEIT = "stake_forfeit"


@dataclass(frozen=True)
class Payout:
    to: bytes
    asset: bytes
    amount: int
    reason: str
    transferred: bool = True


@dataclass
class SettlementReceipt:
    trade_id: bytes
    kind: str
    payouts: List[Payout] = field(default_factory=list)

    @property
    def trade_total(self) -> int:
        """Principal plus fee distributed (moved or un-earmarked)."""
        return sum(p.amount for p in self.payouts if p.reason in (PRINCIPAL, PROTOCOL_FEE, PARTNER_FEE))

    @property
    def stake_total(self) -> int:
        return sum(p.amount for p in self.payouts if p.reason in (STAKE_REFUND, STAKE_FORFEIT))

    def paid_to(self, addr: bytes, *, reason: Optional[str] = None) -> int:
        return sum(
            p.amount for p in self.payouts
            if p.to == addr and (reason is None or p.reason == reason)
        )


class SettlementEngine:
    def __init__(
        self,
        chain,
        contract: bytes,
        *,
        records: TradeStore,
        ledger: BalanceLedger,
        policy: PolicyReader,
    ) -> None:
        self._chain = chain
        self._c = contract
        self._records = records
        self._ledger = ledger
        self._policy = policy

    def settle(
        self,
        trade_id: bytes,
        record: TradeRecord,
        *,
        kind: str,
        recipient: bytes,
        principal: int,
        fee: int,
        protocol_fee: int,
        arbitrated: bool = False,
        winner: Optional[bytes] = None,
    ) -> SettlementReceipt:
        key = record.key
        seller, buyer, asset = key.seller, key.buyer, key.asset

        # effects before interactions
        self._records.delete(trade_id)
        seller_stake, buyer_stake = self._records.clear_stakes(trade_id, seller, buyer)
        if record.automatic:
            self._ledger.release_reservation(asset, record.required_amount)
        else:
            self._ledger.uncommit(asset, record.required_amount)
        if seller_stake or buyer_stake:
            self._ledger.uncommit(ZERO_ADDRESS, seller_stake + buyer_stake)

        policy = self._policy.current()
        receipt = SettlementReceipt(trade_id=trade_id, kind=kind)

        self._pay(receipt, asset, recipient, principal, PRINCIPAL, keep_for=seller if record.automatic else None)
        if protocol_fee > 0:
            self._pay(receipt, asset, policy.fee_recipient, protocol_fee, PROTOCOL_FEE)
        partner_fee = fee - protocol_fee
        if partner_fee > 0:
            self._pay(receipt, asset, record.partner, partner_fee, PARTNER_FEE)

        if seller_stake and buyer_stake:
            favored = winner if arbitrated else recipient
            if favored == seller:
                own, other = seller_stake, buyer_stake
            else:
                own, other = buyer_stake, seller_stake
            self._pay(receipt, ZERO_ADDRESS, favored, own, STAKE_REFUND)
            self._pay(receipt, ZERO_ADDRESS, policy.fee_recipient, other, STAKE_FORFEIT)
            metrics.observe_stake("refunded", enabled=self._chain.config.features.metrics)
            metrics.observe_stake("forfeited", enabled=self._chain.config.features.metrics)
        elif seller_stake:
            self._pay(receipt, ZERO_ADDRESS, seller, seller_stake, STAKE_REFUND)
            metrics.observe_stake("refunded", enabled=self._chain.config.features.metrics)
        elif buyer_stake:
            self._pay(receipt, ZERO_ADDRESS, buyer, buyer_stake, STAKE_REFUND)
            metrics.observe_stake("refunded", enabled=self._chain.config.features.metrics)

        metrics.observe_settlement(
            kind=kind,
            asset_kind="native" if key.is_native else "token",
            amount=receipt.trade_total,
            enabled=self._chain.config.features.metrics,
        )
        log.info(
            "settled",
            extra={
                "kind": kind,
                "settled_trade": trade_id,
                "recipient": recipient,
                "principal": principal,
                "fee": fee,
                "stakes": receipt.stake_total,
            },
        )
        return receipt

    def _pay(
        self,
        receipt: SettlementReceipt,
        asset: bytes,
        to: bytes,
        amount: int,
        reason: str,
        *,
        keep_for: Optional[bytes] = None,
    ) -> None:
        if amount <= 0:
            return
        if keep_for is not None and to == keep_for:
            # automatic trade paying its own depositor: stays in the pool as free balance
            receipt.payouts.append(Payout(to=to, asset=asset, amount=amount, reason=reason, transferred=False))
            return
        transfers.push(self._chain, asset, self._c, to, amount)
        receipt.payouts.append(Payout(to=to, asset=asset, amount=amount, reason=reason))


__all__ = [
    "Payout",
    "SettlementReceipt",
    "SettlementEngine",
    "PRINCIPAL",
    "PROTOCOL_FEE",
    "PARTNER_FEE",
    "STAKE_REFUND",
    "STAKE_FORFEIT",
]
