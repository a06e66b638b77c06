"""
escrow.engine.machine — the per-seller escrow contract.

States of one trade (keyed by its trade id):

    NONE ──create──▶ OPEN ──mark_as_paid──▶ OPEN+PAID ──open_dispute──▶ DISPUTED+PAID
                      │                        │                            │
                      └──── release / buyer_cancel / seller_cancel* / resolve_dispute ──▶ SETTLED

    * seller_cancel only before PAID and only once the waiting time has elapsed;
      otherwise it returns False without touching anything.

Who may call what:

    create_*        seller          record must not exist
    mark_as_paid    buyer           PAID latch (one-way)
    release         seller          principal to buyer, fee charged
    buyer_cancel    buyer           principal + fee back to seller
    seller_cancel   seller          principal + fee back to seller
    open_dispute    seller | buyer  after PAID, once per party, exact native stake
    resolve_dispute arbitrator      only while disputed; fee charged only if buyer wins
    withdraw_balance seller         free balance only

Checks run in the order: caller role (Unauthorized), record lookup (NotFound),
then state preconditions (InvalidState) and argument checks (InvalidArgument).
"""

from __future__ import annotations

import logging
from typing import Optional

from .. import metrics
from ..errors import DuplicateTrade, InvalidArgument, InvalidState, Unauthorized
from ..runtime import transfers
from ..runtime.chain import Chain, Contract, entrypoint
from ..types.address import ZERO_ADDRESS, AddressLike, to_address
from ..types.context import CallContext
from ..types.trade import TradeKey, TradeRecord
from .fees import FeeCalculator, FeeQuote
from .identity import OrderIdLike, order_id_bytes, principal_amount, trade_id_for
from .ledger import BalanceLedger
from .policy import PolicyReader
from .records import TradeStore
from .settlement import SettlementEngine, SettlementReceipt

log = logging.getLogger(__name__)


class SellerEscrow(Contract):
    """
    Escrow instance owned by one seller. Trades in native currency and any
    number of tokens share this instance's balance pool.
    """

    def __init__(
        self,
        chain: Chain,
        *,
        address: bytes,
        seller: bytes,
        policy: PolicyReader,
        factory: bytes = ZERO_ADDRESS,
    ) -> None:
        super().__init__(chain, address)
        self.seller = seller
        self.factory = factory
        self.policy = policy
        self.records = TradeStore(chain.journal, address)
        self.ledger = BalanceLedger(chain, address)
        self.settlement = SettlementEngine(
            chain, address, records=self.records, ledger=self.ledger, policy=policy
        )
        self.last_receipt: Optional[SettlementReceipt] = None

    # ------------------------------------------------------------------ views

    def trade_key(self, order_id: OrderIdLike, buyer: AddressLike, asset: AddressLike, principal: int) -> TradeKey:
        return TradeKey(
            order_id=order_id_bytes(order_id),
            seller=self.seller,
            buyer=to_address(buyer, name="buyer"),
            asset=to_address(asset, name="asset"),
            principal=principal_amount(principal),
        )

    def trade_id(self, order_id: OrderIdLike, buyer: AddressLike, asset: AddressLike, principal: int) -> bytes:
        return trade_id_for(self.trade_key(order_id, buyer, asset, principal))

    def escrows(self, trade_id: bytes) -> Optional[TradeRecord]:
        return self.records.get(trade_id)

    def dispute_payments(self, trade_id: bytes, party: AddressLike) -> bool:
        return self.records.has_staked(trade_id, to_address(party))

    def balances_in_use(self, asset: AddressLike = ZERO_ADDRESS) -> int:
        return self.ledger.in_use(to_address(asset))

    def free_balance(self, asset: AddressLike = ZERO_ADDRESS) -> int:
        return self.ledger.free_balance(to_address(asset))

    def fee_quote(self, principal: int, partner: Optional[AddressLike] = None) -> FeeQuote:
        return FeeCalculator(self.policy.current()).quote(self.seller, principal, partner)

    def receive(self, sender: bytes, amount: int) -> None:
        # plain deposits top up the pool used by automatic trades
        log.info("deposit", extra={"depositor": sender, "amount": amount})

    # -------------------------------------------------------------- helpers

    def _require_seller(self, ctx: CallContext) -> None:
        if ctx.sender != self.seller:
            raise Unauthorized("must be seller", caller=ctx.sender, role="seller")

    def _require_buyer(self, ctx: CallContext, key: TradeKey) -> None:
        if ctx.sender != key.buyer:
            raise Unauthorized("must be buyer", caller=ctx.sender, role="buyer")

    def _create(
        self,
        ctx: CallContext,
        key: TradeKey,
        partner: Optional[AddressLike],
        seller_waiting_time: int,
        automatic: bool,
        *,
        spender: Optional[bytes] = None,
    ) -> bytes:
        """
        Shared creation path. Native value (if any) is already in this contract;
        token funding is pulled here using the allowance granted to `spender`
        (this contract unless the factory funds a per-trade instance).
        """
        policy = self.policy.current()
        if policy.paused:
            raise InvalidState("trade creation is paused")
        if key.principal <= 0:
            raise InvalidArgument("invalid amount", arg="amount")
        if key.seller == key.buyer:
            raise InvalidArgument("seller and buyer must be different", arg="buyer")
        if key.buyer == ZERO_ADDRESS:
            raise InvalidArgument("invalid buyer", arg="buyer")
        if not policy.min_waiting_time <= seller_waiting_time <= policy.max_waiting_time:
            raise InvalidArgument("invalid seller waiting time", arg="seller_waiting_time")

        tid = trade_id_for(key)
        if self.records.exists(tid):
            raise DuplicateTrade(trade_id=tid)

        partner_b = to_address(partner, name="partner")
        quote = FeeCalculator(policy).quote(key.seller, key.principal, partner_b)
        required = quote.total

        if automatic:
            if ctx.value != 0:
                raise InvalidArgument("incorrect amount sent", arg="value")
            self.ledger.reserve(key.asset, required)
        elif key.is_native:
            if ctx.value != required:
                raise InvalidArgument(
                    "incorrect amount sent", arg="value", data={"expected": required, "sent": ctx.value}
                )
            self.ledger.commit(key.asset, required)
        else:
            if ctx.value != 0:
                raise InvalidArgument("incorrect amount sent", arg="value")
            transfers.pull(
                self.chain, key.asset, key.seller, self.address, required,
                spender=spender or self.address,
            )
            self.ledger.commit(key.asset, required)

        record = TradeRecord(
            key=key,
            seller_can_cancel_after=ctx.timestamp + seller_waiting_time,
            fee=quote.fee,
            protocol_fee_share=quote.protocol_share,
            partner=partner_b,
            automatic=bool(automatic),
        )
        self.records.put(tid, record)
        self.emit(
            "EscrowCreated",
            trade_id=tid,
            seller_can_cancel_after=record.seller_can_cancel_after,
            fee=record.fee,
            protocol_fee_share=record.protocol_fee_share,
            partner=record.partner,
            automatic=record.automatic,
        )
        metrics.observe_created(
            asset_kind="native" if key.is_native else "token",
            automatic=automatic,
            enabled=self.chain.config.features.metrics,
        )
        log.info(
            "escrow created",
            extra={"created_trade": tid, "principal": key.principal, "fee": quote.fee, "automatic": automatic},
        )
        return tid

    # ------------------------------------------------------------- creation

    @entrypoint(payable=True)
    def create_native_escrow(
        self,
        ctx: CallContext,
        order_id: OrderIdLike,
        buyer: AddressLike,
        amount: int,
        partner: Optional[AddressLike] = None,
        seller_waiting_time: int = 24 * 60 * 60,
        automatic: bool = False,
    ) -> bytes:
        """Open a native-currency trade; attach exactly amount + fee unless automatic."""
        self._require_seller(ctx)
        key = self.trade_key(order_id, buyer, ZERO_ADDRESS, amount)
        return self._create(ctx, key, partner, seller_waiting_time, automatic)

    @entrypoint
    def create_erc20_escrow(
        self,
        ctx: CallContext,
        order_id: OrderIdLike,
        buyer: AddressLike,
        token: AddressLike,
        amount: int,
        partner: Optional[AddressLike] = None,
        seller_waiting_time: int = 24 * 60 * 60,
        automatic: bool = False,
    ) -> bytes:
        """Open a token trade; pulls amount + fee from the seller unless automatic."""
        self._require_seller(ctx)
        key = self.trade_key(order_id, buyer, token, amount)
        if key.is_native:
            raise InvalidArgument("invalid token", arg="token")
        return self._create(ctx, key, partner, seller_waiting_time, automatic)

    # ------------------------------------------------------------ lifecycle

    @entrypoint
    def mark_as_paid(
        self, ctx: CallContext, order_id: OrderIdLike, buyer: AddressLike, token: AddressLike, amount: int
    ) -> bool:
        key = self.trade_key(order_id, buyer, token, amount)
        self._require_buyer(ctx, key)
        tid = trade_id_for(key)
        rec = self.records.require(tid)
        if not rec.paid:
            self.records.put(tid, rec.mark_paid())
            self.emit("SellerCancelDisabled", trade_id=tid)
        return True

    @entrypoint
    def release(
        self, ctx: CallContext, order_id: OrderIdLike, buyer: AddressLike, token: AddressLike, amount: int
    ) -> bool:
        self._require_seller(ctx)
        key = self.trade_key(order_id, buyer, token, amount)
        tid = trade_id_for(key)
        rec = self.records.require(tid)
        self.last_receipt = self.settlement.settle(
            tid, rec, kind="release", recipient=key.buyer,
            principal=key.principal, fee=rec.fee, protocol_fee=rec.protocol_fee_share,
        )
        self.emit("Released", trade_id=tid)
        return True

    @entrypoint
    def buyer_cancel(
        self, ctx: CallContext, order_id: OrderIdLike, buyer: AddressLike, token: AddressLike, amount: int
    ) -> bool:
        key = self.trade_key(order_id, buyer, token, amount)
        self._require_buyer(ctx, key)
        tid = trade_id_for(key)
        rec = self.records.require(tid)
        self.last_receipt = self.settlement.settle(
            tid, rec, kind="buyer_cancel", recipient=key.seller,
            principal=rec.required_amount, fee=0, protocol_fee=0,
        )
        self.emit("CancelledByBuyer", trade_id=tid)
        return True

    @entrypoint
    def seller_cancel(
        self, ctx: CallContext, order_id: OrderIdLike, buyer: AddressLike, token: AddressLike, amount: int
    ) -> bool:
        self._require_seller(ctx)
        key = self.trade_key(order_id, buyer, token, amount)
        tid = trade_id_for(key)
        rec = self.records.require(tid)
        if rec.seller_can_cancel_after <= 1 or ctx.timestamp < rec.seller_can_cancel_after:
            log.info(
                "seller cancel not allowed yet",
                extra={"cancel_after": rec.seller_can_cancel_after, "now": ctx.timestamp},
            )
            return False
        self.last_receipt = self.settlement.settle(
            tid, rec, kind="seller_cancel", recipient=key.seller,
            principal=rec.required_amount, fee=0, protocol_fee=0,
        )
        self.emit("CancelledBySeller", trade_id=tid)
        return True

    # ------------------------------------------------------------- disputes

    @entrypoint(payable=True)
    def open_dispute(
        self, ctx: CallContext, order_id: OrderIdLike, buyer: AddressLike, token: AddressLike, amount: int
    ) -> bool:
        key = self.trade_key(order_id, buyer, token, amount)
        if ctx.sender not in (key.seller, key.buyer):
            raise Unauthorized("must be seller or buyer", caller=ctx.sender, role="party")
        tid = trade_id_for(key)
        rec = self.records.require(tid)
        if not rec.paid:
            raise InvalidState("cannot open a dispute yet", trade_id=tid)
        if self.records.has_staked(tid, ctx.sender):
            raise InvalidState("this address already paid for the dispute", trade_id=tid)
        stake = self.policy.current().dispute_stake
        if ctx.value != stake:
            raise InvalidArgument(
                f"to open a dispute, you must pay {stake}", arg="value",
                data={"expected": stake, "sent": ctx.value},
            )

        self.records.set_stake(tid, ctx.sender, stake)
        self.ledger.commit(ZERO_ADDRESS, stake)
        if not rec.dispute:
            self.records.put(tid, rec.mark_disputed())
        self.emit("DisputeOpened", trade_id=tid, actor=ctx.sender)
        metrics.observe_stake("staked", enabled=self.chain.config.features.metrics)
        return True

    @entrypoint
    def resolve_dispute(
        self,
        ctx: CallContext,
        order_id: OrderIdLike,
        buyer: AddressLike,
        token: AddressLike,
        amount: int,
        winner: AddressLike,
    ) -> bool:
        if ctx.sender != self.policy.current().arbitrator:
            raise Unauthorized("must be arbitrator", caller=ctx.sender, role="arbitrator")
        key = self.trade_key(order_id, buyer, token, amount)
        tid = trade_id_for(key)
        rec = self.records.require(tid)
        if not rec.dispute:
            raise InvalidState("dispute is not open", trade_id=tid)
        w = to_address(winner, name="winner")
        if w not in (key.seller, key.buyer):
            raise InvalidState("winner must be seller or buyer", trade_id=tid)

        if w == key.buyer:
            # trade deemed completed: fee charged
            self.last_receipt = self.settlement.settle(
                tid, rec, kind="resolve", recipient=key.buyer,
                principal=key.principal, fee=rec.fee, protocol_fee=rec.protocol_fee_share,
                arbitrated=True, winner=w,
            )
        else:
            self.last_receipt = self.settlement.settle(
                tid, rec, kind="resolve", recipient=key.seller,
                principal=rec.required_amount, fee=0, protocol_fee=0,
                arbitrated=True, winner=w,
            )
        self.emit("DisputeResolved", trade_id=tid, winner=w)
        return True

    # -------------------------------------------------------------- balance

    @entrypoint
    def withdraw_balance(self, ctx: CallContext, token: AddressLike, amount: int) -> bool:
        """Sweep `amount` of free (non-earmarked) balance back to the seller."""
        self._require_seller(ctx)
        asset = to_address(token, name="token")
        if amount <= 0:
            raise InvalidArgument("invalid amount", arg="amount")
        free = self.ledger.free_balance(asset)
        if free < amount:
            raise InvalidArgument(
                "not enough tokens in escrow", arg="amount", data={"free": free, "required": amount}
            )
        transfers.push(self.chain, asset, self.address, self.seller, amount)
        self.emit("BalanceWithdrawn", asset=asset, amount=amount)
        return True


__all__ = ["SellerEscrow"]
