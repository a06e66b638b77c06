"""
escrow.engine.factory — deploys escrow instances and owns global policy.

Two deployment shapes are supported side by side:

  • per-seller: `deploy()` gives the caller one long-lived `SellerEscrow`
    (address derived from the seller), found later via `seller_contracts(seller)`.
  • per-trade: `deploy_native_escrow(...)` / `deploy_erc20_escrow(...)` create a
    dedicated instance for a single trade, at an address derived from the trade id
    (the id doubles as the salt). `escrows(trade_id)` maps id → instance.

Every instance gets a read-only `PolicyReader`; only the owner can change policy
(arbitrator, fee recipient, fee rate, partner table, discount credential, pause).
Pausing blocks new trades, never settlement of existing ones.

Events
------
- "ContractCreated"       {seller, contract}
- "EscrowCreated"         trade_id, {contract}
- "OwnershipTransferred"  {previous, new}
- "PolicyUpdated"         {version, field}
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Tuple

from ..config import EscrowConfig
from ..errors import DuplicateTrade, InvalidArgument, InvalidState, Unauthorized
from ..runtime.chain import Chain, Contract, entrypoint
from ..types.address import ZERO_ADDRESS, AddressLike, to_address
from ..types.context import CallContext
from .credentials import as_credential
from .fees import FeeCalculator, validate_bps
from .identity import OrderIdLike, trade_id_for, trade_key
from .machine import SellerEscrow
from .policy import PolicyReader, PolicySnapshot, PolicyStore, snapshot_from

log = logging.getLogger(__name__)


class EscrowFactory(Contract):
    def __init__(
        self,
        chain: Chain,
        *,
        owner: AddressLike,
        arbitrator: AddressLike,
        fee_recipient: AddressLike,
        fee_bps: Optional[int] = None,
        dispute_stake: Optional[int] = None,
        discount_credential: Optional[Any] = None,
        seller_waiting_time: Optional[int] = None,
        address: Optional[bytes] = None,
    ) -> None:
        cfg: EscrowConfig = chain.config
        self.seller_waiting_time = (
            cfg.limits.default_seller_waiting_time if seller_waiting_time is None else int(seller_waiting_time)
        )
        with chain.atomic():
            super().__init__(chain, address or chain.new_address("escrow-factory"))
            chain.journal.set(("owner", self.address), to_address(owner, name="owner"))
            self._policy = PolicyStore(
                chain.journal,
                self.address,
                snapshot_from(
                    arbitrator=to_address(arbitrator, name="arbitrator"),
                    fee_recipient=to_address(fee_recipient, name="fee_recipient"),
                    fee_bps=cfg.economics.fee_bps if fee_bps is None else fee_bps,
                    dispute_stake=cfg.economics.dispute_stake if dispute_stake is None else dispute_stake,
                    discount=as_credential(discount_credential),
                    min_waiting_time=cfg.limits.min_waiting_time,
                    max_waiting_time=cfg.limits.max_waiting_time,
                ),
            )
        self._reader = self._policy.reader()

    # ------------------------------------------------------------------ views

    @property
    def owner(self) -> bytes:
        return self.chain.journal.get(("owner", self.address))

    @property
    def policy(self) -> PolicyReader:
        return self._reader

    def snapshot(self) -> PolicySnapshot:
        return self._policy.current()

    @property
    def arbitrator(self) -> bytes:
        return self.snapshot().arbitrator

    @property
    def fee_recipient(self) -> bytes:
        return self.snapshot().fee_recipient

    @property
    def dispute_stake(self) -> int:
        return self.snapshot().dispute_stake

    @property
    def paused(self) -> bool:
        return self.snapshot().paused

    def fee(self, caller: AddressLike) -> int:
        """Protocol fee bps for `caller` (0 when they hold the discount credential)."""
        return FeeCalculator(self.snapshot()).protocol_fee(caller)

    def partner_fee_bps(self, partner: AddressLike) -> int:
        return FeeCalculator(self.snapshot()).partner_fee(partner)

    def total_fee_bps(self, caller: AddressLike, partner: Optional[AddressLike] = None) -> int:
        return FeeCalculator(self.snapshot()).total_fee(caller, partner)

    def seller_contracts(self, seller: AddressLike) -> Optional[SellerEscrow]:
        addr = self.chain.journal.get(("seller_contract", self.address, to_address(seller)))
        return None if addr is None else self.chain.contract_at(addr)

    def escrows(self, trade_id: bytes) -> Tuple[bool, Optional[SellerEscrow]]:
        addr = self.chain.journal.get(("trade_escrow", self.address, trade_id))
        if addr is None:
            return False, None
        return True, self.chain.contract_at(addr)

    # ------------------------------------------------------------ deployment

    def _instance(self, salt: bytes, seller: bytes) -> SellerEscrow:
        return SellerEscrow(
            self.chain,
            address=self.chain.derive_address(self.address, salt),
            seller=seller,
            policy=self._reader,
            factory=self.address,
        )

    @entrypoint
    def deploy(self, ctx: CallContext) -> SellerEscrow:
        """Deploy the caller's own escrow instance."""
        key = ("seller_contract", self.address, ctx.sender)
        if self.chain.journal.contains(key):
            raise InvalidState("seller already has an escrow contract")
        instance = self._instance(ctx.sender, ctx.sender)
        self.chain.journal.set(key, instance.address)
        self.emit("ContractCreated", seller=ctx.sender, contract=instance.address)
        log.info("seller escrow deployed", extra={"seller": ctx.sender, "instance": instance.address})
        return instance

    def _deploy_for_trade(
        self, ctx: CallContext, order_id: OrderIdLike, buyer: AddressLike, token: AddressLike, amount: int
    ) -> Tuple[bytes, SellerEscrow]:
        if self.paused:
            raise InvalidState("trade creation is paused")
        key = trade_key(order_id, ctx.sender, buyer, token, amount)
        if key.principal <= 0:
            raise InvalidArgument("invalid amount", arg="amount")
        tid = trade_id_for(key)
        reg = ("trade_escrow", self.address, tid)
        if self.chain.journal.contains(reg):
            raise DuplicateTrade(trade_id=tid)
        instance = self._instance(tid, ctx.sender)
        self.chain.journal.set(reg, instance.address)
        return tid, instance

    @entrypoint(payable=True)
    def deploy_native_escrow(
        self,
        ctx: CallContext,
        order_id: OrderIdLike,
        buyer: AddressLike,
        amount: int,
        partner: Optional[AddressLike] = None,
    ) -> SellerEscrow:
        """Dedicated instance for one native trade; attach exactly amount + fee."""
        tid, instance = self._deploy_for_trade(ctx, order_id, buyer, ZERO_ADDRESS, amount)
        self.chain.move_value(self.address, instance.address, ctx.value)
        instance._create(
            ctx, instance.trade_key(order_id, buyer, ZERO_ADDRESS, amount),
            partner, self.seller_waiting_time, False,
        )
        self.emit("EscrowCreated", trade_id=tid, contract=instance.address)
        return instance

    @entrypoint
    def deploy_erc20_escrow(
        self,
        ctx: CallContext,
        order_id: OrderIdLike,
        buyer: AddressLike,
        token: AddressLike,
        amount: int,
        partner: Optional[AddressLike] = None,
    ) -> SellerEscrow:
        """Dedicated instance for one token trade; the seller must have approved this factory."""
        if to_address(token, name="token") == ZERO_ADDRESS:
            raise InvalidArgument("invalid token", arg="token")
        tid, instance = self._deploy_for_trade(ctx, order_id, buyer, token, amount)
        instance._create(
            ctx, instance.trade_key(order_id, buyer, token, amount),
            partner, self.seller_waiting_time, False, spender=self.address,
        )
        self.emit("EscrowCreated", trade_id=tid, contract=instance.address)
        return instance

    # ---------------------------------------------------------------- admin

    def _require_owner(self, ctx: CallContext) -> None:
        if ctx.sender != self.owner:
            raise Unauthorized("caller is not the owner", caller=ctx.sender, role="owner")

    def _update(self, field_name: str, **changes: Any) -> PolicySnapshot:
        snap = self._policy.update(**changes)
        self.emit("PolicyUpdated", version=snap.version, field=field_name)
        log.info("policy updated", extra={"field": field_name, "version": snap.version})
        return snap

    @entrypoint
    def set_arbitrator(self, ctx: CallContext, arbitrator: AddressLike) -> None:
        self._require_owner(ctx)
        self._update("arbitrator", arbitrator=to_address(arbitrator, name="arbitrator"))

    @entrypoint
    def set_fee_recipient(self, ctx: CallContext, recipient: AddressLike) -> None:
        self._require_owner(ctx)
        self._update("fee_recipient", fee_recipient=to_address(recipient, name="fee_recipient"))

    @entrypoint
    def set_fee(self, ctx: CallContext, fee_bps: int) -> None:
        self._require_owner(ctx)
        self._update("fee_bps", fee_bps=validate_bps(fee_bps))

    @entrypoint
    def update_partner_fee_bps(self, ctx: CallContext, partners: Sequence[AddressLike], fee_bps: Sequence[int]) -> None:
        self._require_owner(ctx)
        if len(partners) != len(fee_bps):
            raise InvalidArgument("partners and fees must have the same length", arg="partners")
        table = dict(self.snapshot().partner_fees)
        for p, bps in zip(partners, fee_bps):
            addr = to_address(p, name="partner")
            if addr == ZERO_ADDRESS:
                raise InvalidArgument("invalid partner", arg="partners")
            table[addr] = validate_bps(bps, name="partner_fee_bps")
        self._update("partner_fees", partner_fees=table)

    @entrypoint
    def set_fee_discount_nft(self, ctx: CallContext, collection: Optional[Any]) -> None:
        """Configure (or clear, with None) the collection whose holders pay no protocol fee."""
        self._require_owner(ctx)
        self._update("discount", discount=as_credential(collection))

    @entrypoint
    def set_paused(self, ctx: CallContext, paused: bool) -> None:
        self._require_owner(ctx)
        if bool(paused) != self.paused:
            self._update("paused", paused=bool(paused))

    @entrypoint
    def toggle_pause(self, ctx: CallContext) -> bool:
        self._require_owner(ctx)
        return self._update("paused", paused=not self.paused).paused

    @entrypoint
    def transfer_ownership(self, ctx: CallContext, new_owner: AddressLike) -> None:
        self._require_owner(ctx)
        new = to_address(new_owner, name="new_owner")
        if new == ZERO_ADDRESS:
            raise InvalidArgument("new owner is the zero address", arg="new_owner")
        self.chain.journal.set(("owner", self.address), new)
        self.emit("OwnershipTransferred", previous=ctx.sender, new=new)

    def partners(self) -> List[Tuple[bytes, int]]:
        return sorted(self.snapshot().partner_fees.items())


__all__ = ["EscrowFactory"]
