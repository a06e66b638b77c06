"""
escrow.runtime.tokens — asset contracts the escrow engine talks to.

`FungibleToken` is a plain transferable token with allowances, balances held in
the host journal under ("token", token, holder). `CredentialCollection` is a
minimal non-fungible collection whose only job here is answering
`balance_of(owner)` for the fee-discount check.

Both follow the usual call shapes (`transfer`, `approve`, `transfer_from`) and
return True on success. Tokens with other behaviour (no return value, False on
failure, fee-on-transfer) can subclass and override the entrypoints; the escrow
engine verifies balance deltas rather than trusting return values.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import InsufficientBalance, InvalidArgument, NotFound, Unauthorized
from ..state.balances import TokenBalances, credit, safe_transfer
from ..types.address import ZERO_ADDRESS, AddressLike, to_address
from ..types.context import CallContext
from .chain import Chain, Contract, entrypoint

log = logging.getLogger(__name__)


class FungibleToken(Contract):
    def __init__(
        self,
        chain: Chain,
        *,
        name: str = "Token",
        symbol: str = "TKN",
        decimals: int = 18,
        address: Optional[bytes] = None,
    ) -> None:
        super().__init__(chain, address or chain.new_address(f"token:{symbol}"))
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.balances = TokenBalances(chain.journal, self.address)

    # ------------------------------------------------------------------ views

    def balance_of(self, holder: AddressLike) -> int:
        return self.balances.get_balance(to_address(holder))

    def allowance(self, owner: AddressLike, spender: AddressLike) -> int:
        return int(self.chain.journal.get(("allow", self.address, to_address(owner), to_address(spender)), 0))

    def total_supply(self) -> int:
        return self.balances.total_supply()

    # ----------------------------------------------------------------- admin

    def mint(self, to: AddressLike, amount: int) -> int:
        holder = to_address(to)
        with self.chain.atomic():
            new = credit(self.balances, holder, amount)
            self.emit("Transfer", src=ZERO_ADDRESS, dst=holder, amount=amount)
        return new

    # ----------------------------------------------------------- entrypoints

    def _move(self, src: bytes, dst: bytes, amount: int) -> None:
        if dst == ZERO_ADDRESS:
            raise InvalidArgument("transfer to the zero address", arg="to")
        safe_transfer(self.balances, src, dst, amount)
        self.emit("Transfer", src=src, dst=dst, amount=amount)

    def _spend_allowance(self, owner: bytes, spender: bytes, amount: int) -> None:
        key = ("allow", self.address, owner, spender)
        cur = int(self.chain.journal.get(key, 0))
        if cur < amount:
            raise InsufficientBalance("insufficient allowance", holder=owner, have=cur, need=amount)
        self.chain.journal.set(key, cur - amount)

    @entrypoint
    def transfer(self, ctx: CallContext, to: AddressLike, amount: int) -> Optional[bool]:
        self._move(ctx.sender, to_address(to, name="to"), amount)
        return True

    @entrypoint
    def approve(self, ctx: CallContext, spender: AddressLike, amount: int) -> Optional[bool]:
        if amount < 0:
            raise InvalidArgument("allowance must be non-negative", arg="amount")
        sp = to_address(spender, name="spender")
        self.chain.journal.set(("allow", self.address, ctx.sender, sp), int(amount))
        self.emit("Approval", owner=ctx.sender, spender=sp, amount=amount)
        return True

    @entrypoint
    def transfer_from(self, ctx: CallContext, owner: AddressLike, to: AddressLike, amount: int) -> Optional[bool]:
        src = to_address(owner, name="owner")
        self._spend_allowance(src, ctx.sender, amount)
        self._move(src, to_address(to, name="to"), amount)
        return True


class CredentialCollection(Contract):
    """Non-fungible collection: each token id has exactly one owner."""

    def __init__(self, chain: Chain, *, name: str = "Credential", address: Optional[bytes] = None) -> None:
        super().__init__(chain, address or chain.new_address(f"nft:{name}"))
        self.name = name

    def balance_of(self, owner: AddressLike) -> int:
        return int(self.chain.journal.get(("nft_bal", self.address, to_address(owner)), 0))

    def owner_of(self, token_id: int) -> bytes:
        owner = self.chain.journal.get(("nft_owner", self.address, int(token_id)))
        if owner is None:
            raise NotFound(f"token {token_id} does not exist")
        return owner

    def mint(self, to: AddressLike) -> int:
        holder = to_address(to)
        j = self.chain.journal
        with self.chain.atomic():
            token_id = int(j.get(("nft_next", self.address), 0))
            j.set(("nft_next", self.address), token_id + 1)
            j.set(("nft_owner", self.address, token_id), holder)
            j.add(("nft_bal", self.address, holder), 1)
            self.emit("Transfer", src=ZERO_ADDRESS, dst=holder, token_id=token_id)
        return token_id

    @entrypoint
    def transfer(self, ctx: CallContext, token_id: int, to: AddressLike) -> bool:
        dst = to_address(to, name="to")
        if self.owner_of(token_id) != ctx.sender:
            raise Unauthorized("not the token owner", caller=ctx.sender)
        j = self.chain.journal
        j.set(("nft_owner", self.address, int(token_id)), dst)
        j.add(("nft_bal", self.address, ctx.sender), -1)
        j.add(("nft_bal", self.address, dst), 1)
        self.emit("Transfer", src=ctx.sender, dst=dst, token_id=token_id)
        return True


__all__ = ["FungibleToken", "CredentialCollection"]
