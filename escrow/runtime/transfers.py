"""
escrow.runtime.transfers — moving native value and tokens out of (and into) contracts.

Two asset kinds exist: native currency (asset address == zero address) and
fungible tokens (asset address == a token contract on the host). Every helper
here either moves exactly `amount` or raises TransferFailure; the caller's
enclosing entrypoint then reverts the whole call, so no partial payout is ever
observable.

Token movements are verified by balance delta on the contract's own side.
The token's return value is only used to detect an explicit `False`; tokens
that return nothing are accepted when the delta checks out, tokens that claim
success without moving the funds are rejected.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import EscrowError, TransferFailure
from ..types.address import ZERO_ADDRESS, to_hex
from .chain import Chain

log = logging.getLogger(__name__)


def is_native(asset: bytes) -> bool:
    return asset == ZERO_ADDRESS


def token_at(chain: Chain, asset: bytes) -> Any:
    token = chain.contract_at(asset)
    if token is None or not hasattr(token, "balance_of") or not hasattr(token, "transfer"):
        raise TransferFailure(f"no token contract at {to_hex(asset)}", asset=asset)
    return token


def on_hand(chain: Chain, asset: bytes, holder: bytes) -> int:
    """Raw balance of `asset` held by `holder`."""
    if is_native(asset):
        return chain.native.get_balance(holder)
    return int(token_at(chain, asset).balance_of(holder))


def _call_token(fn: Any, *args: Any, sender: bytes, asset: bytes, to: bytes, amount: int) -> Any:
    try:
        return fn(*args, sender=sender)
    except EscrowError as e:
        raise TransferFailure(
            f"token call failed: {e.message}", asset=asset, to=to, amount=amount,
            data={"cause": e.code},
        ) from e


def push(chain: Chain, asset: bytes, frm: bytes, to: bytes, amount: int) -> None:
    """Pay `amount` of `asset` from contract `frm` to `to`."""
    if amount <= 0:
        return
    if is_native(asset):
        chain.send_native(frm, to, amount)
        log.debug("native out", extra={"to": to, "amount": amount})
        return

    token = token_at(chain, asset)
    before = int(token.balance_of(frm))
    ok = _call_token(token.transfer, to, amount, sender=frm, asset=asset, to=to, amount=amount)
    after = int(token.balance_of(frm))
    if ok is False:
        raise TransferFailure("token reported transfer failure", asset=asset, to=to, amount=amount)
    if before - after != amount:
        raise TransferFailure(
            "token balance delta mismatch on transfer",
            asset=asset, to=to, amount=amount, data={"observed": before - after},
        )
    log.debug("token out", extra={"asset": asset, "to": to, "amount": amount})


def pull(chain: Chain, asset: bytes, owner: bytes, into: bytes, amount: int, *, spender: bytes) -> None:
    """
    Draw `amount` of token `asset` from `owner` into contract `into` using the
    allowance `owner` granted to `spender`.
    """
    if is_native(asset):
        raise TransferFailure("native value cannot be pulled", asset=asset)
    if amount <= 0:
        return
    token = token_at(chain, asset)
    before = int(token.balance_of(into))
    ok = _call_token(
        token.transfer_from, owner, into, amount, sender=spender, asset=asset, to=into, amount=amount
    )
    after = int(token.balance_of(into))
    if ok is False:
        raise TransferFailure("token reported transfer_from failure", asset=asset, to=into, amount=amount)
    if after - before != amount:
        raise TransferFailure(
            "token balance delta mismatch on transfer_from",
            asset=asset, to=into, amount=amount, data={"observed": after - before},
        )
    log.debug("token in", extra={"asset": asset, "from": owner, "amount": amount})


__all__ = ["is_native", "token_at", "on_hand", "push", "pull"]
