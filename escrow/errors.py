"""
escrow.errors — typed failures raised by the escrow engine and its host.

Every public escrow operation either completes or raises one of these. The host
(`escrow.runtime.chain`) reverts all state touched by the failing call before the
exception reaches the caller, so a raised error always means "nothing happened".

Hierarchy
---------
EscrowError (base)
 ├─ InvalidArgument    : bad input rejected at call time (zero amount, bad buyer,
 │                       waiting time out of range, funding mismatch, no free balance)
 ├─ NotFound           : no trade record for the derived trade id
 ├─ Unauthorized       : caller does not hold the role the transition needs
 ├─ InvalidState       : record exists but the transition is not allowed now
 ├─ DuplicateTrade     : trade id already present (InvalidArgument and InvalidState)
 ├─ TransferFailure    : native or token movement failed; whole call aborted
 └─ InsufficientBalance: host-level debit underflow

Notes
-----
* `seller_cancel` does not raise when it is too early; it returns False.
* Codes are stable strings meant for logs, metrics labels and RPC payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class EscrowError(Exception):
    """
    Base escrow error.

    Attributes:
        message: Human-readable explanation.
        code:    Stable machine code string (e.g., 'NOT_FOUND').
        data:    Optional structured details (kept JSON-serializable).
    """
    message: str = "escrow error"
    code: str = "ESCROW_ERROR"
    data: Optional[Dict[str, Any]] = field(default=None)

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.data:
            return f"{self.code}: {self.message} ({self.data})"
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict for logs and API payloads."""
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


def _merge(data: Optional[Dict[str, Any]], **fields: Any) -> Optional[Dict[str, Any]]:
    d: Dict[str, Any] = {}
    if data:
        d.update(data)
    for k, v in fields.items():
        if v is None:
            continue
        d.setdefault(k, v.hex() if isinstance(v, (bytes, bytearray)) else v)
    return d or None


class InvalidArgument(EscrowError):
    """Input rejected before any state is touched."""
    def __init__(
        self,
        message: str = "invalid argument",
        *,
        arg: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        EscrowError.__init__(
            self, message=message, code="INVALID_ARGUMENT", data=_merge(data, arg=arg)
        )


class NotFound(EscrowError):
    """No trade record exists for the trade id derived from the call arguments."""
    def __init__(
        self,
        message: str = "escrow not found",
        *,
        trade_id: Optional[bytes] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        EscrowError.__init__(
            self, message=message, code="NOT_FOUND", data=_merge(data, trade_id=trade_id)
        )


class Unauthorized(EscrowError):
    """Caller lacks the role (seller, buyer, arbitrator, owner) the call requires."""
    def __init__(
        self,
        message: str = "unauthorized",
        *,
        caller: Optional[bytes] = None,
        role: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        EscrowError.__init__(
            self,
            message=message,
            code="UNAUTHORIZED",
            data=_merge(data, caller=caller, role=role),
        )


class InvalidState(EscrowError):
    """
    The record exists but the transition is not allowed in its current state.

    Examples:
      - disputing before the buyer marked the trade as paid
      - the same party staking twice
      - resolving a trade with no open dispute, or naming a non-party winner
    """
    def __init__(
        self,
        message: str = "invalid state",
        *,
        trade_id: Optional[bytes] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        EscrowError.__init__(
            self, message=message, code="INVALID_STATE", data=_merge(data, trade_id=trade_id)
        )


class DuplicateTrade(InvalidArgument, InvalidState):
    """A record with the same trade id already exists; it is never overwritten."""
    def __init__(
        self,
        message: str = "order already exists",
        *,
        trade_id: Optional[bytes] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        EscrowError.__init__(
            self, message=message, code="DUPLICATE_TRADE", data=_merge(data, trade_id=trade_id)
        )


class TransferFailure(EscrowError):
    """
    Native or token movement failed.

    Raised when the recipient rejects native value, the token call raises or
    reports failure, or the observed balance delta does not match the amount.
    """
    def __init__(
        self,
        message: str = "transfer failed",
        *,
        asset: Optional[bytes] = None,
        to: Optional[bytes] = None,
        amount: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        EscrowError.__init__(
            self,
            message=message,
            code="TRANSFER_FAILED",
            data=_merge(data, asset=asset, to=to, amount=amount),
        )


class InsufficientBalance(EscrowError):
    """Debit would underflow an account's native or token balance."""
    def __init__(
        self,
        message: str = "insufficient balance",
        *,
        holder: Optional[bytes] = None,
        have: Optional[int] = None,
        need: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        EscrowError.__init__(
            self,
            message=message,
            code="INSUFFICIENT_BALANCE",
            data=_merge(data, holder=holder, have=have, need=need),
        )


# -------- helper utilities ---------------------------------------------------


def error_to_result_fields(err: EscrowError) -> Dict[str, Any]:
    """
    Map an EscrowError to canonical call-result fields.

    Returns:
        {
          "status": "REJECTED" | "NOT_FOUND" | "UNAUTHORIZED" | "TRANSFER_FAILED" | "ERROR",
          "error":  {code, message, data?}
        }
    """
    if isinstance(err, NotFound):
        status = "NOT_FOUND"
    elif isinstance(err, Unauthorized):
        status = "UNAUTHORIZED"
    elif isinstance(err, (InvalidArgument, InvalidState)):
        status = "REJECTED"
    elif isinstance(err, (TransferFailure, InsufficientBalance)):
        status = "TRANSFER_FAILED"
    else:
        status = "ERROR"
    return {"status": status, "error": err.to_dict()}


__all__ = [
    "EscrowError",
    "InvalidArgument",
    "NotFound",
    "Unauthorized",
    "InvalidState",
    "DuplicateTrade",
    "TransferFailure",
    "InsufficientBalance",
    "error_to_result_fields",
]
