"""
escrow.runtime.chain — the in-process host that contracts run on.

The host owns
  • a journaled key/value store (`escrow.state.journal.Journal`) holding every
    balance, record and registry entry,
  • the append-only event log,
  • the clock (`now`), advanced explicitly by callers,
  • per-address receive hooks used to model payees that run code when paid.

Every public contract method is wrapped by `entrypoint`, which serializes it into
one atomic step: a journal checkpoint is opened, attached native value is moved
to the contract, the body runs, and on any exception every write (balances,
records, ledger, stakes, events) is reverted before the exception propagates.
Calls made from inside a call (token transfers, re-entrant hooks) nest
checkpoints, so an inner failure that is caught leaves the outer call intact.
"""

from __future__ import annotations

import functools
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar

from Crypto.Hash import keccak

from .. import metrics
from ..config import EscrowConfig, get_config
from ..errors import EscrowError, InvalidArgument, TransferFailure
from ..logging import trace_scope
from ..state.balances import NativeBalances, credit, safe_transfer
from ..state.events import EventLog
from ..state.journal import Journal
from ..types.address import ADDRESS_LEN, AddressLike, to_address
from ..types.context import CallContext

log = logging.getLogger(__name__)

# hook(chain, sender, amount); raise to reject the payment
ReceiveHook = Callable[["Chain", bytes, int], None]

F = TypeVar("F", bound=Callable[..., Any])


class Chain:
    """
    Deterministic single-process host.

    Parameters
    ----------
    timestamp:
        Initial clock value (Unix seconds). Defaults to the wall clock at construction.
    config:
        EscrowConfig used by contracts deployed on this host (default: `get_config()`).
    """

    def __init__(self, timestamp: Optional[int] = None, *, config: Optional[EscrowConfig] = None) -> None:
        self.journal = Journal()
        self.events = EventLog()
        self.config = config or get_config()
        self.native = NativeBalances(self.journal)
        self._time = int(time.time()) if timestamp is None else int(timestamp)
        self._hooks: Dict[bytes, ReceiveHook] = {}
        self._nonce = 0

    # ------------------------------------------------------------------ clock

    @property
    def now(self) -> int:
        return self._time

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("time only moves forward")
        self._time += int(seconds)
        return self._time

    def set_time(self, timestamp: int) -> int:
        if timestamp < self._time:
            raise ValueError("time only moves forward")
        self._time = int(timestamp)
        return self._time

    # -------------------------------------------------------------- atomicity

    @property
    def depth(self) -> int:
        return self.journal.depth

    @contextmanager
    def atomic(self) -> Iterator["Chain"]:
        """All-or-nothing scope over state and events; nests."""
        mark = len(self.events)
        self.journal.begin()
        try:
            yield self
        except BaseException:
            self.journal.revert()
            self.events.truncate(mark)
            raise
        else:
            self.journal.commit()

    # -------------------------------------------------------------- addresses

    def derive_address(self, deployer: bytes, salt: bytes) -> bytes:
        """
        Deterministic instance address: last 20 bytes of
        keccak256(0xff ‖ deployer ‖ salt32). Same inputs, same address.
        """
        if len(salt) > 32:
            raise ValueError("salt must be at most 32 bytes")
        h = keccak.new(digest_bits=256)
        h.update(b"\xff" + deployer + salt.rjust(32, b"\x00"))
        return h.digest()[-ADDRESS_LEN:]

    def new_address(self, label: str = "contract") -> bytes:
        """Fresh address for contracts created outside a factory (tokens, collections)."""
        self._nonce += 1
        h = keccak.new(digest_bits=256)
        h.update(f"{label}:{self._nonce}".encode("utf-8"))
        return h.digest()[-ADDRESS_LEN:]

    # -------------------------------------------------------------- contracts

    def register_contract(self, address: bytes, contract: Any) -> None:
        key = ("code", address)
        if self.journal.contains(key):
            raise InvalidArgument("address already holds a contract", arg="address")
        self.journal.set(key, contract)

    def contract_at(self, address: bytes) -> Optional[Any]:
        return self.journal.get(("code", address))

    def set_receive_hook(self, address: AddressLike, hook: Optional[ReceiveHook]) -> None:
        addr = to_address(address)
        if hook is None:
            self._hooks.pop(addr, None)
        else:
            self._hooks[addr] = hook

    # ----------------------------------------------------------------- native

    def native_balance(self, address: AddressLike) -> int:
        return self.native.get_balance(to_address(address))

    def mint_native(self, address: AddressLike, amount: int) -> int:
        with self.atomic():
            return credit(self.native, to_address(address), amount)

    def move_value(self, sender: bytes, to: bytes, amount: int) -> None:
        """Raw native movement; no receive code runs. Used for call value."""
        safe_transfer(self.native, sender, to, amount)

    def transfer_native(self, sender: AddressLike, to: AddressLike, amount: int) -> None:
        """
        Plain value transfer (a top-level "send"). The recipient's receive hook and,
        for contracts, their `receive(sender, amount)` run inside the same atomic step.
        """
        s = to_address(sender, name="sender")
        t = to_address(to, name="to")
        with trace_scope(op="transfer_native", caller=s):
            with self.atomic():
                self._deliver(s, t, amount)

    def send_native(self, sender: bytes, to: bytes, amount: int) -> None:
        """
        Value transfer issued by contract code. Any failure (insufficient funds,
        a rejecting hook, a raising `receive`) surfaces as TransferFailure.
        """
        try:
            with self.atomic():
                self._deliver(sender, to, amount)
        except TransferFailure:
            raise
        except EscrowError as e:
            raise TransferFailure(
                f"native transfer rejected: {e.message}", to=to, amount=amount,
                data={"cause": e.code},
            ) from e
        except Exception as e:
            raise TransferFailure(
                f"native transfer rejected: {e}", to=to, amount=amount
            ) from e

    def _deliver(self, sender: bytes, to: bytes, amount: int) -> None:
        safe_transfer(self.native, sender, to, amount)
        contract = self.contract_at(to)
        if contract is not None:
            contract.receive(sender, amount)
        hook = self._hooks.get(to)
        if hook is not None:
            hook(self, sender, amount)


# =============================================================================
# Contracts & entrypoints
# =============================================================================


class Contract:
    """
    Base for objects deployed on a Chain. Subclasses expose their public surface
    through `@entrypoint` methods and emit events with `emit`.
    """

    def __init__(self, chain: Chain, address: bytes) -> None:
        self.chain = chain
        self.address = address
        chain.register_contract(address, self)

    def emit(self, name: str, *, trade_id: Optional[bytes] = None, **args: Any):
        return self.chain.events.emit(self.address, name, trade_id=trade_id, args=args)

    @property
    def native_balance(self) -> int:
        return self.chain.native.get_balance(self.address)

    def receive(self, sender: bytes, amount: int) -> None:
        """Plain native transfers into a contract are rejected unless overridden."""
        raise TransferFailure("contract does not accept plain transfers", to=self.address, amount=amount)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} 0x{self.address.hex()}>"


def entrypoint(fn: Optional[F] = None, *, payable: bool = False) -> Any:
    """
    Turn a contract method `def op(self, ctx, *args)` into a public call
    `contract.op(*args, sender=..., value=0)`.

    The call runs as one atomic step on `self.chain`. Non-payable methods reject
    attached value.
    """

    def deco(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Contract, *args: Any, sender: AddressLike, value: int = 0, **kwargs: Any) -> Any:
            chain = self.chain
            caller = to_address(sender, name="sender")
            if value < 0:
                raise InvalidArgument("value must be non-negative", arg="value")
            if value and not payable:
                raise InvalidArgument(f"{func.__name__} is not payable", arg="value")
            with trace_scope(op=func.__name__, contract=self.address, caller=caller):
                try:
                    with chain.atomic():
                        if value:
                            chain.move_value(caller, self.address, value)
                        ctx = CallContext(
                            sender=caller, value=value, timestamp=chain.now, depth=chain.depth - 1
                        )
                        return func(self, ctx, *args, **kwargs)
                except EscrowError as e:
                    log.warning("call reverted: %s", e.message, extra={"error": e.code})
                    metrics.observe_revert(e.code, enabled=chain.config.features.metrics)
                    raise

        wrapper.__entrypoint__ = True  # type: ignore[attr-defined]
        wrapper.__payable__ = payable  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]

    if fn is not None:
        return deco(fn)
    return deco


__all__ = ["Chain", "Contract", "ReceiveHook", "entrypoint"]
