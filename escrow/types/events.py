"""
escrow.types.events — event records emitted by contracts on the host.

Each event carries its emitter, a name, the trade id it is keyed by (for the
escrow events) and named arguments. `topics` renders the indexable form:
topic0 = keccak256(signature), topic1 = trade id when present.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from Crypto.Hash import keccak


def event_topic(signature: str) -> bytes:
    """keccak256 of an event signature string, e.g. 'Released(bytes32)'."""
    h = keccak.new(digest_bits=256)
    h.update(signature.encode("ascii"))
    return h.digest()


@dataclass(frozen=True)
class LogEvent:
    """
    A single emitted event.

    Attributes:
        index:    position in the host's append-only log (0-based)
        emitter:  20-byte address of the emitting contract
        name:     event name, e.g. "EscrowCreated"
        trade_id: 32-byte trade id for trade-keyed events, else None
        args:     named arguments (addresses as bytes, amounts as int)
    """
    index: int
    emitter: bytes
    name: str
    trade_id: Optional[bytes] = None
    args: Mapping[str, Any] = field(default_factory=dict)

    @property
    def signature(self) -> str:
        params = ["bytes32"] if self.trade_id is not None else []
        params.extend(_abi_kind(v) for v in self.args.values())
        return f"{self.name}({','.join(params)})"

    @property
    def topics(self) -> List[bytes]:
        out = [event_topic(self.signature)]
        if self.trade_id is not None:
            out.append(self.trade_id)
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "emitter": "0x" + self.emitter.hex(),
            "name": self.name,
            "trade_id": None if self.trade_id is None else "0x" + self.trade_id.hex(),
            "args": {
                k: ("0x" + v.hex()) if isinstance(v, (bytes, bytearray)) else v
                for k, v in self.args.items()
            },
        }


def _abi_kind(v: Any) -> str:
    if isinstance(v, bool):
        return "bool"
    if isinstance(v, int):
        return "uint256"
    if isinstance(v, (bytes, bytearray)) and len(v) == 20:
        return "address"
    if isinstance(v, (bytes, bytearray)):
        return "bytes32" if len(v) == 32 else "bytes"
    return "string"


__all__ = ["LogEvent", "event_topic"]
