"""
escrow.types.context — the caller-visible context of one public call.

The host builds a `CallContext` for every entrypoint invocation; contract code
reads `ctx.sender`, `ctx.value` and `ctx.timestamp` instead of any ambient state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from .address import ADDRESS_LEN


@dataclass(frozen=True)
class CallContext:
    """
    Attributes:
        sender:    bytes — 20-byte caller address
        value:     int >= 0 — native value attached to the call
        timestamp: int >= 0 — current Unix seconds as seen by the call
        depth:     int >= 0 — nesting level (0 = top-level call)
    """
    sender: bytes
    value: int = 0
    timestamp: int = 0
    depth: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.sender, bytes) or len(self.sender) != ADDRESS_LEN:
            raise ValueError("sender must be a 20-byte address")
        if self.value < 0:
            raise ValueError("value must be non-negative")
        if self.timestamp < 0:
            raise ValueError("timestamp must be non-negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": "0x" + self.sender.hex(),
            "value": self.value,
            "timestamp": self.timestamp,
            "depth": self.depth,
        }


__all__ = ["CallContext"]
