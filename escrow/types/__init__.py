"""
escrow.types — plain data shapes shared by the host and the engine.
"""

from .address import ZERO_ADDRESS, address_from_label, is_zero, to_address, to_hex
from .context import CallContext
from .events import LogEvent, event_topic
from .trade import SELLER_CANNOT_CANCEL, TradeKey, TradeRecord

__all__ = [
    "ZERO_ADDRESS",
    "address_from_label",
    "is_zero",
    "to_address",
    "to_hex",
    "CallContext",
    "LogEvent",
    "event_topic",
    "SELLER_CANNOT_CANCEL",
    "TradeKey",
    "TradeRecord",
]
