"""
escrow.state — journaled host state: key/value journal, balances, event log.
"""

from .balances import BalanceAccess, NativeBalances, TokenBalances, credit, debit, safe_transfer
from .events import EventLog
from .journal import Journal

__all__ = [
    "BalanceAccess",
    "NativeBalances",
    "TokenBalances",
    "credit",
    "debit",
    "safe_transfer",
    "EventLog",
    "Journal",
]
