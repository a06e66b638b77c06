"""
escrow.engine — fee calculation, trade identity, balance ledger, settlement,
the per-seller escrow state machine and the factory that deploys it.
"""

from .credentials import CollectionCredential, HoldsDiscountCredential, NoDiscount, as_credential
from .factory import EscrowFactory
from .fees import BPS_DENOM, FeeCalculator, FeeQuote, quote_fee
from .identity import order_id_bytes, trade_id, trade_id_for, trade_key
from .ledger import BalanceLedger
from .machine import SellerEscrow
from .policy import PolicyReader, PolicySnapshot, PolicyStore
from .settlement import Payout, SettlementEngine, SettlementReceipt

__all__ = [
    "CollectionCredential",
    "HoldsDiscountCredential",
    "NoDiscount",
    "as_credential",
    "EscrowFactory",
    "BPS_DENOM",
    "FeeCalculator",
    "FeeQuote",
    "quote_fee",
    "order_id_bytes",
    "trade_id",
    "trade_id_for",
    "trade_key",
    "BalanceLedger",
    "SellerEscrow",
    "PolicyReader",
    "PolicySnapshot",
    "PolicyStore",
    "Payout",
    "SettlementEngine",
    "SettlementReceipt",
]
