"""
escrow.runtime — the host chain, contract base and asset plumbing.
"""

from .chain import Chain, Contract, ReceiveHook, entrypoint
from .tokens import CredentialCollection, FungibleToken

__all__ = [
    "Chain",
    "Contract",
    "ReceiveHook",
    "entrypoint",
    "CredentialCollection",
    "FungibleToken",
]
