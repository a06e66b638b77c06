from __future__ import annotations

import pytest

from escrow.engine import SellerEscrow
from escrow.errors import InvalidArgument, InvalidState, Unauthorized
from escrow.runtime import Chain, FungibleToken
from escrow.types import ZERO_ADDRESS, address_from_label

SELLER = address_from_label("seller")
BUYER = address_from_label("buyer")
FEE_RECIPIENT = address_from_label("fee-recipient")

DEPOSIT = 5000
PRINCIPAL = 1000
FUNDED = 1003


def _deposit(chain: Chain, escrow: SellerEscrow, amount: int = DEPOSIT) -> None:
    chain.transfer_native(SELLER, escrow.address, amount)


def _assert_ledger_sane(escrow: SellerEscrow, asset: bytes = ZERO_ADDRESS) -> None:
    on_hand = escrow.ledger.on_hand(asset)
    assert 0 <= escrow.ledger.in_use(asset) <= on_hand
    assert escrow.ledger.in_use(asset) + escrow.ledger.committed(asset) <= on_hand


def test_automatic_without_free_balance_is_rejected(chain: Chain, escrow: SellerEscrow) -> None:
    snapshot = chain.journal.snapshot()
    n_events = len(chain.events)

    with pytest.raises(InvalidArgument, match="not enough tokens in escrow"):
        escrow.create_native_escrow("a", BUYER, PRINCIPAL, automatic=True, sender=SELLER)

    assert chain.journal.snapshot() == snapshot
    assert len(chain.events) == n_events


def test_funded_trades_are_not_free_balance(chain: Chain, escrow: SellerEscrow) -> None:
    escrow.create_native_escrow("funded", BUYER, PRINCIPAL, value=FUNDED, sender=SELLER)
    assert escrow.native_balance == FUNDED
    assert escrow.free_balance() == 0

    with pytest.raises(InvalidArgument, match="not enough tokens in escrow"):
        escrow.create_native_escrow("a", BUYER, PRINCIPAL, automatic=True, sender=SELLER)


def test_automatic_trade_reserves_deposit(chain: Chain, escrow: SellerEscrow) -> None:
    _deposit(chain, escrow)
    assert escrow.free_balance() == DEPOSIT

    tid = escrow.create_native_escrow("a", BUYER, PRINCIPAL, automatic=True, sender=SELLER)

    rec = escrow.escrows(tid)
    assert rec is not None and rec.automatic
    assert escrow.balances_in_use() == FUNDED
    assert escrow.free_balance() == DEPOSIT - FUNDED
    assert escrow.native_balance == DEPOSIT
    _assert_ledger_sane(escrow)


def test_automatic_rejects_attached_value(chain: Chain, escrow: SellerEscrow) -> None:
    _deposit(chain, escrow)
    with pytest.raises(InvalidArgument, match="incorrect amount sent"):
        escrow.create_native_escrow("a", BUYER, PRINCIPAL, automatic=True, value=FUNDED, sender=SELLER)


def test_automatic_release_pays_out_and_frees_reservation(chain: Chain, escrow: SellerEscrow) -> None:
    _deposit(chain, escrow)
    escrow.create_native_escrow("a", BUYER, PRINCIPAL, automatic=True, sender=SELLER)
    buyer_before = chain.native_balance(BUYER)

    escrow.release("a", BUYER, ZERO_ADDRESS, PRINCIPAL, sender=SELLER)

    assert chain.native_balance(BUYER) == buyer_before + PRINCIPAL
    assert chain.native_balance(FEE_RECIPIENT) == 3
    assert escrow.balances_in_use() == 0
    assert escrow.native_balance == DEPOSIT - FUNDED
    assert escrow.free_balance() == DEPOSIT - FUNDED
    _assert_ledger_sane(escrow)


def test_automatic_cancel_keeps_value_in_pool(chain: Chain, escrow: SellerEscrow) -> None:
    _deposit(chain, escrow)
    escrow.create_native_escrow("a", BUYER, PRINCIPAL, automatic=True, sender=SELLER)
    seller_before = chain.native_balance(SELLER)

    escrow.buyer_cancel("a", BUYER, ZERO_ADDRESS, PRINCIPAL, sender=BUYER)

    receipt = escrow.last_receipt
    assert receipt is not None
    assert receipt.trade_total == FUNDED
    assert all(not p.transferred for p in receipt.payouts)
    assert chain.native_balance(SELLER) == seller_before
    assert escrow.balances_in_use() == 0
    assert escrow.free_balance() == DEPOSIT


def test_automatic_token_trade(escrow: SellerEscrow, token: FungibleToken) -> None:
    token.transfer(escrow.address, 50_000, sender=SELLER)
    assert escrow.free_balance(token.address) == 50_000

    escrow.create_erc20_escrow("t", BUYER, token.address, 10_000, automatic=True, sender=SELLER)
    assert escrow.balances_in_use(token.address) == 10_030
    assert escrow.free_balance(token.address) == 50_000 - 10_030

    escrow.release("t", BUYER, token.address, 10_000, sender=SELLER)
    assert token.balance_of(BUYER) == 10_000
    assert token.balance_of(FEE_RECIPIENT) == 30
    assert escrow.balances_in_use(token.address) == 0
    _assert_ledger_sane(escrow, token.address)


# -----------------------------------------------------------------------------
# Withdrawals
# -----------------------------------------------------------------------------

def test_withdraw_only_free_balance(chain: Chain, escrow: SellerEscrow) -> None:
    escrow.create_native_escrow("funded", BUYER, PRINCIPAL, value=FUNDED, sender=SELLER)
    _deposit(chain, escrow)
    escrow.create_native_escrow("a", BUYER, PRINCIPAL, automatic=True, sender=SELLER)
    free = DEPOSIT - FUNDED
    assert escrow.free_balance() == free

    with pytest.raises(InvalidArgument, match="not enough tokens in escrow"):
        escrow.withdraw_balance(ZERO_ADDRESS, free + 1, sender=SELLER)
    with pytest.raises(Unauthorized):
        escrow.withdraw_balance(ZERO_ADDRESS, 1, sender=BUYER)
    with pytest.raises(InvalidArgument, match="invalid amount"):
        escrow.withdraw_balance(ZERO_ADDRESS, 0, sender=SELLER)

    seller_before = chain.native_balance(SELLER)
    escrow.withdraw_balance(ZERO_ADDRESS, free, sender=SELLER)
    assert chain.native_balance(SELLER) == seller_before + free
    assert escrow.free_balance() == 0
    _assert_ledger_sane(escrow)

    # both trades still settle from what remains
    escrow.release("funded", BUYER, ZERO_ADDRESS, PRINCIPAL, sender=SELLER)
    escrow.release("a", BUYER, ZERO_ADDRESS, PRINCIPAL, sender=SELLER)
    assert escrow.native_balance == 0
    assert escrow.ledger.committed(ZERO_ADDRESS) == 0


def test_ledger_underflow_guards(escrow: SellerEscrow) -> None:
    with pytest.raises(InvalidState):
        escrow.ledger.release_reservation(ZERO_ADDRESS, 1)
    with pytest.raises(InvalidState):
        escrow.ledger.uncommit(ZERO_ADDRESS, 1)
