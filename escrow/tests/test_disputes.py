from __future__ import annotations

from typing import Callable, Dict, Tuple

import pytest

from escrow.engine import EscrowFactory, SellerEscrow
from escrow.errors import InvalidArgument, InvalidState, NotFound, Unauthorized
from escrow.runtime import Chain
from escrow.types import ZERO_ADDRESS, address_from_label

SELLER = address_from_label("seller")
BUYER = address_from_label("buyer")
OWNER = address_from_label("owner")
ARBITRATOR = address_from_label("arbitrator")
FEE_RECIPIENT = address_from_label("fee-recipient")
STRANGER = address_from_label("stranger")

STAKE = 10**18
ORDER = "order-9"
PRINCIPAL = 1000
FEE = 3
FUNDED = PRINCIPAL + FEE
ARGS = (ORDER, BUYER, ZERO_ADDRESS, PRINCIPAL)

STAKERS = {"none": (), "seller": (SELLER,), "buyer": (BUYER,), "both": (SELLER, BUYER)}

ACTIONS: Dict[str, Callable[[SellerEscrow], bool]] = {
    "release": lambda e: e.release(*ARGS, sender=SELLER),
    "buyer_cancel": lambda e: e.buyer_cancel(*ARGS, sender=BUYER),
    "resolve_buyer": lambda e: e.resolve_dispute(*ARGS, BUYER, sender=ARBITRATOR),
    "resolve_seller": lambda e: e.resolve_dispute(*ARGS, SELLER, sender=ARBITRATOR),
}


def _paid_trade(escrow: SellerEscrow) -> bytes:
    tid = escrow.create_native_escrow(ORDER, BUYER, PRINCIPAL, value=FUNDED, sender=SELLER)
    escrow.mark_as_paid(*ARGS, sender=BUYER)
    return tid


def _stake(escrow: SellerEscrow, *parties: bytes) -> None:
    for p in parties:
        escrow.open_dispute(*ARGS, sender=p, value=STAKE)


def _balances(chain: Chain) -> Tuple[int, int, int]:
    return (
        chain.native_balance(SELLER),
        chain.native_balance(BUYER),
        chain.native_balance(FEE_RECIPIENT),
    )


# -----------------------------------------------------------------------------
# Opening disputes
# -----------------------------------------------------------------------------

def test_dispute_requires_paid_trade(escrow: SellerEscrow) -> None:
    escrow.create_native_escrow(ORDER, BUYER, PRINCIPAL, value=FUNDED, sender=SELLER)
    with pytest.raises(InvalidState, match="cannot open a dispute yet"):
        escrow.open_dispute(*ARGS, sender=BUYER, value=STAKE)


def test_dispute_checks(chain: Chain, escrow: SellerEscrow) -> None:
    with pytest.raises(Unauthorized, match="must be seller or buyer"):
        escrow.open_dispute(*ARGS, sender=STRANGER)
    with pytest.raises(NotFound):
        escrow.open_dispute(*ARGS, sender=BUYER, value=STAKE)

    tid = _paid_trade(escrow)
    buyer_before = chain.native_balance(BUYER)
    with pytest.raises(InvalidArgument, match="you must pay"):
        escrow.open_dispute(*ARGS, sender=BUYER, value=STAKE - 1)
    with pytest.raises(InvalidArgument, match="you must pay"):
        escrow.open_dispute(*ARGS, sender=BUYER)
    assert chain.native_balance(BUYER) == buyer_before

    _stake(escrow, BUYER)
    with pytest.raises(InvalidState, match="already paid"):
        escrow.open_dispute(*ARGS, sender=BUYER, value=STAKE)

    rec = escrow.escrows(tid)
    assert rec is not None and rec.dispute
    assert escrow.dispute_payments(tid, BUYER)
    assert not escrow.dispute_payments(tid, SELLER)
    assert chain.native_balance(BUYER) == buyer_before - STAKE
    [ev] = chain.events.get_logs(name="DisputeOpened", trade_id=tid)
    assert ev.args["actor"] == BUYER


def test_stakes_are_not_free_balance(escrow: SellerEscrow) -> None:
    _paid_trade(escrow)
    _stake(escrow, SELLER, BUYER)
    assert escrow.native_balance == FUNDED + 2 * STAKE
    assert escrow.free_balance() == 0


def test_dispute_latch_survives_second_stake(escrow: SellerEscrow) -> None:
    tid = _paid_trade(escrow)
    _stake(escrow, SELLER)
    _stake(escrow, BUYER)
    rec = escrow.escrows(tid)
    assert rec is not None and rec.dispute and rec.paid


# -----------------------------------------------------------------------------
# Resolution
# -----------------------------------------------------------------------------

def test_resolve_checks(escrow: SellerEscrow) -> None:
    with pytest.raises(Unauthorized, match="must be arbitrator"):
        escrow.resolve_dispute(*ARGS, BUYER, sender=SELLER)
    with pytest.raises(NotFound):
        escrow.resolve_dispute(*ARGS, BUYER, sender=ARBITRATOR)

    _paid_trade(escrow)
    with pytest.raises(InvalidState, match="dispute is not open"):
        escrow.resolve_dispute(*ARGS, BUYER, sender=ARBITRATOR)

    _stake(escrow, BUYER)
    with pytest.raises(InvalidState, match="winner must be seller or buyer"):
        escrow.resolve_dispute(*ARGS, STRANGER, sender=ARBITRATOR)


def test_both_stake_arbitrator_sides_with_buyer(chain: Chain, escrow: SellerEscrow) -> None:
    tid = _paid_trade(escrow)
    _stake(escrow, SELLER, BUYER)
    seller0, buyer0, fees0 = _balances(chain)

    escrow.resolve_dispute(*ARGS, BUYER, sender=ARBITRATOR)

    seller1, buyer1, fees1 = _balances(chain)
    assert buyer1 - buyer0 == PRINCIPAL + STAKE
    assert fees1 - fees0 == FEE + STAKE
    assert seller1 == seller0
    assert escrow.native_balance == 0
    assert escrow.escrows(tid) is None
    assert not escrow.dispute_payments(tid, SELLER)
    assert not escrow.dispute_payments(tid, BUYER)
    [ev] = chain.events.get_logs(name="DisputeResolved", trade_id=tid)
    assert ev.args["winner"] == BUYER


def test_arbitrator_change_applies_to_open_disputes(factory: EscrowFactory, escrow: SellerEscrow) -> None:
    new_arbitrator = address_from_label("arbitrator-2")
    _paid_trade(escrow)
    _stake(escrow, BUYER)
    factory.set_arbitrator(new_arbitrator, sender=OWNER)

    with pytest.raises(Unauthorized):
        escrow.resolve_dispute(*ARGS, BUYER, sender=ARBITRATOR)
    assert escrow.resolve_dispute(*ARGS, BUYER, sender=new_arbitrator) is True


# -----------------------------------------------------------------------------
# Stake distribution table
#
# expected deltas for (seller, buyer, fee recipient) measured across the
# settling call only
# -----------------------------------------------------------------------------

STAKE_TABLE = [
    ("none", "release", (0, PRINCIPAL, FEE)),
    ("seller", "release", (STAKE, PRINCIPAL, FEE)),
    ("buyer", "release", (0, PRINCIPAL + STAKE, FEE)),
    ("both", "release", (0, PRINCIPAL + STAKE, FEE + STAKE)),
    ("none", "buyer_cancel", (FUNDED, 0, 0)),
    ("seller", "buyer_cancel", (FUNDED + STAKE, 0, 0)),
    ("buyer", "buyer_cancel", (FUNDED, STAKE, 0)),
    ("both", "buyer_cancel", (FUNDED + STAKE, 0, STAKE)),
    ("seller", "resolve_buyer", (STAKE, PRINCIPAL, FEE)),
    ("buyer", "resolve_buyer", (0, PRINCIPAL + STAKE, FEE)),
    ("both", "resolve_buyer", (0, PRINCIPAL + STAKE, FEE + STAKE)),
    ("seller", "resolve_seller", (FUNDED + STAKE, 0, 0)),
    ("buyer", "resolve_seller", (FUNDED, STAKE, 0)),
    ("both", "resolve_seller", (FUNDED + STAKE, 0, STAKE)),
]


@pytest.mark.parametrize("stakers,action,expected", STAKE_TABLE)
def test_stake_distribution(
    chain: Chain, escrow: SellerEscrow, stakers: str, action: str, expected: Tuple[int, int, int]
) -> None:
    tid = _paid_trade(escrow)
    _stake(escrow, *STAKERS[stakers])
    before = _balances(chain)

    assert ACTIONS[action](escrow) is True

    after = _balances(chain)
    assert tuple(a - b for a, b in zip(after, before)) == expected

    receipt = escrow.last_receipt
    assert receipt is not None and receipt.trade_id == tid
    # conservation: principal + fee and every stake leave the contract exactly once
    assert receipt.trade_total == FUNDED
    assert receipt.stake_total == STAKE * len(STAKERS[stakers])
    assert escrow.native_balance == 0
    assert escrow.ledger.committed(ZERO_ADDRESS) == 0


# -----------------------------------------------------------------------------
# Stake table on automatic trades
#
# The trade is backed by an earlier deposit. Value owed back to the seller
# stays in the pool as free balance, so the seller column holds stake refunds
# only. Stakes always move.
# -----------------------------------------------------------------------------

AUTOMATIC_STAKE_TABLE = [
    ("none", "release", (0, PRINCIPAL, FEE)),
    ("seller", "release", (STAKE, PRINCIPAL, FEE)),
    ("both", "release", (0, PRINCIPAL + STAKE, FEE + STAKE)),
    ("none", "buyer_cancel", (0, 0, 0)),
    ("buyer", "buyer_cancel", (0, STAKE, 0)),
    ("both", "buyer_cancel", (STAKE, 0, STAKE)),
    ("seller", "resolve_seller", (STAKE, 0, 0)),
    ("buyer", "resolve_seller", (0, STAKE, 0)),
    ("both", "resolve_seller", (STAKE, 0, STAKE)),
    ("buyer", "resolve_buyer", (0, PRINCIPAL + STAKE, FEE)),
    ("both", "resolve_buyer", (0, PRINCIPAL + STAKE, FEE + STAKE)),
]


@pytest.mark.parametrize("stakers,action,expected", AUTOMATIC_STAKE_TABLE)
def test_stake_distribution_on_automatic_trade(
    chain: Chain, escrow: SellerEscrow, stakers: str, action: str, expected: Tuple[int, int, int]
) -> None:
    chain.transfer_native(SELLER, escrow.address, FUNDED)
    tid = escrow.create_native_escrow(ORDER, BUYER, PRINCIPAL, automatic=True, sender=SELLER)
    escrow.mark_as_paid(*ARGS, sender=BUYER)
    _stake(escrow, *STAKERS[stakers])
    before = _balances(chain)
    escrow_before = escrow.native_balance

    assert ACTIONS[action](escrow) is True

    deltas = tuple(a - b for a, b in zip(_balances(chain), before))
    assert deltas == expected
    assert escrow.native_balance - escrow_before == -sum(deltas)

    receipt = escrow.last_receipt
    assert receipt is not None and receipt.trade_id == tid
    assert receipt.trade_total == FUNDED
    assert receipt.stake_total == STAKE * len(STAKERS[stakers])
    assert escrow.balances_in_use() == 0
    assert escrow.ledger.committed(ZERO_ADDRESS) == 0
    # whatever stayed behind is the seller's to reuse
    assert escrow.free_balance() == escrow.native_balance


# -----------------------------------------------------------------------------
# Stake table with a partner fee
#
# 30 bps protocol + 40 bps partner on 1000: fee 7, protocol share 3, partner 4.
# Deltas are (seller, buyer, fee recipient, partner).
# -----------------------------------------------------------------------------

PARTNER = address_from_label("partner")
PARTNER_FEE = 7
PARTNER_FUNDED = PRINCIPAL + PARTNER_FEE

PARTNER_STAKE_TABLE = [
    ("buyer", "resolve_buyer", (0, PRINCIPAL + STAKE, 3, 4)),
    ("both", "resolve_buyer", (0, PRINCIPAL + STAKE, 3 + STAKE, 4)),
    ("seller", "resolve_seller", (PARTNER_FUNDED + STAKE, 0, 0, 0)),
    ("both", "resolve_seller", (PARTNER_FUNDED + STAKE, 0, STAKE, 0)),
    ("both", "release", (0, PRINCIPAL + STAKE, 3 + STAKE, 4)),
    ("both", "buyer_cancel", (PARTNER_FUNDED + STAKE, 0, STAKE, 0)),
]


@pytest.mark.parametrize("stakers,action,expected", PARTNER_STAKE_TABLE)
def test_stake_distribution_with_partner_fee(
    chain: Chain,
    factory: EscrowFactory,
    escrow: SellerEscrow,
    stakers: str,
    action: str,
    expected: Tuple[int, int, int, int],
) -> None:
    factory.update_partner_fee_bps([PARTNER], [40], sender=OWNER)
    tid = escrow.create_native_escrow(ORDER, BUYER, PRINCIPAL, PARTNER, value=PARTNER_FUNDED, sender=SELLER)
    rec = escrow.escrows(tid)
    assert rec is not None and (rec.fee, rec.protocol_fee_share) == (PARTNER_FEE, 3)
    escrow.mark_as_paid(*ARGS, sender=BUYER)
    _stake(escrow, *STAKERS[stakers])
    before = _balances(chain) + (chain.native_balance(PARTNER),)

    assert ACTIONS[action](escrow) is True

    after = _balances(chain) + (chain.native_balance(PARTNER),)
    assert tuple(a - b for a, b in zip(after, before)) == expected

    receipt = escrow.last_receipt
    assert receipt is not None
    assert receipt.trade_total == PARTNER_FUNDED
    assert escrow.native_balance == 0
