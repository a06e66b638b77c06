from __future__ import annotations

import pytest

from escrow.errors import InsufficientBalance, InvalidArgument
from escrow.runtime import Chain
from escrow.state import EventLog, Journal, NativeBalances, credit, debit, safe_transfer
from escrow.types import address_from_label, event_topic

ALICE = address_from_label("alice")
BOB = address_from_label("bob")


# -----------------------------------------------------------------------------
# Journal checkpoints
# -----------------------------------------------------------------------------

def test_revert_restores_prior_values() -> None:
    j = Journal({("k", 1): 10})
    j.begin()
    j.set(("k", 1), 11)
    j.set(("k", 2), 20)
    j.delete(("k", 1))
    j.revert()

    assert j.snapshot() == {("k", 1): 10}
    assert j.depth == 0


def test_nested_commit_folds_into_parent() -> None:
    j = Journal()
    j.begin()
    j.set(("a",), 1)
    j.begin()
    j.set(("a",), 2)
    j.set(("b",), 3)
    j.commit()
    assert j.get(("a",)) == 2

    # reverting the outer level undoes the committed inner writes too
    j.revert()
    assert j.snapshot() == {}


def test_inner_revert_keeps_outer_writes() -> None:
    j = Journal()
    with j.atomic():
        j.set(("x",), 1)
        with pytest.raises(RuntimeError):
            with j.atomic():
                j.set(("x",), 2)
                j.set(("y",), 2)
                raise RuntimeError("boom")
        assert j.snapshot() == {("x",): 1}
    assert j.snapshot() == {("x",): 1}


def test_unbalanced_checkpoints_raise() -> None:
    j = Journal()
    with pytest.raises(RuntimeError):
        j.commit()
    with pytest.raises(RuntimeError):
        j.revert()


def test_add_deletes_zero_and_refuses_negative() -> None:
    j = Journal()
    assert j.add(("n",), 5) == 5
    assert j.add(("n",), -5) == 0
    assert not j.contains(("n",))
    with pytest.raises(ValueError):
        j.add(("n",), -1)


def test_root_ignores_insertion_order() -> None:
    a = Journal()
    a.set(("k", 1), 1)
    a.set(("k", 2), 2)
    b = Journal()
    b.set(("k", 2), 2)
    b.set(("k", 1), 1)
    assert a.root() == b.root()
    b.set(("k", 2), 3)
    assert a.root() != b.root()


def test_items_by_prefix() -> None:
    j = Journal({("trade", b"c", b"1"): "x", ("trade", b"d", b"1"): "y", ("stake", b"c"): 1})
    assert [k for k, _ in j.items(("trade", b"c"))] == [("trade", b"c", b"1")]


# -----------------------------------------------------------------------------
# Balances
# -----------------------------------------------------------------------------

def test_balance_ops() -> None:
    bal = NativeBalances(Journal())
    assert credit(bal, ALICE, 100) == 100
    assert debit(bal, ALICE, 40) == 60
    assert safe_transfer(bal, ALICE, BOB, 60) == {"debited": 60, "credited": 60}
    assert bal.get_balance(ALICE) == 0
    assert bal.get_balance(BOB) == 60

    with pytest.raises(InsufficientBalance):
        debit(bal, ALICE, 1)
    with pytest.raises(InvalidArgument):
        credit(bal, ALICE, -1)
    assert safe_transfer(bal, BOB, BOB, 10) == {"debited": 0, "credited": 0}


def test_chain_atomic_reverts_state_and_events() -> None:
    chain = Chain(1_000)
    chain.mint_native(ALICE, 50)
    chain.events.emit(ALICE, "Before")

    with pytest.raises(InsufficientBalance):
        with chain.atomic():
            chain.events.emit(ALICE, "Inside")
            chain.move_value(ALICE, BOB, 10)
            chain.move_value(ALICE, BOB, 100)

    assert chain.native_balance(ALICE) == 50
    assert chain.native_balance(BOB) == 0
    assert chain.events.names() == ["Before"]


def test_clock_only_moves_forward() -> None:
    chain = Chain(1_000)
    assert chain.advance(5) == 1_005
    assert chain.set_time(2_000) == 2_000
    with pytest.raises(ValueError):
        chain.set_time(1_999)
    with pytest.raises(ValueError):
        chain.advance(-1)


# -----------------------------------------------------------------------------
# Events
# -----------------------------------------------------------------------------

def test_event_log_filters_and_truncates() -> None:
    log = EventLog()
    tid = b"\x07" * 32
    log.emit(ALICE, "EscrowCreated", trade_id=tid, args={"fee": 3})
    log.emit(BOB, "Transfer", args={"src": ALICE, "dst": BOB, "amount": 1})
    log.emit(ALICE, "Released", trade_id=tid)

    assert [e.name for e in log.get_logs(trade_id=tid)] == ["EscrowCreated", "Released"]
    assert [e.index for e in log.get_logs(emitter=ALICE)] == [0, 2]
    assert len(log.get_logs(limit=1)) == 1

    log.truncate(1)
    assert len(log) == 1
    assert log.names() == ["EscrowCreated"]


def test_event_topics() -> None:
    log = EventLog()
    ev = log.emit(BOB, "Transfer", args={"src": ALICE, "dst": BOB, "amount": 1})
    assert ev.signature == "Transfer(address,address,uint256)"
    assert ev.topics[0].hex() == "ddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
    assert event_topic(ev.signature) == ev.topics[0]

    tid = b"\x01" * 32
    released = log.emit(ALICE, "Released", trade_id=tid)
    assert released.topics == [event_topic("Released(bytes32)"), tid]
    assert released.to_dict()["trade_id"] == "0x" + tid.hex()
