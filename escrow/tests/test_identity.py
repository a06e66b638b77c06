from __future__ import annotations

import pytest
from Crypto.Hash import keccak

from escrow.engine.identity import order_id_bytes, pack_trade, trade_id, trade_key
from escrow.errors import InvalidArgument
from escrow.types import ZERO_ADDRESS, address_from_label

SELLER = address_from_label("seller")
BUYER = address_from_label("buyer")
TOKEN = address_from_label("token")


def _keccak(data: bytes) -> bytes:
    h = keccak.new(digest_bits=256)
    h.update(data)
    return h.digest()


def test_keccak_backend_matches_known_vector() -> None:
    assert _keccak(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"


def test_order_id_normalization() -> None:
    assert order_id_bytes("1") == b"1" + b"\x00" * 31
    assert order_id_bytes(b"\xab") == b"\xab" + b"\x00" * 31
    assert order_id_bytes(1) == b"\x00" * 31 + b"\x01"
    assert order_id_bytes(b"\x11" * 32) == b"\x11" * 32

    with pytest.raises(InvalidArgument):
        order_id_bytes(b"\x00" * 33)
    with pytest.raises(InvalidArgument):
        order_id_bytes(-1)
    with pytest.raises(InvalidArgument):
        order_id_bytes(True)


def test_packed_layout_is_fixed_width() -> None:
    key = trade_key("order-7", SELLER, BUYER, TOKEN, 1000)
    packed = pack_trade(key)

    assert len(packed) == 32 + 20 + 20 + 20 + 32
    assert packed[:32] == order_id_bytes("order-7")
    assert packed[32:52] == SELLER
    assert packed[52:72] == BUYER
    assert packed[72:92] == TOKEN
    assert int.from_bytes(packed[92:], "big") == 1000


def test_trade_id_is_keccak_of_packed_tuple() -> None:
    expected = _keccak(order_id_bytes("1") + SELLER + BUYER + ZERO_ADDRESS + (1000).to_bytes(32, "big"))
    assert trade_id("1", SELLER, BUYER, ZERO_ADDRESS, 1000) == expected
    assert len(expected) == 32


def test_trade_id_depends_on_every_field() -> None:
    base = trade_id("1", SELLER, BUYER, ZERO_ADDRESS, 1000)
    variants = [
        trade_id("2", SELLER, BUYER, ZERO_ADDRESS, 1000),
        trade_id("1", BUYER, SELLER, ZERO_ADDRESS, 1000),
        trade_id("1", SELLER, BUYER, TOKEN, 1000),
        trade_id("1", SELLER, BUYER, ZERO_ADDRESS, 1001),
    ]
    assert base not in variants
    assert len(set(variants)) == len(variants)
    # hex and bytes inputs address the same trade
    assert trade_id("1", "0x" + SELLER.hex(), BUYER, None, 1000) == base


def test_principal_must_fit_uint256() -> None:
    with pytest.raises(InvalidArgument):
        trade_id("1", SELLER, BUYER, ZERO_ADDRESS, 2**256)
