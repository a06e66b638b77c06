"""
escrow.engine.identity — deterministic trade ids.

    trade_id = keccak256( orderId:bytes32 ‖ seller:address ‖ buyer:address
                          ‖ asset:address ‖ principal:uint256 )

Fields are packed at fixed width (32 + 20 + 20 + 20 + 32 = 124 bytes) and
hashed with Keccak-256, the same layout as a tightly packed
(bytes32, address, address, address, uint256) tuple. Identical tuples collide
on purpose: that is how duplicate orders are rejected. The id also serves as
the salt when the factory deploys one dedicated instance per trade.
"""

from __future__ import annotations

from typing import Union

from Crypto.Hash import keccak

from ..errors import InvalidArgument
from ..types.address import AddressLike, to_address
from ..types.trade import TradeKey

OrderIdLike = Union[str, bytes, bytearray, int]

UINT256_MAX = 2**256 - 1


def order_id_bytes(order_id: OrderIdLike) -> bytes:
    """
    Normalize an order id to 32 bytes.

    - bytes (≤ 32): right-padded with zeros
    - str: UTF-8 encoded then right-padded (a short label such as "1")
    - int: big-endian, left-padded
    """
    if isinstance(order_id, bool):
        raise InvalidArgument("order id must not be bool", arg="order_id")
    if isinstance(order_id, int):
        if not 0 <= order_id <= UINT256_MAX:
            raise InvalidArgument("order id out of range", arg="order_id")
        return order_id.to_bytes(32, "big")
    if isinstance(order_id, str):
        raw = order_id.encode("utf-8")
    elif isinstance(order_id, (bytes, bytearray)):
        raw = bytes(order_id)
    else:
        raise InvalidArgument(f"unsupported order id type {type(order_id).__name__}", arg="order_id")
    if len(raw) > 32:
        raise InvalidArgument("order id longer than 32 bytes", arg="order_id")
    return raw.ljust(32, b"\x00")


def principal_amount(principal: int) -> int:
    if isinstance(principal, bool) or not isinstance(principal, int):
        raise InvalidArgument("invalid amount", arg="amount")
    return principal


def pack_trade(key: TradeKey) -> bytes:
    if not 0 <= key.principal <= UINT256_MAX:
        raise InvalidArgument("principal out of uint256 range", arg="principal")
    return (
        key.order_id
        + key.seller
        + key.buyer
        + key.asset
        + key.principal.to_bytes(32, "big")
    )


def trade_id_for(key: TradeKey) -> bytes:
    h = keccak.new(digest_bits=256)
    h.update(pack_trade(key))
    return h.digest()


def trade_key(
    order_id: OrderIdLike,
    seller: AddressLike,
    buyer: AddressLike,
    asset: AddressLike,
    principal: int,
) -> TradeKey:
    return TradeKey(
        order_id=order_id_bytes(order_id),
        seller=to_address(seller, name="seller"),
        buyer=to_address(buyer, name="buyer"),
        asset=to_address(asset, name="asset"),
        principal=principal_amount(principal),
    )


def trade_id(
    order_id: OrderIdLike,
    seller: AddressLike,
    buyer: AddressLike,
    asset: AddressLike,
    principal: int,
) -> bytes:
    """Trade id for the given creation parameters (native asset = zero address)."""
    return trade_id_for(trade_key(order_id, seller, buyer, asset, principal))


__all__ = [
    "OrderIdLike",
    "order_id_bytes",
    "pack_trade",
    "principal_amount",
    "trade_id_for",
    "trade_key",
    "trade_id",
]
