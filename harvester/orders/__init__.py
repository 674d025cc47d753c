"""Swap order codec: order model, appData, EIP-712 digest and EIP-1271 validation."""

from .appdata import AppData, build_fee_app_data, transfer_from_calldata
from .order import (
    OrderDomain,
    SwapOrder,
    build_order,
    encode_order,
    order_creation_payload,
    order_digest,
    protocol_fee,
)
from .signature import MAGIC_VALUE, SignatureCheck, SignatureValidator, is_stale_feed_revert

__all__ = [
    "AppData",
    "build_fee_app_data",
    "transfer_from_calldata",
    "OrderDomain",
    "SwapOrder",
    "build_order",
    "encode_order",
    "order_creation_payload",
    "order_digest",
    "protocol_fee",
    "MAGIC_VALUE",
    "SignatureCheck",
    "SignatureValidator",
    "is_stale_feed_revert",
]
