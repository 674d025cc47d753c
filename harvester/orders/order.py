"""
GPv2 Order Model and Codec
--------------------------
Canonical swap order record, its EIP-712 digest under the settlement
contract's domain, and the ABI tuple encoding the strategy contract expects
as the EIP-1271 "signature" blob.
"""

from dataclasses import dataclass
from typing import Any

from eth_abi import encode
from eth_utils import keccak, to_checksum_address
from pydantic import BaseModel, ValidationError, field_validator

from harvester.core.exceptions import OrderConstructionError

ORDER_TYPE = (
    "Order("
    "address sellToken,"
    "address buyToken,"
    "address receiver,"
    "uint256 sellAmount,"
    "uint256 buyAmount,"
    "uint32 validTo,"
    "bytes32 appData,"
    "uint256 feeAmount,"
    "string kind,"
    "bool partiallyFillable,"
    "string sellTokenBalance,"
    "string buyTokenBalance"
    ")"
)
DOMAIN_TYPE = "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"

ORDER_TYPE_HASH = keccak(text=ORDER_TYPE)
DOMAIN_TYPE_HASH = keccak(text=DOMAIN_TYPE)

KIND_SELL = keccak(text="sell")
BALANCE_ERC20 = keccak(text="erc20")

# Field order of the GPv2Order.Data tuple
ORDER_TUPLE_TYPE = "(address,address,address,uint256,uint256,uint32,bytes32,uint256,bytes32,bool,bytes32,bytes32)"

MAX_UINT32 = 2**32 - 1
BPS_DENOMINATOR = 10000


@dataclass(frozen=True)
class OrderDomain:
    """EIP-712 domain of the settlement contract."""
    chain_id: int
    verifying_contract: str
    name: str = "Gnosis Protocol"
    version: str = "v2"

    def separator(self) -> bytes:
        return keccak(encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [
                DOMAIN_TYPE_HASH,
                keccak(text=self.name),
                keccak(text=self.version),
                self.chain_id,
                to_checksum_address(self.verifying_contract),
            ],
        ))


class SwapOrder(BaseModel):
    """A SELL order with ERC20 balances on both sides.

    fee_amount is the settlement network fee, which the venue requires to be
    zero; the protocol fee is paid through the appData pre-hook instead.
    """
    sell_token: str
    buy_token: str
    receiver: str
    sell_amount: int
    buy_amount: int
    valid_to: int
    app_data: bytes
    fee_amount: int = 0
    partially_fillable: bool = False

    @field_validator('sell_token', 'buy_token', 'receiver')
    @classmethod
    def validate_address(cls, v: str) -> str:
        return to_checksum_address(v)

    @field_validator('sell_amount')
    @classmethod
    def validate_sell_amount(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("sell_amount must be positive")
        return v

    @field_validator('buy_amount', 'fee_amount')
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("amount must not be negative")
        return v

    @field_validator('valid_to')
    @classmethod
    def validate_valid_to(cls, v: int) -> int:
        if v <= 0 or v > MAX_UINT32:
            raise ValueError("valid_to must fit in uint32")
        return v

    @field_validator('app_data')
    @classmethod
    def validate_app_data(cls, v: bytes) -> bytes:
        if len(v) != 32:
            raise ValueError("app_data must be 32 bytes")
        return v

    def as_tuple(self) -> tuple:
        return (
            self.sell_token,
            self.buy_token,
            self.receiver,
            self.sell_amount,
            self.buy_amount,
            self.valid_to,
            self.app_data,
            self.fee_amount,
            KIND_SELL,
            self.partially_fillable,
            BALANCE_ERC20,
            BALANCE_ERC20,
        )


def struct_hash(order: SwapOrder) -> bytes:
    return keccak(encode(
        ["bytes32", "address", "address", "address", "uint256", "uint256", "uint32",
         "bytes32", "uint256", "bytes32", "bool", "bytes32", "bytes32"],
        [ORDER_TYPE_HASH, *order.as_tuple()],
    ))


def order_digest(order: SwapOrder, domain: OrderDomain) -> bytes:
    """keccak256(0x1901 || domainSeparator || structHash)"""
    return keccak(b"\x19\x01" + domain.separator() + struct_hash(order))


def encode_order(order: SwapOrder) -> bytes:
    """ABI-encode the twelve order fields as a single static tuple."""
    return encode([ORDER_TUPLE_TYPE], [order.as_tuple()])


def protocol_fee(gross_sell_amount: int, fee_bps: int) -> int:
    """floor(gross * bps / 10000)"""
    if fee_bps < 0 or fee_bps > BPS_DENOMINATOR:
        raise OrderConstructionError("Compound fee out of range", {"fee_bps": fee_bps})
    return gross_sell_amount * fee_bps // BPS_DENOMINATOR


def apply_bps_discount(amount: int, bps: int) -> int:
    """amount * (10000 - bps) / 10000, rounded down."""
    return amount * (BPS_DENOMINATOR - bps) // BPS_DENOMINATOR


def build_order(
    sell_token: str,
    buy_token: str,
    receiver: str,
    gross_sell_amount: int,
    fee_amount: int,
    min_buy_amount: int,
    valid_to: int,
    app_data: bytes,
) -> SwapOrder:
    """Build the order that sells the gross amount minus the protocol fee.

    Raises:
        OrderConstructionError: If the fee would consume the whole sell amount
            or any field fails validation.
    """
    if fee_amount >= gross_sell_amount:
        raise OrderConstructionError(
            "Fee amount exceeds sell amount",
            {"fee_amount": fee_amount, "sell_amount": gross_sell_amount},
        )
    if fee_amount < 0:
        raise OrderConstructionError("Fee amount is negative", {"fee_amount": fee_amount})

    try:
        return SwapOrder(
            sell_token=sell_token,
            buy_token=buy_token,
            receiver=receiver,
            sell_amount=gross_sell_amount - fee_amount,
            buy_amount=min_buy_amount,
            valid_to=valid_to,
            app_data=app_data,
        )
    except ValidationError as e:
        raise OrderConstructionError(f"Invalid order fields: {e}", {"sell_token": sell_token, "buy_token": buy_token})


def order_creation_payload(order: SwapOrder, full_app_data: str, signature: bytes, owner: str) -> dict[str, Any]:
    """Body for POST /api/v1/orders with an EIP-1271 signature."""
    return {
        "sellToken": order.sell_token,
        "buyToken": order.buy_token,
        "receiver": order.receiver,
        "sellAmount": str(order.sell_amount),
        "buyAmount": str(order.buy_amount),
        "validTo": order.valid_to,
        "appData": full_app_data,
        "appDataHash": "0x" + order.app_data.hex(),
        "feeAmount": str(order.fee_amount),
        "kind": "sell",
        "partiallyFillable": order.partially_fillable,
        "sellTokenBalance": "erc20",
        "buyTokenBalance": "erc20",
        "signingScheme": "eip1271",
        "signature": "0x" + signature.hex(),
        "from": to_checksum_address(owner),
    }
