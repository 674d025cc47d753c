"""
AppData Document
----------------
Order metadata carrying the pre-settlement hook that pays the protocol fee.
The keccak-256 of the serialized document is the order's appData field, so
serialization must be byte-for-byte deterministic.
"""

import json
from dataclasses import dataclass
from typing import Any

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

TRANSFER_FROM_SELECTOR = function_signature_to_4byte_selector("transferFrom(address,address,uint256)")


@dataclass(frozen=True)
class AppData:
    """Serialized appData and its digest."""
    document: dict[str, Any]
    full_app_data: str
    digest: bytes


def transfer_from_calldata(owner: str, recipient: str, amount: int) -> str:
    """Calldata for IERC20.transferFrom(owner, recipient, amount)."""
    args = encode(
        ["address", "address", "uint256"],
        [to_checksum_address(owner), to_checksum_address(recipient), amount],
    )
    return "0x" + (TRANSFER_FROM_SELECTOR + args).hex()


def serialize(document: dict[str, Any]) -> str:
    """Sorted keys, no whitespace."""
    return json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def build_fee_app_data(
    app_code: str,
    sell_token: str,
    owner: str,
    fee_recipient: str,
    fee_amount: int,
    hook_gas_limit: int,
    hooks_version: str,
    app_data_version: str,
) -> AppData:
    """Build appData whose pre-hook transfers fee_amount of the sell token to the fee recipient."""
    document = {
        "appCode": app_code,
        "metadata": {
            "hooks": {
                "pre": [
                    {
                        "callData": transfer_from_calldata(owner, fee_recipient, fee_amount),
                        "gasLimit": str(hook_gas_limit),
                        "target": sell_token.lower(),
                    }
                ],
                "version": hooks_version,
            }
        },
        "version": app_data_version,
    }
    full = serialize(document)
    return AppData(document=document, full_app_data=full, digest=keccak(text=full))
