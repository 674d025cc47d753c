"""AppData document and fee pre-hook tests."""

import json

from eth_abi import decode
from eth_utils import keccak

from harvester.orders.appdata import TRANSFER_FROM_SELECTOR, build_fee_app_data, transfer_from_calldata

from conftest import FEE_RECIPIENT, STRATEGY_A, WELL


def make_app_data(fee_amount: int = 10**16):
    return build_fee_app_data(
        app_code="Mamo",
        sell_token=WELL,
        owner=STRATEGY_A,
        fee_recipient=FEE_RECIPIENT,
        fee_amount=fee_amount,
        hook_gas_limit=100000,
        hooks_version="0.1.0",
        app_data_version="1.3.0",
    )


class TestTransferFromCalldata:

    def test_selector(self):
        assert TRANSFER_FROM_SELECTOR.hex() == "23b872dd"

    def test_arguments(self):
        calldata = transfer_from_calldata(STRATEGY_A, FEE_RECIPIENT, 42)
        assert calldata.startswith("0x23b872dd")

        owner, recipient, amount = decode(["address", "address", "uint256"], bytes.fromhex(calldata[10:]))
        assert owner.lower() == STRATEGY_A
        assert recipient.lower() == FEE_RECIPIENT
        assert amount == 42


class TestFeeAppData:

    def test_digest_is_hash_of_serialized_document(self):
        app_data = make_app_data()
        assert app_data.digest == keccak(text=app_data.full_app_data)

    def test_deterministic(self):
        assert make_app_data().full_app_data == make_app_data().full_app_data
        assert make_app_data(1).digest != make_app_data(2).digest

    def test_serialization_is_compact_and_sorted(self):
        full = make_app_data().full_app_data
        assert " " not in full
        assert full == json.dumps(json.loads(full), sort_keys=True, separators=(",", ":"))

    def test_pre_hook(self):
        document = make_app_data(fee_amount=7).document
        (hook,) = document["metadata"]["hooks"]["pre"]

        assert document["appCode"] == "Mamo"
        assert document["version"] == "1.3.0"
        assert document["metadata"]["hooks"]["version"] == "0.1.0"
        assert hook["target"] == WELL.lower()
        assert hook["gasLimit"] == "100000"
        assert hook["callData"] == transfer_from_calldata(STRATEGY_A, FEE_RECIPIENT, 7)
