"""
Order Codec Tests
-----------------
EIP-712 digest, tuple encoding and fee arithmetic for swap orders.
"""

import pytest
from eth_abi import decode
from eth_account.messages import encode_typed_data
from eth_utils import keccak, to_checksum_address

from harvester.core.exceptions import OrderConstructionError
from harvester.orders.order import (
    KIND_SELL,
    ORDER_TUPLE_TYPE,
    OrderDomain,
    SwapOrder,
    apply_bps_discount,
    build_order,
    encode_order,
    order_creation_payload,
    order_digest,
    protocol_fee,
)

from conftest import SETTLEMENT, STRATEGY_A, USDC, WELL

APP_DATA = keccak(text="{}")


def make_order(**overrides) -> SwapOrder:
    fields = dict(
        sell_token=WELL,
        buy_token=USDC,
        receiver=STRATEGY_A,
        sell_amount=990 * 10**18,
        buy_amount=19_500_000,
        valid_to=1_700_001_800,
        app_data=APP_DATA,
    )
    fields.update(overrides)
    return SwapOrder(**fields)


class TestOrderDigest:
    """Digest must match a standard EIP-712 encoder."""

    def test_matches_eth_account_typed_data(self):
        order = make_order()
        domain = OrderDomain(chain_id=8453, verifying_contract=SETTLEMENT)

        typed = {
            "types": {
                "EIP712Domain": [
                    {"name": "name", "type": "string"},
                    {"name": "version", "type": "string"},
                    {"name": "chainId", "type": "uint256"},
                    {"name": "verifyingContract", "type": "address"},
                ],
                "Order": [
                    {"name": "sellToken", "type": "address"},
                    {"name": "buyToken", "type": "address"},
                    {"name": "receiver", "type": "address"},
                    {"name": "sellAmount", "type": "uint256"},
                    {"name": "buyAmount", "type": "uint256"},
                    {"name": "validTo", "type": "uint32"},
                    {"name": "appData", "type": "bytes32"},
                    {"name": "feeAmount", "type": "uint256"},
                    {"name": "kind", "type": "string"},
                    {"name": "partiallyFillable", "type": "bool"},
                    {"name": "sellTokenBalance", "type": "string"},
                    {"name": "buyTokenBalance", "type": "string"},
                ],
            },
            "primaryType": "Order",
            "domain": {
                "name": "Gnosis Protocol",
                "version": "v2",
                "chainId": 8453,
                "verifyingContract": to_checksum_address(SETTLEMENT),
            },
            "message": {
                "sellToken": order.sell_token,
                "buyToken": order.buy_token,
                "receiver": order.receiver,
                "sellAmount": order.sell_amount,
                "buyAmount": order.buy_amount,
                "validTo": order.valid_to,
                "appData": APP_DATA,
                "feeAmount": 0,
                "kind": "sell",
                "partiallyFillable": False,
                "sellTokenBalance": "erc20",
                "buyTokenBalance": "erc20",
            },
        }
        signable = encode_typed_data(full_message=typed)
        expected = keccak(b"\x19" + signable.version + signable.header + signable.body)

        assert order_digest(order, domain) == expected

    def test_digest_depends_on_chain(self):
        order = make_order()
        base = OrderDomain(chain_id=8453, verifying_contract=SETTLEMENT)
        other = OrderDomain(chain_id=1, verifying_contract=SETTLEMENT)
        assert order_digest(order, base) != order_digest(order, other)


class TestOrderEncoding:
    """The signature blob is the ABI-encoded order tuple."""

    def test_encoded_length_is_twelve_words(self):
        assert len(encode_order(make_order())) == 12 * 32

    def test_encoding_decodes_back(self):
        order = make_order()
        (decoded,) = decode([ORDER_TUPLE_TYPE], encode_order(order))

        assert decoded[0].lower() == WELL
        assert decoded[1].lower() == USDC
        assert decoded[2].lower() == STRATEGY_A
        assert decoded[3] == order.sell_amount
        assert decoded[4] == order.buy_amount
        assert decoded[5] == order.valid_to
        assert decoded[6] == APP_DATA
        assert decoded[7] == 0
        assert decoded[8] == KIND_SELL
        assert decoded[9] is False


class TestOrderConstruction:
    """Fee arithmetic and guard rails."""

    def test_protocol_fee_rounds_down(self):
        assert protocol_fee(999, 100) == 9
        assert protocol_fee(10**18, 0) == 0

    def test_protocol_fee_rejects_out_of_range(self):
        with pytest.raises(OrderConstructionError):
            protocol_fee(1000, 10001)

    def test_apply_bps_discount(self):
        assert apply_bps_discount(10000, 30) == 9970
        assert apply_bps_discount(495, 30) == 493

    def test_build_order_sells_net_amount(self):
        order = build_order(WELL, USDC, STRATEGY_A, 1000, 10, 400, 1_700_000_000, APP_DATA)
        assert order.sell_amount == 990
        assert order.buy_amount == 400
        assert order.fee_amount == 0

    def test_fee_equal_to_sell_amount_raises(self):
        with pytest.raises(OrderConstructionError):
            build_order(WELL, USDC, STRATEGY_A, 1000, 1000, 400, 1_700_000_000, APP_DATA)

    def test_invalid_app_data_rejected(self):
        with pytest.raises(ValueError):
            make_order(app_data=b"\x00" * 31)

    def test_valid_to_must_fit_uint32(self):
        with pytest.raises(ValueError):
            make_order(valid_to=2**32)

    def test_creation_payload(self):
        order = make_order()
        payload = order_creation_payload(order, '{"appCode":"Mamo"}', b"\x01\x02", STRATEGY_A)

        assert payload["signingScheme"] == "eip1271"
        assert payload["signature"] == "0x0102"
        assert payload["sellAmount"] == str(order.sell_amount)
        assert payload["appData"] == '{"appCode":"Mamo"}'
        assert payload["appDataHash"] == "0x" + APP_DATA.hex()
        assert payload["from"].lower() == STRATEGY_A

    @pytest.mark.parametrize("overrides", [
        {"sell_token": "not-an-address"},
        {"valid_to": 2**32},
        {"app_data": b"\x00" * 31},
    ])
    def test_build_order_rejects_invalid_fields(self, overrides):
        fields = dict(
            sell_token=WELL,
            buy_token=USDC,
            receiver=STRATEGY_A,
            gross_sell_amount=1000,
            fee_amount=10,
            min_buy_amount=400,
            valid_to=1_700_000_000,
            app_data=APP_DATA,
        )
        fields.update(overrides)

        with pytest.raises(OrderConstructionError):
            build_order(**fields)
