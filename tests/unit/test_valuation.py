"""Price oracle and USD threshold tests."""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from harvester.blockchain.contracts import PriceReading
from harvester.core.exceptions import UnsupportedTokenError
from harvester.engine.valuation import PriceOracle, to_usd

from conftest import USDC, WELL, WELL_FEED

NOW = 1_700_000_000


@pytest.fixture
def gateway():
    gateway = Mock()
    # $0.02 with 8 feed decimals
    gateway.latest_price.return_value = PriceReading(answer=2_000_000, updated_at=NOW - 60, decimals=8)
    return gateway


@pytest.fixture
def oracle(gateway, config_manager):
    return PriceOracle(
        gateway,
        config_manager,
        min_usd_value=Decimal("10"),
        max_price_age_seconds=3600,
        clock=lambda: NOW,
    )


class TestToUsd:

    def test_exact_conversion(self):
        price, value = to_usd(500 * 10**18, 2_000_000, 18, 8)
        assert price == Decimal("0.02")
        assert value == Decimal("10")

    def test_negative_answer_uses_absolute_value(self):
        assert to_usd(10**18, -100_000_000, 18, 8) == to_usd(10**18, 100_000_000, 18, 8)

    def test_large_amounts_keep_precision(self):
        _, value = to_usd(123_456_789_123_456_789_123_456_789, 1, 18, 8)
        assert value == Decimal("123456789123456789123456789").scaleb(-26)


class TestPriceOracle:

    def test_value_at_threshold_is_claimable(self, oracle, gateway):
        valuation = oracle.value_usd(WELL, 500 * 10**18)

        assert valuation.usd_value == Decimal("10")
        assert valuation.symbol == "WELL"
        assert not valuation.stale
        assert oracle.meets_threshold(valuation)
        gateway.latest_price.assert_called_once()
        assert gateway.latest_price.call_args[0][0].lower() == WELL_FEED

    def test_one_cent_below_threshold(self, oracle):
        valuation = oracle.value_usd(WELL, 4995 * 10**17)

        assert valuation.usd_value == Decimal("9.99")
        assert not oracle.meets_threshold(valuation)

    def test_stale_price_is_flagged_but_used(self, oracle, gateway):
        gateway.latest_price.return_value = PriceReading(answer=2_000_000, updated_at=NOW - 7200, decimals=8)

        valuation = oracle.value_usd(WELL, 500 * 10**18)

        assert valuation.stale
        assert valuation.usd_value == Decimal("10")

    def test_token_without_feed_is_unsupported(self, oracle, gateway):
        assert not oracle.has_price_feed(USDC)
        with pytest.raises(UnsupportedTokenError):
            oracle.value_usd(USDC, 10**6)
        gateway.latest_price.assert_not_called()

    def test_unknown_token_is_unsupported(self, oracle):
        unknown = "0x" + "12" * 20
        assert not oracle.has_price_feed(unknown)
        assert oracle.symbol_for(unknown) == "0x1212...1212"
        with pytest.raises(UnsupportedTokenError):
            oracle.value_usd(unknown, 1)
