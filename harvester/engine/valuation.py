"""
Price & Reward Valuation
------------------------
Converts raw token amounts into USD using the token's configured price feed,
and gates claim/swap actions against the configured minimum USD value.
"""

import time
from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import Callable

from loguru import logger

from harvester.blockchain.contracts import ProtocolGateway
from harvester.core.config import ConfigManager, TokenConfig
from harvester.core.exceptions import UnsupportedTokenError


@dataclass(frozen=True)
class Valuation:
    """USD estimate of a token amount."""
    token: str
    symbol: str
    amount: int
    price_usd: Decimal
    usd_value: Decimal
    stale: bool = False


def to_usd(amount: int, answer: int, token_decimals: int, feed_decimals: int) -> tuple[Decimal, Decimal]:
    """Return (price, value) for an amount given a raw oracle answer.

    Negative oracle answers are treated by absolute value.
    """
    price = abs(answer)
    with localcontext() as ctx:
        ctx.prec = 80
        price_usd = Decimal(price).scaleb(-feed_decimals)
        usd_value = Decimal(amount * price).scaleb(-(token_decimals + feed_decimals))
    return price_usd, usd_value


class PriceOracle:
    """Values token amounts against configured price feeds."""

    def __init__(
        self,
        gateway: ProtocolGateway,
        config_manager: ConfigManager,
        min_usd_value: Decimal,
        max_price_age_seconds: int,
        clock: Callable[[], float] = time.time,
    ):
        self.gateway = gateway
        self.config_manager = config_manager
        self.min_usd_value = min_usd_value
        self.max_price_age_seconds = max_price_age_seconds
        self._clock = clock

    def _priced_token(self, token: str) -> TokenConfig:
        config = self.config_manager.find_token(token)
        if config is None or not config.price_feed:
            raise UnsupportedTokenError(token)
        return config

    def has_price_feed(self, token: str) -> bool:
        config = self.config_manager.find_token(token)
        return bool(config and config.price_feed)

    def symbol_for(self, token: str) -> str:
        config = self.config_manager.find_token(token)
        if config:
            return config.symbol
        return f"{token[:6]}...{token[-4:]}"

    def value_usd(self, token: str, amount: int) -> Valuation:
        """Value a raw amount of token.

        Raises:
            UnsupportedTokenError: If the token has no configured feed.
        """
        config = self._priced_token(token)
        reading = self.gateway.latest_price(config.price_feed)

        age = self._clock() - reading.updated_at
        stale = age > self.max_price_age_seconds
        if stale:
            logger.warning(
                "⚠️ Price feed for {} is stale ({}s old), using last known price",
                config.symbol, int(age),
            )

        price_usd, usd_value = to_usd(amount, reading.answer, config.decimals, reading.decimals)
        return Valuation(
            token=config.address,
            symbol=config.symbol,
            amount=amount,
            price_usd=price_usd,
            usd_value=usd_value,
            stale=stale,
        )

    def meets_threshold(self, valuation: Valuation) -> bool:
        """Inclusive comparison against the configured minimum."""
        return valuation.usd_value >= self.min_usd_value
