"""Yield feed client: current market and vault APY."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from loguru import logger

from harvester.core.exceptions import DataUnavailableError

from .http import JsonApiClient


@dataclass(frozen=True)
class ApySnapshot:
    """Market and vault APY in percent, read once per optimizer cycle."""
    market_apy: Decimal
    vault_apy: Decimal

    @property
    def best_apy(self) -> Decimal:
        return max(self.market_apy, self.vault_apy)


def _as_decimal(value: Any, label: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise DataUnavailableError(f"APY value missing for {label}")
    try:
        return Decimal(str(value))
    except ArithmeticError:
        raise DataUnavailableError(f"APY value for {label} is not numeric", {"value": value})


class YieldFeedClient(JsonApiClient):
    """Reads one named market and one named vault from the yield feed."""

    def __init__(self, base_url: str, config: Any, market_key: str, vault_key: str, session: Any = None):
        super().__init__(base_url, config, session=session)
        self.market_key = market_key
        self.vault_key = vault_key

    def snapshot(self) -> ApySnapshot:
        """Fetch the current APY pair.

        Raises:
            DataUnavailableError: If the market or vault entry is absent.
            NetworkError: If the feed is unreachable.
        """
        data = self._get("/")
        market = (data.get("markets") or {}).get(self.market_key)
        vault = (data.get("vaults") or {}).get(self.vault_key)

        if not market or not vault:
            raise DataUnavailableError(
                "Could not find market or vault data",
                {"market": self.market_key, "vault": self.vault_key},
            )

        snapshot = ApySnapshot(
            market_apy=_as_decimal(market.get("totalSupplyApr"), self.market_key),
            vault_apy=_as_decimal(vault.get("totalApy"), self.vault_key),
        )
        logger.info(
            "📈 {} APY: {}% | {} APY: {}%",
            self.market_key, snapshot.market_apy, self.vault_key, snapshot.vault_apy,
        )
        return snapshot
