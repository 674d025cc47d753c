"""
Strategy Indexer Client
-----------------------
Paginated access to the strategy list, the idle-strategy list and per-strategy
token balances.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Iterator, Optional

import pydantic
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from harvester.core.exceptions import ValidationError

from .http import JsonApiClient


class StrategyRecord(BaseModel):
    """A deployed strategy as reported by the indexer."""
    model_config = ConfigDict(populate_by_name=True)

    strategy: str
    user: Optional[str] = None
    implementation: Optional[str] = None
    log_index: Optional[int] = Field(default=None, alias="logIndex")
    block_number: Optional[str] = Field(default=None, alias="blockNumber")
    tx_hash: Optional[str] = Field(default=None, alias="txHash")


class TokenBalance(BaseModel):
    """One entry of the balance API."""
    symbol: Optional[str] = None
    token: Optional[str] = None
    balance: Decimal


class IndexerClient(JsonApiClient):
    """Client for the strategy indexer API."""

    def _paginate(self, path: str) -> Iterator[Any]:
        cursor: Optional[str] = None
        while True:
            params = {"cursor": cursor} if cursor else None
            page = self._get(path, params=params)
            if not isinstance(page, dict):
                raise ValidationError(f"Malformed page from {path}", {"page": page})
            entries = page.get("strategies") or []
            if not isinstance(entries, list):
                raise ValidationError(f"Malformed strategy list from {path}", {"strategies": entries})
            logger.debug("Fetched {} entries from {}", len(entries), path)
            yield from entries

            cursor = page.get("nextCursor")
            if not cursor:
                return

    def iter_strategies(self) -> Iterator[StrategyRecord]:
        """Yield every strategy, following nextCursor until it is null."""
        for entry in self._paginate("/strategies"):
            try:
                yield StrategyRecord.model_validate(entry)
            except pydantic.ValidationError as e:
                raise ValidationError(f"Malformed strategy entry: {e}", {"entry": entry})

    def iter_idle_strategies(self) -> Iterator[str]:
        """Yield the address of every strategy holding undeployed principal."""
        for entry in self._paginate("/strategies/idle"):
            if isinstance(entry, str):
                yield entry
            elif isinstance(entry, dict) and isinstance(entry.get("strategy"), str):
                yield entry["strategy"]
            else:
                raise ValidationError("Malformed idle strategy entry", {"entry": entry})

    def balances(self, strategy: str) -> list[TokenBalance]:
        """Token balances held by a strategy, as decimals in whole units."""
        payload = self._get(f"/strategies/{strategy}/balances")
        entries = payload.get("balances", []) if isinstance(payload, dict) else payload

        try:
            return [TokenBalance(**entry) for entry in entries]
        except (TypeError, InvalidOperation, ValueError) as e:
            raise ValidationError(f"Malformed balance entry for {strategy}: {e}")

    def total_balance(self, strategy: str) -> Decimal:
        """Exact sum of all listed balances."""
        return sum((entry.balance for entry in self.balances(strategy)), Decimal(0))
