"""
Order-Book Venue Client
-----------------------
Quote and order submission against the CoW Protocol order book API.
"""

from typing import Any, Optional

import pydantic
import requests
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from harvester.core.exceptions import NetworkError, OrderBookError

from .http import JsonApiClient


class Quote(BaseModel):
    """The `quote` object of a /api/v1/quote response."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sell_token: Optional[str] = Field(default=None, alias="sellToken")
    buy_token: Optional[str] = Field(default=None, alias="buyToken")
    receiver: Optional[str] = None
    sell_amount: int = Field(alias="sellAmount")
    buy_amount: int = Field(alias="buyAmount")
    fee_amount: int = Field(default=0, alias="feeAmount")
    valid_to: Optional[int] = Field(default=None, alias="validTo")
    kind: str = "sell"


class OrderBookClient(JsonApiClient):
    """Client for /api/v1/quote and /api/v1/orders."""

    def _post(self, path: str, payload: dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"POST {url} failed: {e}")

        if response.status_code not in (200, 201):
            try:
                body = response.json()
            except ValueError:
                body = response.text
            raise OrderBookError(
                f"Order book rejected {path}", status_code=response.status_code, body=body
            )

        try:
            return response.json()
        except ValueError as e:
            raise OrderBookError(
                f"Order book returned invalid JSON for {path}: {e}",
                status_code=response.status_code, body=response.text,
            )

    def request_quote(self, strategy: str, sell_token: str, buy_token: str, sell_amount: int) -> Quote:
        """Request a SELL quote for an EIP-1271 order owned by the strategy."""
        payload = {
            "sellToken": sell_token,
            "buyToken": buy_token,
            "from": strategy,
            "receiver": strategy,
            "kind": "sell",
            "sellAmountBeforeFee": str(sell_amount),
            "signingScheme": "eip1271",
            "priceQuality": "optimal",
            "onchainOrder": True,
            "sellTokenBalance": "erc20",
            "buyTokenBalance": "erc20",
        }
        response = self._post("/api/v1/quote", payload)
        if not isinstance(response, dict):
            raise OrderBookError("Unexpected quote response", body=response)
        try:
            quote = Quote.model_validate(response.get("quote", {}))
        except pydantic.ValidationError as e:
            raise OrderBookError(f"Malformed quote: {e}", body=response)
        logger.info("🐮 Quote received: sell {} → buy {}", quote.sell_amount, quote.buy_amount)
        return quote

    def submit_order(self, order_creation: dict[str, Any]) -> str:
        """Submit an order and return its UID."""
        uid = self._post("/api/v1/orders", order_creation)
        if not isinstance(uid, str):
            raise OrderBookError("Unexpected order submission response", body=uid)
        return uid
