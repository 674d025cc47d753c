"""
Swap Execution Pipeline
-----------------------
Turns a confirmed reward-token balance into a signed, validated SELL order
for the base asset and submits it to the order book.
"""

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from harvester.blockchain.contracts import ProtocolGateway
from harvester.core.config import CompoundingConfig
from harvester.core.exceptions import ContractRevertError, HarvesterError, OrderConstructionError
from harvester.core.metrics import record_error, record_swap_order
from harvester.orders.appdata import build_fee_app_data
from harvester.orders.order import (
    apply_bps_discount,
    build_order,
    order_creation_payload,
    protocol_fee,
)
from harvester.orders.signature import SignatureValidator, is_stale_feed_revert
from harvester.services.orderbook import OrderBookClient, Quote


@dataclass
class SwapOutcome:
    """Result of one swap attempt."""
    submitted: bool
    order_uid: Optional[str] = None
    reason: Optional[str] = None
    sell_amount: int = 0
    min_buy_amount: int = 0
    fee_amount: int = 0
    provisional: bool = False


class SwapExecutor:
    """
    Quote → fee → minimum output → appData → order → EIP-1271 check → submit.

    Features:
    - Minimum output from the on-chain swap checker, with a discounted quote
      fallback when the checker's price feed is stale
    - Protocol fee paid by a transferFrom pre-hook embedded in appData
    - Orders expire a short window after the latest block
    """

    def __init__(
        self,
        gateway: ProtocolGateway,
        orderbook: OrderBookClient,
        validator: SignatureValidator,
        base_asset: str,
        fee_recipient: str,
        config: CompoundingConfig,
    ):
        self.gateway = gateway
        self.orderbook = orderbook
        self.validator = validator
        self.base_asset = base_asset
        self.fee_recipient = fee_recipient
        self.config = config

    def allowed_slippage_bps(self, strategy: str) -> int:
        """Strategy's slippage tolerance, or the configured default if unreadable."""
        default = self.config.default_slippage_bps
        try:
            bps = self.gateway.allowed_slippage_bps(strategy)
        except HarvesterError as e:
            logger.warning("⚠️ Could not read allowedSlippageInBps ({}), using default {} bps", e, default)
            return default

        if bps < 0 or bps >= 10000:
            logger.warning("⚠️ allowedSlippageInBps {} out of range, using default {} bps", bps, default)
            return default
        return bps

    def expected_output(self, quote: Quote, sell_amount: int) -> int:
        """Expected buy amount for sell_amount.

        Falls back to the quote scaled to sell_amount and discounted by the
        safety margin when the checker reverts on a stale feed.

        Raises:
            ContractRevertError: For any other checker revert.
        """
        try:
            return self.gateway.expected_out(sell_amount, quote.sell_token, quote.buy_token)
        except ContractRevertError as e:
            if not is_stale_feed_revert(e):
                raise
            scaled = quote.buy_amount * sell_amount // quote.sell_amount
            fallback = apply_bps_discount(scaled, self.config.stale_quote_safety_margin_bps)
            logger.warning(
                "⚠️ Swap checker feed is stale, using quote with {} bps margin: {}",
                self.config.stale_quote_safety_margin_bps, fallback,
            )
            return fallback

    def execute(self, strategy: str, token: str, balance: int) -> SwapOutcome:
        """Sell the strategy's whole balance of token for the base asset.

        Failures are logged and reported in the outcome, never raised.
        """
        try:
            outcome = self._execute(strategy, token, balance)
        except HarvesterError as e:
            logger.error("❌ Swap for {} aborted: {}", token, e)
            record_error("swap", type(e).__name__)
            outcome = SwapOutcome(submitted=False, reason=str(e))

        record_swap_order(token, outcome.submitted)
        return outcome

    def _execute(self, strategy: str, token: str, balance: int) -> SwapOutcome:
        logger.info("🐮 Requesting quote to sell {} of {}", balance, token)
        quote = self.orderbook.request_quote(strategy, token, self.base_asset, balance)

        if not quote.sell_token or not quote.buy_token or not quote.receiver:
            raise OrderConstructionError("Quote is missing required fields", quote.model_dump())
        if quote.receiver.lower() != strategy.lower():
            raise OrderConstructionError("Quote receiver does not match strategy", {"receiver": quote.receiver})
        if quote.fee_amount >= quote.sell_amount:
            raise OrderConstructionError(
                "Quote fee exceeds sell amount",
                {"fee_amount": quote.fee_amount, "sell_amount": quote.sell_amount},
            )

        gross = quote.sell_amount
        fee_bps = self.gateway.compound_fee_bps(strategy)
        fee = protocol_fee(gross, fee_bps)
        if fee >= gross:
            raise OrderConstructionError("Fee amount exceeds sell amount", {"fee_amount": fee, "sell_amount": gross})
        net = gross - fee
        logger.info("💰 Protocol fee: {} ({} bps of {})", fee, fee_bps, gross)

        expected = self.expected_output(quote, net)
        slippage_bps = self.allowed_slippage_bps(strategy)
        min_out = apply_bps_discount(expected, slippage_bps)
        if min_out <= 0:
            raise OrderConstructionError("Minimum output is zero", {"expected": expected})
        logger.info("📊 Expected output {}, minimum after {} bps slippage {}", expected, slippage_bps, min_out)

        app_data = build_fee_app_data(
            app_code=self.config.app_code,
            sell_token=quote.sell_token,
            owner=strategy,
            fee_recipient=self.fee_recipient,
            fee_amount=fee,
            hook_gas_limit=self.config.hook_gas_limit,
            hooks_version=self.config.hooks_version,
            app_data_version=self.config.app_data_version,
        )

        valid_to = self.gateway.block_timestamp() + self.config.order_validity_seconds
        order = build_order(
            sell_token=quote.sell_token,
            buy_token=quote.buy_token,
            receiver=strategy,
            gross_sell_amount=gross,
            fee_amount=fee,
            min_buy_amount=min_out,
            valid_to=valid_to,
            app_data=app_data.digest,
        )

        check = self.validator.validate(strategy, order)
        if not check.accepted:
            return SwapOutcome(
                submitted=False,
                reason=f"signature rejected: {check.reason}",
                sell_amount=order.sell_amount,
                min_buy_amount=order.buy_amount,
                fee_amount=fee,
            )

        payload = order_creation_payload(order, app_data.full_app_data, check.encoded_order, strategy)
        uid = self.orderbook.submit_order(payload)
        logger.success("🎉 Order submitted: {}", uid)

        return SwapOutcome(
            submitted=True,
            order_uid=uid,
            sell_amount=order.sell_amount,
            min_buy_amount=order.buy_amount,
            fee_amount=fee,
            provisional=check.provisional,
        )
