"""
Reward and Idle-Funds Compounding
---------------------------------
Per-strategy control flow for the two fleet-wide maintenance tasks:

* RewardCompounder: claim → balance re-read → swap, once per priced reward token.
* IdleDepositor: deposit undeployed principal for strategies flagged idle.

Strategies are processed one at a time. A failure in one reward or one
strategy is logged and counted, and the loop moves on.
"""

from dataclasses import dataclass, replace
from decimal import Decimal

from loguru import logger

from harvester.blockchain.contracts import ProtocolGateway, Reward
from harvester.core.exceptions import HarvesterError
from harvester.core.logging import log, strategy_context, with_trace_id
from harvester.core.metrics import record_claim, record_error, record_idle_deposit
from harvester.services.indexer import IndexerClient

from .swap import SwapExecutor
from .valuation import PriceOracle


@dataclass
class CompoundReport:
    """Counts for one compounding run."""
    strategies: int = 0
    rewards: int = 0
    claims: int = 0
    orders_submitted: int = 0
    failures: int = 0


@dataclass
class IdleReport:
    """Counts for one idle-deposit run."""
    strategies: int = 0
    deposits: int = 0
    below_threshold: int = 0
    failures: int = 0


class RewardCompounder:
    """Claims protocol rewards and sells them for the base asset."""

    def __init__(
        self,
        indexer: IndexerClient,
        gateway: ProtocolGateway,
        oracle: PriceOracle,
        swapper: SwapExecutor,
    ):
        self.indexer = indexer
        self.gateway = gateway
        self.oracle = oracle
        self.swapper = swapper

    @with_trace_id
    def run(self) -> CompoundReport:
        report = CompoundReport()

        for record in self.indexer.iter_strategies():
            report.strategies += 1
            with strategy_context(record.strategy):
                try:
                    self.process_strategy(record.strategy, report)
                except HarvesterError as e:
                    report.failures += 1
                    record_error("compounder", type(e).__name__)
                    log.error("❌ Failed to process strategy: {}", e)

        log.info(
            "✅ Compounding finished: {} strategies, {} rewards, {} claims, {} orders, {} failures",
            report.strategies, report.rewards, report.claims, report.orders_submitted, report.failures,
        )
        return report

    def process_strategy(self, strategy: str, report: CompoundReport) -> None:
        claimed = False
        for reward in self.priced_rewards(strategy):
            report.rewards += 1
            try:
                claimed = self.process_reward(strategy, reward, report, claimed)
            except HarvesterError as e:
                report.failures += 1
                record_error("compounder", type(e).__name__)
                log.error("❌ Failed to process {} reward: {}", self.oracle.symbol_for(reward.reward_token), e)

    def priced_rewards(self, strategy: str) -> list[Reward]:
        """Positive, priced rewards merged per token across markets."""
        merged: dict[str, Reward] = {}
        for reward in self.gateway.user_rewards(strategy):
            if reward.supply_rewards_amount <= 0:
                continue
            if not self.oracle.has_price_feed(reward.reward_token):
                logger.debug("Skipping reward token {} without price feed", reward.reward_token)
                continue

            key = reward.reward_token.lower()
            if key in merged:
                total = merged[key].supply_rewards_amount + reward.supply_rewards_amount
                merged[key] = replace(merged[key], supply_rewards_amount=total)
            else:
                merged[key] = reward
        return list(merged.values())

    def process_reward(self, strategy: str, reward: Reward, report: CompoundReport, claimed: bool) -> bool:
        """Claim (at most once per strategy) and swap one reward token.

        Returns whether the strategy's rewards have been claimed.
        """
        token = reward.reward_token
        valuation = self.oracle.value_usd(token, reward.supply_rewards_amount)
        log.info(
            "💰 Supply rewards: {} {} (≈ ${} USD)",
            reward.supply_rewards_amount, valuation.symbol, valuation.usd_value,
        )

        if claimed:
            log.info("📝 Rewards already claimed this run")
        elif self.oracle.meets_threshold(valuation):
            self.gateway.claim_rewards(strategy)
            claimed = True
            report.claims += 1
            record_claim(valuation.symbol, float(valuation.usd_value))
            log.info("📝 Rewards claimed")
        else:
            log.info(
                "⏳ Rewards value ${} below threshold ${}, skipping claim",
                valuation.usd_value, self.oracle.min_usd_value,
            )

        balance = self.gateway.balance_of(token, strategy)
        if balance == 0:
            log.info("ℹ️ No {} balance to swap", valuation.symbol)
            return claimed

        held = self.oracle.value_usd(token, balance)
        if not self.oracle.meets_threshold(held):
            log.info(
                "⏳ Balance {} {} (≈ ${}) below threshold, skipping swap",
                balance, held.symbol, held.usd_value,
            )
            return claimed

        outcome = self.swapper.execute(strategy, token, balance)
        if outcome.submitted:
            report.orders_submitted += 1
        else:
            report.failures += 1
            log.warning("⚠️ Swap not submitted: {}", outcome.reason)
        return claimed


class IdleDepositor:
    """Calls depositIdleTokens on strategies holding undeployed principal."""

    def __init__(self, indexer: IndexerClient, gateway: ProtocolGateway, min_balance: Decimal):
        self.indexer = indexer
        self.gateway = gateway
        self.min_balance = min_balance

    @with_trace_id
    def run(self) -> IdleReport:
        report = IdleReport()

        for address in self.indexer.iter_idle_strategies():
            report.strategies += 1
            with strategy_context(address):
                try:
                    self.process_strategy(address, report)
                except HarvesterError as e:
                    report.failures += 1
                    record_error("idle", type(e).__name__)
                    log.error("❌ Failed to deposit idle tokens: {}", e)

        log.info(
            "✅ Idle deposits finished: {} strategies, {} deposits, {} below threshold, {} failures",
            report.strategies, report.deposits, report.below_threshold, report.failures,
        )
        return report

    def process_strategy(self, address: str, report: IdleReport) -> None:
        total = self.indexer.total_balance(address)
        if total < self.min_balance:
            report.below_threshold += 1
            log.info("⏳ Idle balance {} below threshold {}, skipping", total, self.min_balance)
            return

        self.gateway.deposit_idle_tokens(address)
        report.deposits += 1
        record_idle_deposit()
        log.info("✅ Deposited idle balance of {}", total)
