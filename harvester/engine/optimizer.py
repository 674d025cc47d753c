"""
Position Optimization Engine
----------------------------
Moves each strategy's capital to whichever of the two yield sources currently
pays more, with a minimum-improvement bar so noisy APY readings do not cause
repeated rebalancing.

Per strategy:

* No stored position: seed from the on-chain split, rebalance immediately if
  the best split differs and there is capital to move, then store the result.
* Stored position: rebalance only when the best APY beats the stored APY by at
  least `min_improvement_pct` points, the best split differs, and principal is
  above dust. The stored APY is refreshed on every run.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from harvester.blockchain.contracts import ProtocolGateway
from harvester.core.config import OptimizerConfig
from harvester.core.exceptions import DataUnavailableError, HarvesterError, ValidationError
from harvester.core.logging import log, strategy_context, with_trace_id
from harvester.core.metrics import record_apy_snapshot, record_error, record_rebalance
from harvester.services.indexer import IndexerClient
from harvester.services.yield_feed import ApySnapshot, YieldFeedClient
from harvester.storage.positions import Position, PositionStore, utcnow


class OptimizationAction(str, Enum):
    SEEDED = "seeded"
    SEEDED_AND_REBALANCED = "seeded_and_rebalanced"
    REBALANCED = "rebalanced"
    APY_UPDATED = "apy_updated"
    FAILED = "failed"


@dataclass(frozen=True)
class OptimizationDecision:
    """What the optimizer did for one strategy and why."""
    strategy: str
    action: OptimizationAction
    split: Optional[tuple[int, int]] = None
    best_split: Optional[tuple[int, int]] = None
    apy: Optional[Decimal] = None
    improvement: Optional[Decimal] = None
    reason: str = ""


def best_split(market_apy: Decimal, vault_apy: Decimal, total: int) -> tuple[int, int]:
    """(market share, vault share): the strictly better source takes everything, a tie splits evenly."""
    if market_apy > vault_apy:
        return (total, 0)
    if vault_apy > market_apy:
        return (0, total)
    half = total // 2
    return (half, total - half)


class PositionOptimizer:
    """Decides and applies capital splits for every strategy."""

    def __init__(
        self,
        indexer: IndexerClient,
        gateway: ProtocolGateway,
        yield_feed: YieldFeedClient,
        store: PositionStore,
        config: OptimizerConfig,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.indexer = indexer
        self.gateway = gateway
        self.yield_feed = yield_feed
        self.store = store
        self.config = config
        self._clock = clock

    @with_trace_id
    def run(self) -> list[OptimizationDecision]:
        try:
            snapshot = self.yield_feed.snapshot()
        except DataUnavailableError as e:
            record_error("optimizer", type(e).__name__)
            log.warning("⚠️ Skipping optimization cycle: {}", e)
            return []

        record_apy_snapshot(float(snapshot.market_apy), float(snapshot.vault_apy))

        decisions: list[OptimizationDecision] = []
        for record in self.indexer.iter_strategies():
            with strategy_context(record.strategy):
                try:
                    decision = self.optimize(record.strategy, snapshot)
                except HarvesterError as e:
                    record_error("optimizer", type(e).__name__)
                    log.error("❌ Optimization failed: {}", e)
                    decision = OptimizationDecision(record.strategy, OptimizationAction.FAILED, reason=str(e))
            record_rebalance(decision.action.value)
            decisions.append(decision)

        rebalanced = sum(
            1 for d in decisions
            if d.action in (OptimizationAction.REBALANCED, OptimizationAction.SEEDED_AND_REBALANCED)
        )
        failed = sum(1 for d in decisions if d.action is OptimizationAction.FAILED)
        log.info(
            "✅ Optimization finished: {} strategies, {} rebalanced, {} failed",
            len(decisions), rebalanced, failed,
        )
        return decisions

    def optimize(self, strategy: str, snapshot: ApySnapshot) -> OptimizationDecision:
        with self.store.lock(strategy):
            position = self.store.get(strategy)
            if position is None:
                return self._seed(strategy, snapshot)
            return self._evaluate(strategy, position, snapshot)

    def _principal(self, strategy: str) -> Decimal:
        return self.indexer.total_balance(strategy)

    def _target(self, snapshot: ApySnapshot) -> tuple[int, int]:
        return best_split(snapshot.market_apy, snapshot.vault_apy, self.config.split_total)

    def _rebalance(self, strategy: str, split: tuple[int, int]) -> None:
        logger.info("🔄 Rebalancing to {}/{}", split[0], split[1])
        self.gateway.update_position(strategy, split[0], split[1])

    def _seed(self, strategy: str, snapshot: ApySnapshot) -> OptimizationDecision:
        seed = self.gateway.split(strategy)
        if sum(seed) != self.config.split_total:
            raise ValidationError(
                "On-chain split does not match configured total",
                {"split": seed, "split_total": self.config.split_total},
            )

        target = self._target(snapshot)
        split = seed
        action = OptimizationAction.SEEDED
        reason = "on-chain split already optimal"

        if target != seed:
            principal = self._principal(strategy)
            if principal > self.config.dust_threshold:
                # a failed rebalance raises before anything is stored, so the seed is retried next cycle
                self._rebalance(strategy, target)
                split = target
                action = OptimizationAction.SEEDED_AND_REBALANCED
                reason = "seeded with best split"
            else:
                reason = f"principal {principal} at or below dust"

        self.store.insert(Position(
            strategy_address=strategy,
            split_mtoken=split[0],
            split_vault=split[1],
            strategy_type=self.config.strategy_type,
            apy=snapshot.best_apy,
            last_updated=self._clock(),
        ))
        log.info("✅ Stored new position {}/{} at {}% ({})", split[0], split[1], snapshot.best_apy, reason)
        return OptimizationDecision(strategy, action, split, target, snapshot.best_apy, None, reason)

    def _evaluate(self, strategy: str, position: Position, snapshot: ApySnapshot) -> OptimizationDecision:
        target = self._target(snapshot)
        improvement = snapshot.best_apy - position.apy
        split = position.split
        action = OptimizationAction.APY_UPDATED

        if improvement < self.config.min_improvement_pct:
            reason = f"improvement {improvement} below {self.config.min_improvement_pct}"
        elif target == position.split:
            reason = "split already optimal"
        else:
            principal = self._principal(strategy)
            if principal > self.config.dust_threshold:
                self._rebalance(strategy, target)
                split = target
                action = OptimizationAction.REBALANCED
                reason = f"improvement {improvement}"
            else:
                reason = f"principal {principal} at or below dust"

        self.store.update(replace(
            position,
            split_mtoken=split[0],
            split_vault=split[1],
            apy=snapshot.best_apy,
            last_updated=self._clock(),
        ))
        log.info(
            "ℹ️ Position {}/{}, APY {}% → {}% ({})",
            split[0], split[1], position.apy, snapshot.best_apy, reason,
        )
        return OptimizationDecision(strategy, action, split, target, snapshot.best_apy, improvement, reason)
