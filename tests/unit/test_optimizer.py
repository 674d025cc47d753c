"""
Position Optimizer Tests
------------------------
Seeding, hysteresis, dust handling and failure behaviour of PositionOptimizer.
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import Mock

import pytest

from harvester.core.config import OptimizerConfig
from harvester.core.exceptions import DataUnavailableError, TransactionError
from harvester.engine.optimizer import OptimizationAction, PositionOptimizer, best_split
from harvester.services.indexer import StrategyRecord
from harvester.services.yield_feed import ApySnapshot
from harvester.storage.positions import Position, PositionStore

from conftest import STRATEGY_A

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def snapshot(market: str, vault: str) -> ApySnapshot:
    return ApySnapshot(market_apy=Decimal(market), vault_apy=Decimal(vault))


@pytest.fixture
def store():
    store = PositionStore.from_url("sqlite://")
    store.initialize()
    return store


@pytest.fixture
def gateway():
    gateway = Mock()
    gateway.split.return_value = (40, 60)
    return gateway


@pytest.fixture
def indexer():
    indexer = Mock()
    indexer.iter_strategies.return_value = [StrategyRecord(strategy=STRATEGY_A)]
    indexer.total_balance.return_value = Decimal("10")
    return indexer


@pytest.fixture
def yield_feed():
    return Mock()


@pytest.fixture
def optimizer(indexer, gateway, yield_feed, store):
    return PositionOptimizer(indexer, gateway, yield_feed, store, OptimizerConfig(), clock=lambda: NOW)


def seed_position(store, split=(0, 100), apy="5.0"):
    store.insert(Position(
        strategy_address=STRATEGY_A,
        split_mtoken=split[0],
        split_vault=split[1],
        strategy_type="usdc_stablecoin",
        apy=Decimal(apy),
        last_updated=NOW,
    ))


class TestBestSplit:

    @pytest.mark.parametrize("market,vault,expected", [
        ("6.0", "5.0", (100, 0)),
        ("4.0", "5.0", (0, 100)),
        ("5.0", "5.0", (50, 50)),
    ])
    def test_winner_takes_all(self, market, vault, expected):
        assert best_split(Decimal(market), Decimal(vault), 100) == expected

    def test_scales_with_total(self):
        assert best_split(Decimal("1"), Decimal("2"), 10000) == (0, 10000)
        assert best_split(Decimal("2"), Decimal("2"), 3) == (1, 2)


class TestSeeding:

    def test_seed_rebalances_to_best_split(self, optimizer, gateway, indexer, store, yield_feed):
        indexer.total_balance.return_value = Decimal("100")
        yield_feed.snapshot.return_value = snapshot("3", "5")

        (decision,) = optimizer.run()

        assert decision.action is OptimizationAction.SEEDED_AND_REBALANCED
        gateway.update_position.assert_called_once_with(STRATEGY_A, 0, 100)
        position = store.get(STRATEGY_A)
        assert position.split == (0, 100)
        assert position.apy == Decimal("5.00")
        assert position.strategy_type == "usdc_stablecoin"

    def test_seed_already_optimal(self, optimizer, gateway, indexer, store, yield_feed):
        gateway.split.return_value = (0, 100)
        yield_feed.snapshot.return_value = snapshot("4.0", "5.0")

        (decision,) = optimizer.run()

        assert decision.action is OptimizationAction.SEEDED
        gateway.update_position.assert_not_called()
        indexer.total_balance.assert_not_called()
        assert store.get(STRATEGY_A).split == (0, 100)

    def test_seed_with_dust_keeps_onchain_split(self, optimizer, gateway, indexer, store, yield_feed):
        indexer.total_balance.return_value = Decimal("0.3")
        yield_feed.snapshot.return_value = snapshot("4.0", "5.0")

        (decision,) = optimizer.run()

        assert decision.action is OptimizationAction.SEEDED
        gateway.update_position.assert_not_called()
        assert store.get(STRATEGY_A).split == (40, 60)

    def test_failed_seed_rebalance_stores_nothing(self, optimizer, gateway, store, yield_feed):
        gateway.update_position.side_effect = TransactionError("Transaction reverted")
        yield_feed.snapshot.return_value = snapshot("4.0", "5.0")

        (decision,) = optimizer.run()

        assert decision.action is OptimizationAction.FAILED
        assert store.get(STRATEGY_A) is None

    def test_seed_split_must_match_total(self, optimizer, gateway, store, yield_feed):
        gateway.split.return_value = (40, 50)
        yield_feed.snapshot.return_value = snapshot("4.0", "5.0")

        (decision,) = optimizer.run()

        assert decision.action is OptimizationAction.FAILED
        assert store.get(STRATEGY_A) is None


class TestRebalancing:

    def test_small_improvement_only_updates_apy(self, optimizer, gateway, store, yield_feed):
        seed_position(store)
        yield_feed.snapshot.return_value = snapshot("5.5", "4.0")

        (decision,) = optimizer.run()

        assert decision.action is OptimizationAction.APY_UPDATED
        assert decision.improvement == Decimal("0.5")
        gateway.update_position.assert_not_called()
        position = store.get(STRATEGY_A)
        assert position.split == (0, 100)
        assert position.apy == Decimal("5.50")

    def test_improvement_at_bar_rebalances(self, optimizer, gateway, store, yield_feed):
        seed_position(store)
        yield_feed.snapshot.return_value = snapshot("6.0", "4.0")

        (decision,) = optimizer.run()

        assert decision.action is OptimizationAction.REBALANCED
        gateway.update_position.assert_called_once_with(STRATEGY_A, 100, 0)
        position = store.get(STRATEGY_A)
        assert position.split == (100, 0)
        assert position.apy == Decimal("6.00")
        assert position.version == 2

    def test_dust_principal_is_not_rebalanced(self, optimizer, gateway, indexer, store, yield_feed):
        seed_position(store)
        indexer.total_balance.return_value = Decimal("0.3")
        yield_feed.snapshot.return_value = snapshot("6.3", "5.0")

        (decision,) = optimizer.run()

        assert decision.action is OptimizationAction.APY_UPDATED
        gateway.update_position.assert_not_called()
        position = store.get(STRATEGY_A)
        assert position.split == (0, 100)
        assert position.apy == Decimal("6.30")

    def test_second_run_is_idempotent(self, optimizer, gateway, store, yield_feed):
        seed_position(store)
        yield_feed.snapshot.return_value = snapshot("6.0", "4.0")

        optimizer.run()
        (decision,) = optimizer.run()

        assert decision.action is OptimizationAction.APY_UPDATED
        gateway.update_position.assert_called_once()
        assert store.get(STRATEGY_A).version == 3

    def test_failed_rebalance_keeps_stored_state(self, optimizer, gateway, store, yield_feed):
        seed_position(store)
        gateway.update_position.side_effect = TransactionError("Transaction reverted")
        yield_feed.snapshot.return_value = snapshot("6.0", "4.0")

        (decision,) = optimizer.run()

        assert decision.action is OptimizationAction.FAILED
        position = store.get(STRATEGY_A)
        assert position.split == (0, 100)
        assert position.apy == Decimal("5.00")
        assert position.version == 1


class TestCycle:

    def test_missing_yield_data_skips_cycle(self, optimizer, indexer, yield_feed):
        yield_feed.snapshot.side_effect = DataUnavailableError("Could not find market or vault data")

        assert optimizer.run() == []
        indexer.iter_strategies.assert_not_called()
