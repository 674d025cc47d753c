"""
Process entry point: load configuration, wire components, start the
scheduler and serve the HTTP endpoints.
"""

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from harvester.blockchain import ChainClient, ProtocolGateway, TransactionLane
from harvester.core.config import ConfigManager, CoreSettings
from harvester.core.exceptions import HarvesterError
from harvester.core.logging import configure_logging, log
from harvester.engine import IdleDepositor, PositionOptimizer, PriceOracle, RewardCompounder, SwapExecutor
from harvester.orders import OrderDomain, SignatureValidator
from harvester.scheduler import Scheduler
from harvester.server import HarvesterServer
from harvester.services import IndexerClient, OrderBookClient, YieldFeedClient, build_session
from harvester.storage import PositionStore

TASK_NAMES = ("compounder", "optimizer", "idle")


@dataclass
class Components:
    """Fully wired engine."""
    compounder: RewardCompounder
    optimizer: PositionOptimizer
    idle: IdleDepositor
    store: PositionStore


def build_components(config_manager: ConfigManager) -> Components:
    """Construct every collaborator from validated configuration.

    Raises:
        ConfigurationError: On bad credentials or wrong chain.
        NetworkError: If the RPC endpoint is unreachable.
    """
    settings = config_manager.settings

    client = ChainClient(
        settings.rpc_url,
        private_key=settings.private_key,
        chain_id=settings.network.chain_id,
        request_timeout=settings.network.request_timeout_seconds,
        receipt_timeout=settings.network.receipt_timeout_seconds,
    )
    gateway = ProtocolGateway(client, TransactionLane(client), settings.contracts)

    session = build_session(settings.http)
    indexer = IndexerClient(settings.endpoints.indexer_url, settings.http, session=session)
    yield_feed = YieldFeedClient(
        settings.endpoints.yield_feed_url,
        settings.http,
        market_key=settings.optimizer.market_key,
        vault_key=settings.optimizer.vault_key,
        session=session,
    )
    orderbook = OrderBookClient(settings.endpoints.orderbook_url, settings.http, session=session)

    oracle = PriceOracle(
        gateway,
        config_manager,
        min_usd_value=settings.min_usd_value_threshold,
        max_price_age_seconds=settings.compounding.max_price_age_seconds,
    )
    validator = SignatureValidator(gateway, OrderDomain(settings.network.chain_id, settings.contracts.settlement))
    swapper = SwapExecutor(
        gateway,
        orderbook,
        validator,
        base_asset=config_manager.base_asset.address,
        fee_recipient=settings.contracts.fee_recipient,
        config=settings.compounding,
    )

    store = PositionStore.from_url(settings.database_url)

    return Components(
        compounder=RewardCompounder(indexer, gateway, oracle, swapper),
        optimizer=PositionOptimizer(indexer, gateway, yield_feed, store, settings.optimizer),
        idle=IdleDepositor(indexer, gateway, min_balance=settings.min_usd_value_threshold),
        store=store,
    )


def build_scheduler(components: Components, settings: CoreSettings) -> Scheduler:
    config = settings.scheduler
    scheduler = Scheduler(tick_seconds=config.tick_seconds)
    scheduler.register(
        "compounder", components.compounder.run, config.compounder_interval_seconds,
        prefix="[Reward Compounder]", run_on_start=config.run_on_start,
    )
    scheduler.register(
        "optimizer", components.optimizer.run, config.optimizer_interval_seconds,
        prefix="[Strategy Optimizer]", run_on_start=config.run_on_start,
    )
    scheduler.register(
        "idle", components.idle.run, config.idle_interval_seconds,
        prefix="[Idle Strategies]", run_on_start=config.run_on_start,
    )
    return scheduler


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Strategy reward harvester and position optimizer")
    parser.add_argument("--host", default=None, help="Server host")
    parser.add_argument("--port", type=int, default=None, help="Server port")
    parser.add_argument("--config-dir", type=Path, default=None, help="Directory containing config.yaml")
    parser.add_argument("--once", choices=TASK_NAMES, help="Run a single task once and exit")
    args = parser.parse_args(argv)

    settings = CoreSettings()
    configure_logging(level=settings.log_level, format=settings.log_format, log_file=settings.log_file)

    try:
        config_manager = ConfigManager(args.config_dir, settings=settings)
        config_manager.validate_configuration()
        components = build_components(config_manager)
        components.store.initialize()
    except HarvesterError as e:
        log.critical("❌ Startup failed: {}", e)
        return 1

    if args.once:
        getattr(components, args.once).run()
        return 0

    scheduler = build_scheduler(components, settings)
    scheduler.start()

    server = HarvesterServer(scheduler, port=args.port or settings.port)
    try:
        server.run(host=args.host or settings.host)
    finally:
        scheduler.stop(timeout=30)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
