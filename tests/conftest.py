"""Shared fixtures for harvester tests."""

from decimal import Decimal
from pathlib import Path

import pytest

from harvester.core.config import ConfigManager, CoreSettings

USDC = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
WELL = "0xa88594d404727625a9437c3f886c7643872296ae"
WELL_FEED = "0xc15d9944daefe2db03e53bef8dda25a56832c5fe"
SETTLEMENT = "0x9008d19f58aabd9ed0d60971565aa8510560ab41"

STRATEGY_A = "0x" + "aa" * 20
STRATEGY_B = "0x" + "bb" * 20
FEE_RECIPIENT = "0x" + "fe" * 20
SWAP_CHECKER = "0x" + "cc" * 20

CONFIG_YAML = f"""
network:
  name: base
  chain_id: 8453
  rpc_url: http://localhost:8545

tokens:
  - symbol: USDC
    address: "{USDC}"
    decimals: 6
  - symbol: WELL
    address: "{WELL}"
    decimals: 18
    price_feed: "{WELL_FEED}"

contracts:
  settlement: "{SETTLEMENT}"
  rewards_view: "0x6834770aba6c2028f448e3259ddee4bcb879d459"
  unitroller: "0xfbb21d0380bee3312b33c4353c8936a0f13ef26c"
  swap_checker: "{SWAP_CHECKER}"
  fee_recipient: "{FEE_RECIPIENT}"

endpoints:
  indexer_url: http://indexer.test/
  yield_feed_url: http://yield.test
  orderbook_url: http://orderbook.test

compounding:
  app_code: Mamo
"""


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    (tmp_path / "config.yaml").write_text(CONFIG_YAML)
    return tmp_path


@pytest.fixture
def settings() -> CoreSettings:
    return CoreSettings(
        base_rpc_url="http://localhost:8545",
        private_key="0x" + "11" * 32,
        database_url="sqlite://",
        min_usd_value_threshold=Decimal("10"),
    )


@pytest.fixture
def config_manager(config_dir: Path, settings: CoreSettings) -> ConfigManager:
    return ConfigManager(config_dir, settings=settings)
