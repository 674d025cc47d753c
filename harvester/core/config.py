"""
Core Configuration Management
-----------------------------
Environment settings (credentials, connection strings) come from the process
environment or `.env`. Everything else, including every contract and token
address, comes from `config/config.yaml`.
"""

from decimal import Decimal
from pathlib import Path
from typing import Optional

import yaml
from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


def _checksum(value: str) -> str:
    if not is_address(value):
        raise ValueError(f"Invalid address: {value}")
    return to_checksum_address(value)


class TokenConfig(BaseModel):
    """Token configuration."""
    symbol: str
    address: str
    decimals: int
    price_feed: Optional[str] = None

    @field_validator('address')
    @classmethod
    def validate_address(cls, v: str) -> str:
        return _checksum(v)

    @field_validator('price_feed')
    @classmethod
    def validate_price_feed(cls, v: Optional[str]) -> Optional[str]:
        return _checksum(v) if v else None

    @field_validator('decimals')
    @classmethod
    def validate_decimals(cls, v: int) -> int:
        if v < 0 or v > 30:
            raise ValueError("Token decimals must be between 0 and 30")
        return v


class NetworkConfig(BaseModel):
    """Network configuration."""
    name: str = "base"
    chain_id: int = 8453
    rpc_url: Optional[str] = None
    request_timeout_seconds: float = 30.0
    receipt_timeout_seconds: int = 120
    explorer_url: Optional[str] = None


class ContractsConfig(BaseModel):
    """Protocol contract addresses."""
    settlement: str
    rewards_view: str
    unitroller: str
    swap_checker: str
    fee_recipient: str

    @field_validator('settlement', 'rewards_view', 'unitroller', 'swap_checker', 'fee_recipient')
    @classmethod
    def validate_address(cls, v: str) -> str:
        return _checksum(v)


class EndpointsConfig(BaseModel):
    """HTTP endpoints of the off-chain collaborators."""
    indexer_url: str
    yield_feed_url: str
    orderbook_url: str

    @field_validator('indexer_url', 'yield_feed_url', 'orderbook_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip('/')


class CompoundingConfig(BaseModel):
    """Reward claiming and swap order parameters."""
    base_asset: str = "USDC"
    default_slippage_bps: int = 30
    stale_quote_safety_margin_bps: int = 200
    hook_gas_limit: int = 100000
    order_validity_seconds: int = 1800
    max_price_age_seconds: int = 86400
    app_code: str = "harvester"
    hooks_version: str = "0.1.0"
    app_data_version: str = "1.3.0"

    @field_validator('default_slippage_bps', 'stale_quote_safety_margin_bps')
    @classmethod
    def validate_bps(cls, v: int) -> int:
        if v < 0 or v >= 10000:
            raise ValueError("Basis points must be between 0 and 9999")
        return v

    @field_validator('order_validity_seconds')
    @classmethod
    def validate_validity(cls, v: int) -> int:
        if v < 60 or v > 3600:  # orders must expire within minutes
            raise ValueError("Order validity must be between 60 and 3600 seconds")
        return v


class OptimizerConfig(BaseModel):
    """Position optimizer parameters."""
    market_key: str = "MOONWELL_USDC"
    vault_key: str = "mwUSDC"
    min_improvement_pct: Decimal = Decimal("1.0")
    dust_threshold: Decimal = Decimal("0.5")
    split_total: int = 100
    strategy_type: str = "usdc_stablecoin"

    @field_validator('split_total')
    @classmethod
    def validate_split_total(cls, v: int) -> int:
        if v < 2:
            raise ValueError("Split total must be at least 2")
        return v


class SchedulerConfig(BaseModel):
    """Periodic task intervals."""
    tick_seconds: float = 1.0
    compounder_interval_seconds: int = 300
    optimizer_interval_seconds: int = 300
    idle_interval_seconds: int = 300
    run_on_start: bool = True


class HttpConfig(BaseModel):
    """Shared HTTP client behaviour."""
    timeout_seconds: float = 15.0
    max_retries: int = 3
    backoff_factor: float = 0.5


class CoreSettings(BaseSettings):
    """Core application settings loaded from the environment and config.yaml."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Environment
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "human"
    log_file: Optional[str] = None

    # Connections and credentials
    base_rpc_url: Optional[str] = None
    private_key: Optional[str] = None
    database_url: Optional[str] = None
    min_usd_value_threshold: Decimal = Decimal("1")

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # Paths
    config_dir: Path = Path("config")

    # Loaded from config.yaml
    network: Optional[NetworkConfig] = None
    contracts: Optional[ContractsConfig] = None
    endpoints: Optional[EndpointsConfig] = None
    compounding: Optional[CompoundingConfig] = None
    optimizer: Optional[OptimizerConfig] = None
    scheduler: Optional[SchedulerConfig] = None
    http: Optional[HttpConfig] = None

    @field_validator('min_usd_value_threshold')
    @classmethod
    def validate_threshold(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("MIN_USD_VALUE_THRESHOLD must not be negative")
        return v

    @property
    def rpc_url(self) -> Optional[str]:
        """Environment RPC URL wins over the one in config.yaml."""
        if self.base_rpc_url:
            return self.base_rpc_url
        return self.network.rpc_url if self.network else None


class ConfigManager:
    """Configuration manager that loads from files and validates."""

    def __init__(self, config_path: Optional[Path] = None, settings: Optional[CoreSettings] = None) -> None:
        self.settings: CoreSettings = settings or CoreSettings()
        self.config_path: Path = config_path or self.settings.config_dir
        self._tokens: dict[str, TokenConfig] = {}
        self._tokens_by_address: dict[str, TokenConfig] = {}

        self._load_configurations()

    def _load_configurations(self) -> None:
        """Load all configuration from the single config.yaml file."""
        try:
            self._load_from_single_file()
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

    def _load_from_single_file(self) -> None:
        config_file = self.config_path / "config.yaml"
        if not config_file.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file}. "
                f"Please create config/config.yaml with all configurations."
            )

        with open(config_file) as f:
            config_data = yaml.safe_load(f) or {}

        for token_data in config_data.get('tokens', []):
            token = TokenConfig(**token_data)
            self._tokens[token.symbol] = token
            self._tokens_by_address[token.address.lower()] = token

        self.settings.network = NetworkConfig(**config_data.get('network', {}))
        if 'contracts' in config_data:
            self.settings.contracts = ContractsConfig(**config_data['contracts'])
        if 'endpoints' in config_data:
            self.settings.endpoints = EndpointsConfig(**config_data['endpoints'])
        self.settings.compounding = CompoundingConfig(**config_data.get('compounding', {}))
        self.settings.optimizer = OptimizerConfig(**config_data.get('optimizer', {}))
        self.settings.scheduler = SchedulerConfig(**config_data.get('scheduler', {}))
        self.settings.http = HttpConfig(**config_data.get('http', {}))

    def get_token(self, symbol: str) -> TokenConfig:
        """Get token configuration by symbol."""
        if symbol not in self._tokens:
            raise ConfigurationError(f"Token {symbol} not found in configuration")
        return self._tokens[symbol]

    def find_token(self, address: str) -> Optional[TokenConfig]:
        """Get token configuration by address, or None when unknown."""
        return self._tokens_by_address.get(address.lower())

    @property
    def base_asset(self) -> TokenConfig:
        return self.get_token(self.settings.compounding.base_asset)

    def validate_configuration(self) -> bool:
        """Validate that everything needed to run is present.

        Raises:
            ConfigurationError: On the first missing or inconsistent value.
        """
        try:
            if not self.settings.rpc_url:
                raise ConfigurationError("BASE_RPC_URL is required")
            if not self.settings.private_key:
                raise ConfigurationError("PRIVATE_KEY is required")
            if not self.settings.database_url:
                raise ConfigurationError("DATABASE_URL is required")
            if not self.settings.contracts:
                raise ConfigurationError("contracts section is required in config.yaml")
            if not self.settings.endpoints:
                raise ConfigurationError("endpoints section is required in config.yaml")

            for name, address in self.settings.contracts.model_dump().items():
                if int(address, 16) == 0:
                    raise ConfigurationError(f"Contract address '{name}' is not set")

            self.get_token(self.settings.compounding.base_asset)

            if not any(token.price_feed for token in self._tokens.values()):
                raise ConfigurationError("At least one token needs a price_feed")

            return True

        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Configuration validation failed: {e}")

