"""Core modules for the harvester."""

from .config import ConfigManager, CoreSettings
from .exceptions import (
    ConfigurationError,
    ContractRevertError,
    DataUnavailableError,
    HarvesterError,
    NetworkError,
    OrderBookError,
    OrderConstructionError,
    PersistenceError,
    StaleWriteError,
    TransactionError,
    UnsupportedTokenError,
    ValidationError,
)

__all__ = [
    "ConfigManager",
    "CoreSettings",
    "HarvesterError",
    "ConfigurationError",
    "ContractRevertError",
    "DataUnavailableError",
    "NetworkError",
    "OrderBookError",
    "OrderConstructionError",
    "PersistenceError",
    "StaleWriteError",
    "TransactionError",
    "UnsupportedTokenError",
    "ValidationError",
]
