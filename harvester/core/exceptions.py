"""
Core Exception Classes
---------------------
Application-specific exceptions, grouped by how the engine reacts to them.
"""

from typing import Any


class HarvesterError(Exception):
    """Base exception for all harvester errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(HarvesterError):
    """Raised when configuration is invalid or missing. Fatal at startup."""
    pass


class ValidationError(HarvesterError):
    """Raised when data validation fails."""
    pass


class UnsupportedTokenError(HarvesterError):
    """Raised when a token has no configured price feed."""

    def __init__(self, token: str):
        super().__init__("No price feed configured for token", {"token": token})
        self.token = token


class DataUnavailableError(HarvesterError):
    """Raised when an upstream data source lacks a required entry."""
    pass


class NetworkError(HarvesterError):
    """Raised when network/RPC/HTTP operations fail."""
    pass


class ContractRevertError(HarvesterError):
    """Raised when a contract call reverts."""

    def __init__(self, message: str, reason: str = "", details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.reason = reason


class TransactionError(HarvesterError):
    """Raised when a blockchain transaction fails or reverts."""

    def __init__(self, message: str, tx_hash: str | None = None, receipt: dict | None = None):
        details = {}
        if tx_hash:
            details["tx_hash"] = tx_hash
        if receipt:
            details["gas_used"] = receipt.get("gasUsed")
            details["status"] = receipt.get("status")
        super().__init__(message, details)
        self.tx_hash = tx_hash
        self.receipt = receipt


class OrderConstructionError(HarvesterError):
    """Raised when a swap order cannot be built safely."""
    pass


class OrderBookError(HarvesterError):
    """Raised when the order-book venue rejects a request or sends an unusable response."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        details = {}
        if status_code is not None:
            details["status_code"] = status_code
        if body:
            details["body"] = body
        super().__init__(message, details)
        self.status_code = status_code
        self.body = body


class PersistenceError(HarvesterError):
    """Raised when the position store cannot be read or written."""
    pass


class StaleWriteError(PersistenceError):
    """Raised when a conditional position update loses a race."""
    pass
