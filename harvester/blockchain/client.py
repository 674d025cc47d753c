"""Web3 client for Base blockchain interaction."""

from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from loguru import logger
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted
from web3.middleware import ExtraDataToPOAMiddleware

from harvester.core.exceptions import (
    ConfigurationError,
    ContractRevertError,
    NetworkError,
    TransactionError,
)


def revert_reason(error: ContractLogicError) -> str:
    """Best-effort human readable revert reason."""
    message = getattr(error, "message", None)
    return str(message) if message else str(error)


class ChainClient:
    """Web3 client for Base blockchain interaction."""

    def __init__(
        self,
        rpc_url: str,
        private_key: str | None = None,
        chain_id: int | None = None,
        request_timeout: float = 30.0,
        receipt_timeout: int = 120,
        verify: bool = True,
    ):
        """Initialize the client.

        Args:
            rpc_url: RPC endpoint URL.
            private_key: Operator key used for write transactions.
            chain_id: Expected chain id, checked on connect.
            request_timeout: Per-request HTTP timeout in seconds.
            receipt_timeout: Default receipt wait in seconds.
            verify: Check connectivity and chain id on construction.

        Raises:
            ConfigurationError: If required configuration is missing.
            NetworkError: If connection to blockchain fails.
        """
        if not rpc_url:
            raise ConfigurationError("RPC URL is required but not provided")

        self.rpc_url = rpc_url
        self.expected_chain_id = chain_id
        self.receipt_timeout = receipt_timeout

        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        self.w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

        self.account: LocalAccount | None = None
        if private_key:
            if not private_key.startswith('0x'):
                private_key = f"0x{private_key}"
            try:
                self.account = Account.from_key(private_key)
            except Exception as e:
                raise ConfigurationError(f"Invalid private key: {e}")
            logger.info("Operator account initialized: {}", self.account.address)

        if verify:
            self._verify_connection()

    def _verify_connection(self) -> None:
        try:
            chain_id = self.w3.eth.chain_id
            block_number = self.w3.eth.block_number
        except Exception as e:
            raise NetworkError(f"Connection verification failed: {e}")

        if self.expected_chain_id is not None and chain_id != self.expected_chain_id:
            raise ConfigurationError(
                f"Wrong network: expected chain ID {self.expected_chain_id}, got {chain_id}"
            )

        logger.info("✅ Connected to chain {} at block {}", chain_id, block_number)

    @property
    def chain_id(self) -> int:
        return self.expected_chain_id if self.expected_chain_id is not None else self.w3.eth.chain_id

    def get_contract(self, address: str, abi: list) -> Any:
        """Get contract instance."""
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def call(self, fn: Any) -> Any:
        """Execute a read-only contract function.

        Raises:
            ContractRevertError: If the call reverts.
            NetworkError: On any transport failure.
        """
        try:
            return fn.call()
        except ContractLogicError as e:
            reason = revert_reason(e)
            raise ContractRevertError(
                f"{fn.fn_name} reverted", reason=reason, details={"reason": reason}
            )
        except Exception as e:
            raise NetworkError(f"{fn.fn_name} call failed: {e}")

    def block_timestamp(self) -> int:
        """Timestamp of the latest block."""
        try:
            return int(self.w3.eth.get_block("latest")["timestamp"])
        except Exception as e:
            raise NetworkError(f"Failed to read latest block: {e}")

    def wait_for_receipt(self, tx_hash: str, timeout: int | None = None) -> dict[str, Any]:
        """Wait for transaction receipt.

        Raises:
            TransactionError: If the transaction reverted.
            NetworkError: If the receipt could not be retrieved in time.
        """
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout or self.receipt_timeout
            )
        except TimeExhausted as e:
            raise NetworkError(f"Timed out waiting for receipt of {tx_hash}: {e}")
        except Exception as e:
            raise NetworkError(f"Failed to get receipt for {tx_hash}: {e}")

        receipt = dict(receipt)
        if receipt.get("status") != 1:
            logger.error("❌ Transaction {} failed with status {}", tx_hash, receipt.get("status"))
            raise TransactionError("Transaction reverted", tx_hash=tx_hash, receipt=receipt)

        logger.info("✅ Transaction {} confirmed in block {}", tx_hash, receipt.get("blockNumber"))
        return receipt
