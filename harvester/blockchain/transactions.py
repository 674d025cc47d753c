"""
Serialized Transaction Submission
---------------------------------
Every write made by the harvester is signed by one operator account, so all
periodic tasks share a single lane that assigns nonces in order.
"""

import threading
from typing import Any

from loguru import logger
from web3 import Web3
from web3.exceptions import ContractLogicError

from harvester.core.exceptions import ConfigurationError, ContractRevertError, NetworkError

from .client import ChainClient, revert_reason


class TransactionLane:
    """Lock-serialized submission queue for the operator account.

    The nonce is read from the pending transaction count on first use and
    tracked locally afterwards. Any failed send drops the local nonce so the
    next submission resynchronizes with the node. Receipt waits happen
    outside the lock so a slow confirmation does not block other tasks from
    queueing their sends.
    """

    def __init__(self, client: ChainClient):
        if client.account is None:
            raise ConfigurationError("No account connected for signing transactions")
        self.client = client
        self._lock = threading.Lock()
        self._nonce: int | None = None

    def submit(self, fn: Any, description: str) -> str:
        """Sign and broadcast a contract write.

        Args:
            fn: Bound contract function, e.g. contract.functions.claimReward(addr)
            description: Short label for logs

        Returns:
            Transaction hash as 0x-prefixed hex.

        Raises:
            ContractRevertError: If gas estimation shows the call would revert.
            NetworkError: If building or broadcasting fails.
        """
        account = self.client.account
        w3 = self.client.w3

        with self._lock:
            try:
                if self._nonce is None:
                    self._nonce = w3.eth.get_transaction_count(account.address, "pending")

                tx = fn.build_transaction({
                    "from": account.address,
                    "nonce": self._nonce,
                    "chainId": self.client.chain_id,
                })
                signed = account.sign_transaction(tx)
                tx_hash = Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))
            except ContractLogicError as e:
                self._nonce = None
                reason = revert_reason(e)
                raise ContractRevertError(f"{description} would revert", reason=reason, details={"reason": reason})
            except Exception as e:
                self._nonce = None
                raise NetworkError(f"{description} submission failed: {e}")

            self._nonce += 1

        logger.info("📤 {} sent: {}", description, tx_hash)
        return tx_hash

    def execute(self, fn: Any, description: str) -> dict[str, Any]:
        """Submit a write and block until it is mined.

        Raises:
            TransactionError: If the transaction reverted on-chain.
        """
        tx_hash = self.submit(fn, description)
        return self.client.wait_for_receipt(tx_hash)
