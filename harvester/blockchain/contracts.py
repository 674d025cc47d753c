"""Typed access to the protocol contracts used by the engine."""

import threading
from dataclasses import dataclass
from typing import Any

from web3 import Web3

from harvester.core.config import ContractsConfig
from harvester.core.exceptions import ConfigurationError

from .abis import (
    ERC20_ABI,
    PRICE_FEED_ABI,
    REWARDS_VIEW_ABI,
    STRATEGY_ABI,
    SWAP_CHECKER_ABI,
    UNITROLLER_ABI,
)
from .client import ChainClient
from .transactions import TransactionLane


@dataclass(frozen=True)
class Reward:
    """One entry of getUserRewards."""
    market: str
    reward_token: str
    supply_rewards_amount: int
    borrow_rewards_amount: int


@dataclass(frozen=True)
class PriceReading:
    """Latest oracle round."""
    answer: int
    updated_at: int
    decimals: int


class ProtocolGateway:
    """Reads and writes against the strategy, rewards, oracle and checker contracts.

    Reads raise ContractRevertError or NetworkError (see ChainClient.call).
    Writes go through the shared TransactionLane and return the mined receipt.
    """

    def __init__(self, client: ChainClient, lane: TransactionLane | None, contracts: ContractsConfig):
        self.client = client
        self.lane = lane
        self.contracts = contracts
        self._feed_decimals: dict[str, int] = {}
        self._decimals_lock = threading.Lock()

        self._rewards_view = client.get_contract(contracts.rewards_view, REWARDS_VIEW_ABI)
        self._unitroller = client.get_contract(contracts.unitroller, UNITROLLER_ABI)
        self._swap_checker = client.get_contract(contracts.swap_checker, SWAP_CHECKER_ABI)

    def _strategy(self, address: str) -> Any:
        return self.client.get_contract(address, STRATEGY_ABI)

    # Reads

    def user_rewards(self, strategy: str) -> list[Reward]:
        raw = self.client.call(
            self._rewards_view.functions.getUserRewards(Web3.to_checksum_address(strategy))
        )
        return [Reward(entry[0], entry[1], int(entry[2]), int(entry[3])) for entry in raw]

    def balance_of(self, token: str, holder: str) -> int:
        erc20 = self.client.get_contract(token, ERC20_ABI)
        return int(self.client.call(erc20.functions.balanceOf(Web3.to_checksum_address(holder))))

    def latest_price(self, feed: str) -> PriceReading:
        contract = self.client.get_contract(feed, PRICE_FEED_ABI)
        round_data = self.client.call(contract.functions.latestRoundData())
        return PriceReading(
            answer=int(round_data[1]),
            updated_at=int(round_data[3]),
            decimals=self._decimals_for(feed, contract),
        )

    def _decimals_for(self, feed: str, contract: Any) -> int:
        with self._decimals_lock:
            cached = self._feed_decimals.get(feed)
        if cached is not None:
            return cached
        decimals = int(self.client.call(contract.functions.decimals()))
        with self._decimals_lock:
            self._feed_decimals[feed] = decimals
        return decimals

    def split(self, strategy: str) -> tuple[int, int]:
        contract = self._strategy(strategy)
        return (
            int(self.client.call(contract.functions.splitMToken())),
            int(self.client.call(contract.functions.splitVault())),
        )

    def allowed_slippage_bps(self, strategy: str) -> int:
        return int(self.client.call(self._strategy(strategy).functions.allowedSlippageInBps()))

    def compound_fee_bps(self, strategy: str) -> int:
        return int(self.client.call(self._strategy(strategy).functions.compoundFee()))

    def is_valid_signature(self, strategy: str, digest: bytes, signature: bytes) -> bytes:
        result = self.client.call(self._strategy(strategy).functions.isValidSignature(digest, signature))
        return bytes(result)

    def expected_out(self, amount: int, sell_token: str, buy_token: str) -> int:
        return int(self.client.call(
            self._swap_checker.functions.getExpectedOut(
                amount,
                Web3.to_checksum_address(sell_token),
                Web3.to_checksum_address(buy_token),
            )
        ))

    def block_timestamp(self) -> int:
        return self.client.block_timestamp()

    # Writes

    def _require_lane(self) -> TransactionLane:
        if self.lane is None:
            raise ConfigurationError("ProtocolGateway was created without a transaction lane")
        return self.lane

    def claim_rewards(self, strategy: str) -> dict[str, Any]:
        fn = self._unitroller.functions.claimReward(Web3.to_checksum_address(strategy))
        return self._require_lane().execute(fn, f"claimReward({strategy})")

    def update_position(self, strategy: str, split_mtoken: int, split_vault: int) -> dict[str, Any]:
        fn = self._strategy(strategy).functions.updatePosition(split_mtoken, split_vault)
        return self._require_lane().execute(fn, f"updatePosition({split_mtoken},{split_vault})")

    def deposit_idle_tokens(self, strategy: str) -> dict[str, Any]:
        fn = self._strategy(strategy).functions.depositIdleTokens()
        return self._require_lane().execute(fn, f"depositIdleTokens({strategy})")
