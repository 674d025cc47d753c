"""Blockchain access: RPC client, transaction lane and contract gateway."""

from .client import ChainClient
from .contracts import PriceReading, ProtocolGateway, Reward
from .transactions import TransactionLane

__all__ = [
    "ChainClient",
    "PriceReading",
    "ProtocolGateway",
    "Reward",
    "TransactionLane",
]
