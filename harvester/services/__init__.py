"""HTTP clients for the indexer, yield feed and order book."""

from .http import build_session
from .indexer import IndexerClient, StrategyRecord, TokenBalance
from .orderbook import OrderBookClient, Quote
from .yield_feed import ApySnapshot, YieldFeedClient

__all__ = [
    "build_session",
    "IndexerClient",
    "StrategyRecord",
    "TokenBalance",
    "OrderBookClient",
    "Quote",
    "ApySnapshot",
    "YieldFeedClient",
]
