"""
Ingestion

The two independent market-data feeds for the compared asset.
"""

from dataflow.ingestion.base import FeedError, WebSocketFeed
from dataflow.ingestion.hyperliquid import HyperliquidTradeFeed
from dataflow.ingestion.goldrush import GoldRushCandleFeed

__all__ = [
    "FeedError",
    "WebSocketFeed",
    "HyperliquidTradeFeed",
    "GoldRushCandleFeed",
]
