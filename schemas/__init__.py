"""
Message Catalog

Typed records flowing through the reconciliation engine: raw trades,
OHLCV candles, agreement metrics and diagnostics.
"""

from schemas.errors import MalformedInputError
from schemas.market_data import Trade, TradeSide, Candle
from schemas.reconciliation import (
    Metrics,
    BucketComparison,
    Diagnostic,
    DiagnosticKind,
)

__all__ = [
    "MalformedInputError",
    "Trade",
    "TradeSide",
    "Candle",
    "Metrics",
    "BucketComparison",
    "Diagnostic",
    "DiagnosticKind",
]
