"""
Candle Aggregation

Builds the two candle series that get compared:
- TradeAggregator: trade prints -> 1m candles (direct feed)
- CandleMerger: provider candles merged by bucket (indexed feed)
"""

from dataflow.candle_aggregation.series import CandleSeries
from dataflow.candle_aggregation.aggregator import TradeAggregator, LateTradePolicy
from dataflow.candle_aggregation.merger import CandleMerger

__all__ = [
    "CandleSeries",
    "TradeAggregator",
    "LateTradePolicy",
    "CandleMerger",
]
