"""
Comparison Session

Owns both candle series for one asset for the lifetime of a subscription
session. Feeds hand their decoded messages to the session; readers get
side-effect-free snapshots.
"""

import logging
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Tuple, Union

from dataflow.candle_aggregation import CandleMerger, TradeAggregator
from dataflow.reconciliation import Reconciler
from engine.config.loader import ReconcilerConfig
from schemas.errors import MalformedInputError
from schemas.market_data import Candle, Trade
from schemas.reconciliation import BucketComparison, Diagnostic, DiagnosticKind, Metrics

logger = logging.getLogger(__name__)


class CandleSource(str, Enum):
    """The two compared series"""
    DIRECT = "direct"
    INDEXED = "indexed"


class ComparisonSession:
    """
    Single-owner state for one comparison session.

    The session:
    1. Routes trade batches to the TradeAggregator (source A)
    2. Routes candle batches to the CandleMerger (source B)
    3. Recomputes Metrics from scratch after every change
    4. Keeps a bounded tape of recent trades and a bounded diagnostic log

    Messages from one feed are applied in arrival order and each call runs
    to completion, so within one event loop no locking is needed.

    Example usage:
        session = ComparisonSession(ReconcilerConfig())
        session.ingest_trades([{"timestamp": 1000, "price": 5, "size": 1, "side": "buy"}])
        session.ingest_candles([{"timestamp": 0, "open": 5, "high": 5, "low": 5, "close": 5}])
        print(session.metrics().matched_fraction)
    """

    def __init__(self, config: ReconcilerConfig):
        """
        Initialize session.

        Args:
            config: Validated session configuration
        """
        self.config = config
        self.symbol = config.symbol
        aggregation = config.aggregation

        self._diagnostics: Deque[Diagnostic] = deque(maxlen=config.diagnostics_limit)
        self._trades: Deque[Trade] = deque(maxlen=config.recent_trades_limit)
        self._listeners: List[Callable[[CandleSource], None]] = []
        self._trades_malformed = 0

        self.aggregator = TradeAggregator(
            bucket_width_ms=aggregation.bucket_width_ms,
            max_length=aggregation.max_series_length,
            late_trade_policy=aggregation.late_trade_policy,
            on_diagnostic=self._record,
            source=CandleSource.DIRECT.value,
        )
        self.merger = CandleMerger(
            bucket_width_ms=aggregation.bucket_width_ms,
            max_length=aggregation.max_series_length,
            on_diagnostic=self._record,
            source=CandleSource.INDEXED.value,
        )
        self.reconciler = Reconciler()
        self._metrics = Metrics()

        logger.info(
            f"Session initialized for {self.symbol}: "
            f"bucket={aggregation.bucket_width_ms}ms, max_length={aggregation.max_series_length}"
        )

    def add_listener(self, listener: Callable[[CandleSource], None]) -> None:
        """Register a callback invoked after each ingest with the updated source"""
        self._listeners.append(listener)

    def ingest_trades(self, batch: Iterable[Union[Trade, Mapping[str, Any]]]) -> Tuple[Candle, ...]:
        """
        Apply a batch of trades from the direct feed.

        Raw records are decoded here so the trade tape only holds valid
        trades; malformed records are reported and skipped. The tape keeps
        every valid trade, including ones the aggregator drops as late.
        """
        if isinstance(batch, (str, bytes, Mapping)) or not isinstance(batch, Iterable):
            return self.aggregator.ingest_batch(batch)

        trades: List[Trade] = []
        records = list(batch)
        for record in records:
            if isinstance(record, Trade):
                trades.append(record)
                continue
            try:
                trades.append(Trade.from_dict(record))
            except MalformedInputError as e:
                self._trades_malformed += 1
                self._record(Diagnostic(
                    kind=DiagnosticKind.MALFORMED_INPUT,
                    source=CandleSource.DIRECT.value,
                    message=f"Dropped trade: {e}",
                ))
                logger.warning(f"[{CandleSource.DIRECT.value}] Dropped trade: {e}")

        if records and not trades:
            return self.aggregator.series()

        series = self.aggregator.ingest_batch(trades)
        self._trades.extend(trades)
        self._refresh(CandleSource.DIRECT)
        return series

    def ingest_candles(self, batch: Iterable[Union[Candle, Mapping[str, Any]]]) -> Tuple[Candle, ...]:
        """Apply a batch of candles from the indexed feed."""
        series = self.merger.ingest(batch)
        self._refresh(CandleSource.INDEXED)
        return series

    def log(self, source: str, message: str) -> None:
        """Record a feed status line (connected, closed, errors)"""
        logger.info(f"[{source}] {message}")
        self._diagnostics.appendleft(Diagnostic(kind=DiagnosticKind.STATUS, source=source, message=message))

    def series_a(self) -> Tuple[Candle, ...]:
        return self.aggregator.series()

    def series_b(self) -> Tuple[Candle, ...]:
        return self.merger.series()

    def series(self, source: CandleSource) -> Tuple[Candle, ...]:
        if CandleSource(source) is CandleSource.DIRECT:
            return self.series_a()
        return self.series_b()

    def metrics(self) -> Metrics:
        return self._metrics

    def comparison(self) -> List[BucketComparison]:
        return self.reconciler.compare(self.series_a(), self.series_b())

    def recent_trades(self) -> Tuple[Trade, ...]:
        """Recent trades, newest first"""
        return tuple(reversed(self._trades))

    def diagnostics(self) -> Tuple[Diagnostic, ...]:
        """Diagnostic log, newest first"""
        return tuple(self._diagnostics)

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready view of the whole session"""
        return {
            "symbol": self.symbol,
            "token_address": self.config.token_address,
            "bucket_width_ms": self.aggregator.bucket_width_ms,
            "series": {
                CandleSource.DIRECT.value: [c.to_dict() for c in self.series_a()],
                CandleSource.INDEXED.value: [c.to_dict() for c in self.series_b()],
            },
            "metrics": self._metrics.to_dict(),
        }

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get session counters.

        Returns:
            Dictionary with ingest statistics
        """
        return {
            "symbol": self.symbol,
            "trades_ingested": self.aggregator.trades_ingested,
            "trades_dropped": self.aggregator.trades_dropped + self._trades_malformed,
            "candles_merged": self.merger.candles_merged,
            "candles_dropped": self.merger.candles_dropped,
            "direct_length": len(self.series_a()),
            "indexed_length": len(self.series_b()),
        }

    def _record(self, diagnostic: Diagnostic) -> None:
        self._diagnostics.appendleft(diagnostic)

    def _refresh(self, source: CandleSource) -> None:
        self._metrics = self.reconciler.compute(self.series_a(), self.series_b())
        for listener in self._listeners:
            try:
                listener(source)
            except Exception as e:
                logger.error(f"Session listener failed: {e}", exc_info=True)
