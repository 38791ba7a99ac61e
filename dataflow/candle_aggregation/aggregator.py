"""
Trade Aggregator

Folds the direct feed's trade prints into fixed-width OHLCV candles.

Only the tail bucket is updated in place; a trade for a newer bucket opens
a new candle and the series is bounded to the newest max_length candles.
Trades are expected in non-decreasing timestamp order. What happens to a
trade older than the tail is governed by LateTradePolicy.
"""

import logging
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Tuple, Union

from dataflow.candle_aggregation.series import CandleSeries, DEFAULT_MAX_SERIES_LENGTH
from schemas.errors import MalformedInputError
from schemas.market_data import Candle, Trade, bucket_start_for
from schemas.reconciliation import Diagnostic, DiagnosticKind

logger = logging.getLogger(__name__)

DEFAULT_BUCKET_WIDTH_MS = 60_000

DiagnosticHandler = Callable[[Diagnostic], None]


class LateTradePolicy(str, Enum):
    """Handling of a trade whose bucket is older than the tail candle"""
    DROP = "drop"
    MERGE = "merge"


class TradeAggregator:
    """
    Aggregates trades into a bounded candle series (source A).

    Example usage:
        aggregator = TradeAggregator(bucket_width_ms=60_000)
        aggregator.ingest(Trade(timestamp=1000, price=5.0, size=1.0, side=TradeSide.BUY))
        candles = aggregator.series()
    """

    def __init__(
        self,
        bucket_width_ms: int = DEFAULT_BUCKET_WIDTH_MS,
        max_length: int = DEFAULT_MAX_SERIES_LENGTH,
        late_trade_policy: LateTradePolicy = LateTradePolicy.DROP,
        on_diagnostic: Optional[DiagnosticHandler] = None,
        source: str = "direct",
    ):
        """
        Args:
            bucket_width_ms: Candle width in milliseconds
            max_length: Maximum number of candles retained
            late_trade_policy: DROP keeps only-the-tail-updates semantics,
                MERGE folds late trades into their retained bucket
            on_diagnostic: Receives a Diagnostic for every dropped input
            source: Label attached to diagnostics
        """
        if bucket_width_ms <= 0:
            raise ValueError(f"bucket_width_ms must be positive, got {bucket_width_ms}")

        self.bucket_width_ms = bucket_width_ms
        self.late_trade_policy = LateTradePolicy(late_trade_policy)
        self.source = source
        self._on_diagnostic = on_diagnostic
        self._series = CandleSeries(max_length)

        # Metrics
        self._trades_ingested = 0
        self._trades_dropped = 0

    @property
    def trades_ingested(self) -> int:
        return self._trades_ingested

    @property
    def trades_dropped(self) -> int:
        return self._trades_dropped

    def series(self) -> Tuple[Candle, ...]:
        """Current candles, oldest first"""
        return self._series.snapshot()

    def ingest(self, trade: Trade) -> Tuple[Candle, ...]:
        """
        Fold one trade into the series.

        Args:
            trade: Decoded trade

        Returns:
            Snapshot of the updated series
        """
        bucket_start = bucket_start_for(trade.timestamp, self.bucket_width_ms)
        last = self._series.last()

        if last is not None and last.bucket_start == bucket_start:
            self._series.replace_last(last.with_trade(trade))
        elif last is None or bucket_start > last.bucket_start:
            # deque maxlen evicts the oldest candle
            self._series.append(Candle.from_trade(trade, bucket_start))
            logger.debug(f"Opened {self.source} candle at {bucket_start}")
        elif not self._ingest_late(trade, bucket_start, last):
            return self._series.snapshot()

        self._trades_ingested += 1
        return self._series.snapshot()

    def ingest_batch(self, trades: Iterable[Union[Trade, Mapping[str, Any]]]) -> Tuple[Candle, ...]:
        """
        Fold a batch of trades left to right.

        Raw records are decoded strictly; a malformed record is dropped with
        a diagnostic and the rest of the batch is still applied.

        Args:
            trades: Trades or raw trade records, in arrival order

        Returns:
            Snapshot of the updated series
        """
        if isinstance(trades, (str, bytes, Mapping)) or not isinstance(trades, Iterable):
            self._report(DiagnosticKind.MALFORMED_INPUT, f"Trade batch is not a list: {trades!r}")
            return self._series.snapshot()

        records = list(trades)
        if not records:
            self._report(DiagnosticKind.EMPTY_BATCH, "Received empty trade batch")
            return self._series.snapshot()

        for record in records:
            if isinstance(record, Trade):
                trade = record
            else:
                try:
                    trade = Trade.from_dict(record)
                except MalformedInputError as e:
                    self._trades_dropped += 1
                    self._report(DiagnosticKind.MALFORMED_INPUT, f"Dropped trade: {e}")
                    continue
            self.ingest(trade)

        return self._series.snapshot()

    def _ingest_late(self, trade: Trade, bucket_start: int, last: Candle) -> bool:
        """Apply the late-trade policy. Returns True if the trade was folded in."""
        if self.late_trade_policy is LateTradePolicy.DROP:
            self._trades_dropped += 1
            self._report(
                DiagnosticKind.LATE_TRADE,
                f"Dropped late trade {trade.trade_id or '?'} for bucket {bucket_start} "
                f"(tail is {last.bucket_start})",
            )
            return False

        index = self._series.index_of(bucket_start)
        if index is not None:
            self._series.replace_at(index, self._series[index].with_trade(trade))
            logger.debug(f"Merged late trade into {self.source} candle at {bucket_start}")
            return True

        oldest = self._series.first()
        if self._series.is_full() and bucket_start < oldest.bucket_start:
            self._trades_dropped += 1
            self._report(
                DiagnosticKind.LATE_TRADE,
                f"Dropped late trade {trade.trade_id or '?'} for bucket {bucket_start} "
                f"(older than retained window starting {oldest.bucket_start})",
            )
            return False

        candles = sorted(
            [*self._series, Candle.from_trade(trade, bucket_start)],
            key=lambda c: c.bucket_start,
        )
        self._series.reset(candles)
        logger.debug(f"Inserted late {self.source} candle at {bucket_start}")
        return True

    def _report(self, kind: DiagnosticKind, message: str) -> None:
        level = logging.INFO if kind is DiagnosticKind.EMPTY_BATCH else logging.WARNING
        logger.log(level, f"[{self.source}] {message}")
        if self._on_diagnostic is not None:
            self._on_diagnostic(Diagnostic(kind=kind, source=self.source, message=message))
