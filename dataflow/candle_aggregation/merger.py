"""
Candle Merger

Merges pre-aggregated candle batches from the indexed feed (source B).

The provider may resend or revise buckets and deliver them out of order,
so every record replaces whatever is stored under the same bucket start.
Re-ingesting a batch is a no-op.
"""

import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

from dataflow.candle_aggregation.series import CandleSeries, DEFAULT_MAX_SERIES_LENGTH
from schemas.errors import MalformedInputError
from schemas.market_data import Candle
from schemas.reconciliation import Diagnostic, DiagnosticKind

logger = logging.getLogger(__name__)


class CandleMerger:
    """
    Replace-by-key candle store.

    After each batch the series is sorted ascending by bucket start and
    truncated to the newest max_length candles.
    """

    def __init__(
        self,
        bucket_width_ms: Optional[int] = None,
        max_length: int = DEFAULT_MAX_SERIES_LENGTH,
        on_diagnostic: Optional[Callable[[Diagnostic], None]] = None,
        source: str = "indexed",
    ):
        """
        Args:
            bucket_width_ms: If set, incoming bucket starts are truncated to
                this width so they line up with the direct series
            max_length: Maximum number of candles retained
            on_diagnostic: Receives a Diagnostic for every dropped input
            source: Label attached to diagnostics
        """
        self.bucket_width_ms = bucket_width_ms
        self.source = source
        self._on_diagnostic = on_diagnostic
        self._series = CandleSeries(max_length)

        # Metrics
        self._candles_merged = 0
        self._candles_dropped = 0

    @property
    def candles_merged(self) -> int:
        return self._candles_merged

    @property
    def candles_dropped(self) -> int:
        return self._candles_dropped

    def series(self) -> Tuple[Candle, ...]:
        """Current candles, oldest first"""
        return self._series.snapshot()

    def ingest(self, batch: Iterable[Union[Candle, Mapping[str, Any]]]) -> Tuple[Candle, ...]:
        """
        Merge one batch of candles.

        Args:
            batch: Candles or raw candle records, any order

        Returns:
            Snapshot of the updated series
        """
        if isinstance(batch, (str, bytes, Mapping)) or not isinstance(batch, Iterable):
            self._report(DiagnosticKind.MALFORMED_INPUT, f"Candle batch is not a list: {batch!r}")
            return self._series.snapshot()

        records = list(batch)
        if not records:
            self._report(DiagnosticKind.EMPTY_BATCH, "Received empty candle batch")
            return self._series.snapshot()

        merged: Dict[int, Candle] = {c.bucket_start: c for c in self._series}
        accepted = 0

        for record in records:
            try:
                candle = self._decode(record)
            except MalformedInputError as e:
                self._candles_dropped += 1
                self._report(DiagnosticKind.MALFORMED_INPUT, f"Dropped candle: {e}")
                continue

            if candle.bucket_start in merged:
                logger.debug(f"Revised {self.source} candle at {candle.bucket_start}")
            merged[candle.bucket_start] = candle
            accepted += 1

        if accepted:
            ordered = sorted(merged.values(), key=lambda c: c.bucket_start)
            self._series.reset(ordered)
            self._candles_merged += accepted
            logger.debug(
                f"Merged {accepted}/{len(records)} {self.source} candles "
                f"(series length: {len(self._series)})"
            )

        return self._series.snapshot()

    def _decode(self, record: Union[Candle, Mapping[str, Any]]) -> Candle:
        if isinstance(record, Candle):
            if self.bucket_width_ms and record.bucket_start % self.bucket_width_ms:
                return Candle.from_dict(record.to_dict(), bucket_width_ms=self.bucket_width_ms)
            return record
        return Candle.from_dict(record, bucket_width_ms=self.bucket_width_ms)

    def _report(self, kind: DiagnosticKind, message: str) -> None:
        level = logging.INFO if kind is DiagnosticKind.EMPTY_BATCH else logging.WARNING
        logger.log(level, f"[{self.source}] {message}")
        if self._on_diagnostic is not None:
            self._on_diagnostic(Diagnostic(kind=kind, source=self.source, message=message))
