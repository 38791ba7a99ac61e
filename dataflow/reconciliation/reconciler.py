"""
Reconciler

Pure recomputation of agreement metrics between two candle series.
Holds no state; call compute() again whenever either series changes.
"""

import logging
from typing import Dict, Iterable, List

from schemas.market_data import Candle
from schemas.reconciliation import BucketComparison, Metrics

logger = logging.getLogger(__name__)

BPS = 10_000


class Reconciler:
    """
    Matches candles by identical bucket start.

    A matched bucket whose source-A close is zero still counts toward
    matched_fraction but is left out of the deviation average.
    """

    @staticmethod
    def _index(series: Iterable[Candle]) -> Dict[int, Candle]:
        return {candle.bucket_start: candle for candle in series}

    def compare(self, series_a: Iterable[Candle], series_b: Iterable[Candle]) -> List[BucketComparison]:
        """
        Pair up matched buckets.

        Args:
            series_a: Direct series
            series_b: Indexed series

        Returns:
            One BucketComparison per source-A candle with a counterpart in
            series_b, in source-A order
        """
        by_bucket = self._index(series_b)
        rows = []
        for candle_a in series_a:
            candle_b = by_bucket.get(candle_a.bucket_start)
            if candle_b is None:
                continue
            if candle_a.close == 0:
                deviation = None
            else:
                deviation = abs(candle_a.close - candle_b.close) / candle_a.close * BPS
            rows.append(BucketComparison(
                bucket_start=candle_a.bucket_start,
                close_a=candle_a.close,
                close_b=candle_b.close,
                deviation_bps=deviation,
            ))
        return rows

    def compute(self, series_a: Iterable[Candle], series_b: Iterable[Candle]) -> Metrics:
        """
        Compute match rate and mean close deviation.

        Returns:
            Zeroed Metrics if either series is empty
        """
        series_a = list(series_a)
        series_b = list(series_b)
        if not series_a or not series_b:
            return Metrics(compared_count=len(series_a))

        rows = self.compare(series_a, series_b)
        deviations = [row.deviation_bps for row in rows if row.deviation_bps is not None]

        metrics = Metrics(
            matched_fraction=len(rows) / len(series_a),
            mean_price_deviation_bps=sum(deviations) / len(deviations) if deviations else 0.0,
            compared_count=len(series_a),
            matched_count=len(rows),
            deviation_count=len(deviations),
            zero_close_skips=len(rows) - len(deviations),
        )
        logger.debug(
            f"Reconciled {metrics.matched_count}/{metrics.compared_count} buckets, "
            f"mean deviation {metrics.mean_price_deviation_bps:.2f} bps"
        )
        return metrics
