"""
Reconciliation Schemas

Agreement metrics between the two candle series and the diagnostics
reported when input is dropped.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Metrics:
    """
    Agreement snapshot between the direct and indexed series.

    Derived, stateless: recomputed from scratch whenever either series
    changes. matched_fraction counts every source-A bucket with a
    same-timestamp counterpart; the deviation average only covers matched
    buckets whose source-A close is non-zero.
    """
    matched_fraction: float = 0.0
    mean_price_deviation_bps: float = 0.0
    compared_count: int = 0
    matched_count: int = 0
    deviation_count: int = 0
    zero_close_skips: int = 0

    @property
    def matched_pct(self) -> int:
        """Match rate as a whole percentage"""
        return round(self.matched_fraction * 100)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "matched_fraction": self.matched_fraction,
            "matched_pct": self.matched_pct,
            "mean_price_deviation_bps": self.mean_price_deviation_bps,
            "compared_count": self.compared_count,
            "matched_count": self.matched_count,
            "deviation_count": self.deviation_count,
            "zero_close_skips": self.zero_close_skips,
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class BucketComparison:
    """One matched bucket, side by side"""
    bucket_start: int
    close_a: float
    close_b: float
    deviation_bps: Optional[float]  # None when close_a is zero

    def to_dict(self) -> dict:
        return {
            "bucket_start": self.bucket_start,
            "close_a": self.close_a,
            "close_b": self.close_b,
            "deviation_bps": self.deviation_bps,
        }


class DiagnosticKind(Enum):
    """Why a record or batch did not change aggregation state"""
    MALFORMED_INPUT = "malformed_input"
    EMPTY_BATCH = "empty_batch"
    LATE_TRADE = "late_trade"
    STATUS = "status"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal event surfaced to the presentation layer"""
    kind: DiagnosticKind
    source: str
    message: str
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "source": self.source,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
