"""
Market Data Types

Trade prints and OHLCV candles consumed by the aggregators.
Timestamps are integer epoch milliseconds throughout.

The from_dict constructors are the strict decode step at the feed boundary:
anything that is not a finite number where a number is required raises
MalformedInputError before the record reaches an aggregator.
"""

import json
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from schemas.errors import MalformedInputError


class TradeSide(Enum):
    """Aggressor side of a trade"""
    BUY = "buy"
    SELL = "sell"

    @classmethod
    def parse(cls, value: Any) -> "TradeSide":
        """Accept 'buy'/'sell' as well as the exchange shorthand 'B'/'A'"""
        if isinstance(value, TradeSide):
            return value
        raw = str(value).strip().lower()
        if raw in ("buy", "b", "bid"):
            return cls.BUY
        if raw in ("sell", "a", "s", "ask"):
            return cls.SELL
        raise MalformedInputError(f"Unknown trade side: {value!r}", field="side")


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# datetime can only represent years 1 through 9999
MIN_EPOCH_MS = (datetime.min.replace(tzinfo=timezone.utc) - EPOCH) // timedelta(milliseconds=1)
MAX_EPOCH_MS = (datetime.max.replace(tzinfo=timezone.utc) - EPOCH) // timedelta(milliseconds=1)


def _require_number(data: Mapping[str, Any], key: str) -> float:
    """Read a required finite number from a decoded record."""
    if key not in data or data[key] is None:
        raise MalformedInputError(f"Missing required field: {key}", field=key, record=data)

    value = data[key]
    # bool is an int subclass; a flag is never a price
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise MalformedInputError(f"Field {key} is not numeric: {value!r}", field=key, record=data)

    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except ValueError:
        raise MalformedInputError(f"Field {key} is not numeric: {value!r}", field=key, record=data)
    except OverflowError:
        raise MalformedInputError(f"Field {key} is out of range", field=key, record=data)

    if not math.isfinite(number):
        raise MalformedInputError(f"Field {key} is not finite: {value!r}", field=key, record=data)
    return number


def _parse_epoch_ms(value: Any, key: str) -> int:
    """
    Convert a timestamp to epoch milliseconds.

    Accepts integer/float milliseconds, numeric strings, ISO-8601 strings
    (a trailing 'Z' is treated as UTC; naive values are taken as UTC) and
    datetime objects. Values outside the years 1-9999 are rejected.
    """
    if value is None:
        raise MalformedInputError(f"Missing required field: {key}", field=key)

    if isinstance(value, bool):
        raise MalformedInputError(f"Field {key} is not a timestamp: {value!r}", field=key)

    if isinstance(value, datetime):
        millis = _datetime_to_ms(value)
    elif isinstance(value, int):
        millis = value
    elif isinstance(value, (float, str)):
        text = value.strip() if isinstance(value, str) else value
        try:
            number = float(text)
        except ValueError:
            try:
                moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                raise MalformedInputError(f"Field {key} is not a timestamp: {value!r}", field=key)
            millis = _datetime_to_ms(moment)
        else:
            if not math.isfinite(number):
                raise MalformedInputError(f"Field {key} is not finite: {value!r}", field=key)
            millis = int(number)
    else:
        raise MalformedInputError(f"Field {key} is not a timestamp: {value!r}", field=key)

    if not MIN_EPOCH_MS <= millis <= MAX_EPOCH_MS:
        raise MalformedInputError(f"Field {key} is out of range: {value!r}", field=key)
    return millis


def _datetime_to_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - EPOCH) // timedelta(milliseconds=1)


def bucket_start_for(timestamp_ms: int, bucket_width_ms: int) -> int:
    """Truncate a timestamp to the start of its bucket"""
    return (timestamp_ms // bucket_width_ms) * bucket_width_ms


@dataclass(frozen=True)
class Trade:
    """A single execution report from the direct feed"""
    timestamp: int
    price: float
    size: float
    side: TradeSide
    trade_id: str = ""

    @property
    def time(self) -> datetime:
        return EPOCH + timedelta(milliseconds=self.timestamp)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "timestamp": self.timestamp,
            "price": self.price,
            "size": self.size,
            "side": self.side.value,
            "trade_id": self.trade_id,
        }

    def to_json(self) -> str:
        """Serialize to JSON string"""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Trade":
        """
        Strictly decode a trade record.

        Raises:
            MalformedInputError: If a required field is missing, non-numeric,
                non-finite, or price/size is not positive
        """
        if not isinstance(data, Mapping):
            raise MalformedInputError(f"Trade record is not an object: {data!r}", record=data)

        timestamp = _parse_epoch_ms(data.get("timestamp"), "timestamp")
        price = _require_number(data, "price")
        size = _require_number(data, "size")
        if price <= 0:
            raise MalformedInputError(f"Trade price must be positive: {price}", field="price", record=data)
        if size <= 0:
            raise MalformedInputError(f"Trade size must be positive: {size}", field="size", record=data)

        trade_id = data.get("trade_id")
        return cls(
            timestamp=timestamp,
            price=price,
            size=size,
            side=TradeSide.parse(data.get("side")),
            trade_id="" if trade_id is None else str(trade_id),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Trade":
        """Deserialize from JSON string"""
        return cls.from_dict(json.loads(json_str))


@dataclass(frozen=True)
class Candle:
    """OHLCV statistics for one fixed-width time bucket"""
    bucket_start: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    trade_count: int = 0  # 0 for candles aggregated upstream

    @property
    def time(self) -> datetime:
        return EPOCH + timedelta(milliseconds=self.bucket_start)

    @classmethod
    def from_trade(cls, trade: Trade, bucket_start: int) -> "Candle":
        """Open a new candle from the first trade in a bucket"""
        return cls(
            bucket_start=bucket_start,
            open=trade.price,
            high=trade.price,
            low=trade.price,
            close=trade.price,
            volume=trade.size,
            trade_count=1,
        )

    def with_trade(self, trade: Trade) -> "Candle":
        """Return this candle with one more trade folded in"""
        return Candle(
            bucket_start=self.bucket_start,
            open=self.open,
            high=max(self.high, trade.price),
            low=min(self.low, trade.price),
            close=trade.price,
            volume=self.volume + trade.size,
            trade_count=self.trade_count + 1,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "bucket_start": self.bucket_start,
            "time": self.time.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "trade_count": self.trade_count,
        }

    def to_json(self) -> str:
        """Serialize to JSON string"""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], bucket_width_ms: Optional[int] = None) -> "Candle":
        """
        Strictly decode a candle record.

        Args:
            data: Record with bucket_start (or timestamp), open, high, low,
                close and optional volume
            bucket_width_ms: When given, the bucket start is truncated to a
                multiple of this width

        Raises:
            MalformedInputError: If a required field is missing, non-numeric,
                non-finite, or volume is negative
        """
        if not isinstance(data, Mapping):
            raise MalformedInputError(f"Candle record is not an object: {data!r}", record=data)

        raw_start = data.get("bucket_start")
        if raw_start is None:
            raw_start = data.get("timestamp")
        bucket_start = _parse_epoch_ms(raw_start, "bucket_start")
        if bucket_width_ms:
            bucket_start = bucket_start_for(bucket_start, bucket_width_ms)

        volume = _require_number(data, "volume") if data.get("volume") is not None else 0.0
        if volume < 0:
            raise MalformedInputError(f"Candle volume is negative: {volume}", field="volume", record=data)

        trade_count = data.get("trade_count") or 0
        return cls(
            bucket_start=bucket_start,
            open=_require_number(data, "open"),
            high=_require_number(data, "high"),
            low=_require_number(data, "low"),
            close=_require_number(data, "close"),
            volume=volume,
            trade_count=int(trade_count) if isinstance(trade_count, int) else 0,
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Candle":
        """Deserialize from JSON string"""
        return cls.from_dict(json.loads(json_str))
