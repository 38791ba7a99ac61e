from datetime import datetime, timezone

import pytest

from schemas import MalformedInputError
from schemas.market_data import Candle, Trade, TradeSide, bucket_start_for


def test_trade_from_exchange_strings():
    trade = Trade.from_dict({
        "timestamp": 1_700_000_000_123,
        "price": "25.125",
        "size": "3.5",
        "side": "B",
        "trade_id": 991,
    })

    assert trade.price == 25.125
    assert trade.size == 3.5
    assert trade.side is TradeSide.BUY
    assert trade.trade_id == "991"


def test_trade_json_round_trip():
    trade = Trade(timestamp=1000, price=5.0, size=1.0, side=TradeSide.SELL, trade_id="x")

    assert Trade.from_json(trade.to_json()) == trade


@pytest.mark.parametrize("field, value", [
    ("price", None),
    ("price", "abc"),
    ("price", float("nan")),
    ("price", "inf"),
    ("price", True),
    ("price", 0),
    ("size", -1),
    ("timestamp", "yesterday"),
    ("side", "sideways"),
])
def test_trade_rejects_bad_fields(field, value):
    record = {"timestamp": 1000, "price": 5, "size": 1, "side": "buy"}
    record[field] = value

    with pytest.raises(MalformedInputError) as exc:
        Trade.from_dict(record)
    assert exc.value.field == field


def test_trade_rejects_non_object():
    with pytest.raises(MalformedInputError):
        Trade.from_dict(["not", "a", "trade"])


def test_candle_accepts_iso_timestamp():
    candle = Candle.from_dict({
        "timestamp": "2024-01-01T00:01:00Z",
        "open": 1, "high": 2, "low": 0.5, "close": 1.5, "volume": 10,
    })

    assert candle.bucket_start == 1_704_067_260_000
    assert candle.time == datetime(2024, 1, 1, 0, 1, tzinfo=timezone.utc)
    assert candle.trade_count == 0


def test_candle_prefers_bucket_start_and_truncates():
    candle = Candle.from_dict(
        {"bucket_start": 61_234, "timestamp": 0, "open": 1, "high": 1, "low": 1, "close": 1},
        bucket_width_ms=60_000,
    )

    assert candle.bucket_start == 60_000


def test_candle_missing_volume_defaults_to_zero():
    candle = Candle.from_dict({"timestamp": 0, "open": 1, "high": 1, "low": 1, "close": 1})

    assert candle.volume == 0.0


def test_candle_rejects_negative_volume():
    with pytest.raises(MalformedInputError) as exc:
        Candle.from_dict({"timestamp": 0, "open": 1, "high": 1, "low": 1, "close": 1, "volume": -2})
    assert exc.value.field == "volume"


def test_candle_rejects_missing_close():
    with pytest.raises(MalformedInputError) as exc:
        Candle.from_dict({"timestamp": 0, "open": 1, "high": 1, "low": 1})
    assert exc.value.field == "close"


def test_with_trade_keeps_ohlc_invariant():
    candle = Candle.from_trade(Trade(1000, 5.0, 1.0, TradeSide.BUY), 0)
    for price in (7.0, 3.0, 6.0):
        candle = candle.with_trade(Trade(2000, price, 1.0, TradeSide.SELL))

    assert candle.low <= min(candle.open, candle.close)
    assert max(candle.open, candle.close) <= candle.high
    assert (candle.open, candle.high, candle.low, candle.close, candle.volume) == (5.0, 7.0, 3.0, 6.0, 4.0)


def test_bucket_start_for_boundaries():
    assert bucket_start_for(60_000, 60_000) == 60_000
    assert bucket_start_for(59_999, 60_000) == 0


@pytest.mark.parametrize("field, value", [
    ("price", 10 ** 400),
    ("size", 10 ** 400),
    ("timestamp", 10 ** 400),
    ("timestamp", 10 ** 17),
    ("timestamp", -(10 ** 17)),
    ("timestamp", "1e17"),
])
def test_trade_rejects_out_of_range_numbers(field, value):
    record = {"timestamp": 1000, "price": 5, "size": 1, "side": "buy"}
    record[field] = value

    with pytest.raises(MalformedInputError) as exc:
        Trade.from_dict(record)
    assert exc.value.field == field


def test_candle_rejects_out_of_range_values():
    base = {"timestamp": 0, "open": 1, "high": 1, "low": 1, "close": 1}

    with pytest.raises(MalformedInputError) as exc:
        Candle.from_dict(dict(base, close=10 ** 400))
    assert exc.value.field == "close"

    with pytest.raises(MalformedInputError) as exc:
        Candle.from_dict(dict(base, timestamp=10 ** 17))
    assert exc.value.field == "bucket_start"


def test_candle_at_latest_representable_time_serializes():
    candle = Candle.from_dict(
        {"timestamp": "9999-12-31T23:59:00Z", "open": 1, "high": 1, "low": 1, "close": 1},
        bucket_width_ms=60_000,
    )

    assert candle.to_dict()["time"].startswith("9999-12-31T23:59:00")
