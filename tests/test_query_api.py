import pytest
from fastapi.testclient import TestClient

from dataflow.query.api.main import create_app


@pytest.fixture
def client(session):
    session.ingest_trades([
        {"timestamp": 60_000, "price": "10", "size": "1", "side": "B", "trade_id": 1},
        {"timestamp": 120_000, "price": "11", "size": "2", "side": "A", "trade_id": 2},
    ])
    session.ingest_candles([
        {"timestamp": 60_000, "open": 10, "high": 10.1, "low": 10, "close": 10.1, "volume": 5},
    ])
    return TestClient(create_app(session))


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"

    health = client.get("/health").json()
    assert health["symbol"] == "HYPE"
    assert health["counters"]["trades_ingested"] == 2


def test_series_endpoint(client):
    body = client.get("/series/direct").json()

    assert body["source"] == "direct"
    assert body["count"] == 2
    assert [c["bucket_start"] for c in body["candles"]] == [60_000, 120_000]

    limited = client.get("/series/direct", params={"limit": 1}).json()
    assert [c["bucket_start"] for c in limited["candles"]] == [120_000]

    indexed = client.get("/series/indexed").json()
    assert indexed["candles"][0]["close"] == 10.1
    assert indexed["candles"][0]["trade_count"] == 0


def test_unknown_source_is_404(client):
    assert client.get("/series/coinbase").status_code == 404


def test_metrics_endpoint(client):
    body = client.get("/metrics").json()

    assert body["matched_fraction"] == 0.5
    assert body["matched_pct"] == 50
    assert body["mean_price_deviation_bps"] == pytest.approx(100)


def test_comparison_endpoint(client):
    (row,) = client.get("/comparison").json()

    assert row["bucket_start"] == 60_000
    assert row["close_a"] == 10
    assert row["close_b"] == 10.1


def test_trades_newest_first(client):
    trades = client.get("/trades").json()

    assert [t["trade_id"] for t in trades] == ["2", "1"]
    assert trades[0]["side"] == "sell"


def test_diagnostics_endpoint(client, session):
    session.log("hyperliquid", "connected")

    (entry,) = client.get("/diagnostics").json()
    assert entry == {
        "kind": "status",
        "source": "hyperliquid",
        "message": "connected",
        "timestamp": entry["timestamp"],
    }
