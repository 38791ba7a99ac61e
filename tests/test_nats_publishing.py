import asyncio
import json

from dataflow.adapters.nats_client import NatsClient, SnapshotPublisher, Topics
from engine.runtime.main import attach_publisher


class FakeNats:
    def __init__(self, fail=False):
        self.fail = fail
        self.messages = []

    async def publish_json(self, subject, data):
        if self.fail:
            raise RuntimeError("NATS client not connected")
        self.messages.append((subject, json.loads(data)))


def test_topics_are_sanitized():
    assert Topics.candles("HYPE", "direct") == "candles.HYPE.direct"
    assert Topics.candles("HYPE/USD perp", "indexed") == "candles.HYPE_USD_perp.indexed"
    assert Topics.metrics("HYPE") == "reconciliation.HYPE.metrics"


def test_publisher_sends_series_and_metrics():
    nats = FakeNats()
    publisher = SnapshotPublisher(nats, "HYPE")

    asyncio.run(publisher.publish("direct", [{"bucket_start": 0}], {"matched_fraction": 0.5}))

    assert nats.messages == [
        ("candles.HYPE.direct", [{"bucket_start": 0}]),
        ("reconciliation.HYPE.metrics", {"matched_fraction": 0.5}),
    ]
    assert publisher.published == 1


def test_publisher_swallows_transport_failure():
    publisher = SnapshotPublisher(FakeNats(fail=True), "HYPE")

    asyncio.run(publisher.publish("indexed", [], {}))

    assert publisher.published == 0


def test_session_updates_are_published(session):
    nats = FakeNats()
    attach_publisher(session, SnapshotPublisher(nats, session.symbol))

    async def feed():
        session.ingest_trades([{"timestamp": 0, "price": 5, "size": 1, "side": "B"}])
        session.ingest_candles([{"timestamp": 0, "open": 5, "high": 5, "low": 5, "close": 5.05}])
        await asyncio.sleep(0)
        await asyncio.sleep(0)

    asyncio.run(feed())

    subjects = [subject for subject, _ in nats.messages]
    assert "candles.HYPE.direct" in subjects
    assert "candles.HYPE.indexed" in subjects
    assert nats.messages[-1][1]["matched_fraction"] == 1.0


def test_unconnected_client_reports_state():
    client = NatsClient()

    assert client.is_connected is False
