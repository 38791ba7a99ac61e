"""Shared builders and fakes for the test suite"""

import asyncio
import json

from schemas.market_data import Candle, Trade, TradeSide


def make_trade(timestamp, price, size=1.0, side=TradeSide.BUY, trade_id=""):
    return Trade(timestamp=timestamp, price=price, size=size, side=side, trade_id=trade_id)


def make_candle(bucket_start, close, open=None, high=None, low=None, volume=1.0):
    open = close if open is None else open
    return Candle(
        bucket_start=bucket_start,
        open=open,
        high=max(open, close) if high is None else high,
        low=min(open, close) if low is None else low,
        close=close,
        volume=volume,
    )


def collect(async_iterable):
    """Drain an async iterator into a list"""
    async def drain():
        return [item async for item in async_iterable]
    return asyncio.run(drain())


class FakeWebSocket:
    """Scripted server messages; records everything the client sends"""

    def __init__(self, messages):
        self.messages = [m if isinstance(m, str) else json.dumps(m) for m in messages]
        self.sent = []

    async def send(self, data):
        self.sent.append(json.loads(data))

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message


class FakeConnection:
    """Async context manager standing in for websockets.connect()"""

    def __init__(self, ws=None, error=None):
        self.ws = ws
        self.error = error

    async def __aenter__(self):
        if self.error is not None:
            raise self.error
        return self.ws

    async def __aexit__(self, *exc):
        return False


