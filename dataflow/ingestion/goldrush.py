"""
GoldRush Candle Feed

Indexed OHLCV candles over a GraphQL subscription, spoken with the
graphql-transport-ws protocol:

    client -> connection_init {payload: {GOLDRUSH_API_KEY}}
    server -> connection_ack
    client -> subscribe {id, payload: {query, variables}}
    server -> next {id, payload: {data: {ohlcvCandlesForToken: [...]}}}
    server -> error / complete
    either -> ping, answered with pong
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from dataflow.ingestion.base import FeedError, StatusHandler, WebSocketFeed

logger = logging.getLogger(__name__)

SUBPROTOCOL = "graphql-transport-ws"
SUBSCRIPTION_ID = "ohlcv-1"

CANDLE_FIELDS = """
        chain_name
        interval
        timeframe
        timestamp
        open
        high
        low
        close
        volume
        volume_usd
        quote_rate
        quote_rate_usd
        base_token {
            contract_name
            contract_address
            contract_decimals
            contract_ticker_symbol
        }"""


def build_query(chain_name: str, token_addresses: List[str], interval: str, timeframe: str) -> str:
    """Render the ohlcvCandlesForToken subscription"""
    return (
        "subscription {\n"
        "    ohlcvCandlesForToken(\n"
        f"        chain_name: {chain_name}\n"
        f"        token_addresses: {json.dumps(token_addresses)}\n"
        f"        interval: {interval}\n"
        f"        timeframe: {timeframe}\n"
        "    ) {"
        f"{CANDLE_FIELDS}\n"
        "    }\n"
        "}"
    )


def _to_record(raw: Any) -> Any:
    if not isinstance(raw, dict):
        return raw
    return {
        "timestamp": raw.get("timestamp"),
        "open": raw.get("open"),
        "high": raw.get("high"),
        "low": raw.get("low"),
        "close": raw.get("close"),
        "volume": raw.get("volume"),
    }


def extract_candles(payload: Any) -> List[Any]:
    """
    Pull candle records out of a subscription payload.

    Accepts both the standard GraphQL envelope ({"data": {...}}) and an
    already unwrapped result. Anything else yields an empty batch.
    """
    if not isinstance(payload, dict):
        return []

    candles = None
    data = payload.get("data")
    if isinstance(data, dict):
        candles = data.get("ohlcvCandlesForToken")
    if candles is None:
        candles = payload.get("ohlcvCandlesForToken")

    if not isinstance(candles, list):
        return []
    return [_to_record(c) for c in candles]


class GoldRushCandleFeed(WebSocketFeed):
    """Reconnecting OHLCV candle subscription"""

    name = "goldrush"
    subprotocols = [SUBPROTOCOL]

    def __init__(
        self,
        ws_url: str,
        api_key: str,
        chain_name: str = "HYPERCORE_MAINNET",
        token_addresses: Optional[List[str]] = None,
        interval: str = "ONE_MINUTE",
        timeframe: str = "ONE_HOUR",
        reconnect_backoff_s: float = 1.0,
        max_backoff_s: float = 30.0,
        on_status: Optional[StatusHandler] = None,
    ):
        super().__init__(ws_url, reconnect_backoff_s, max_backoff_s, on_status)
        self.api_key = api_key
        self.query = build_query(chain_name, token_addresses or ["HYPE"], interval, timeframe)

    async def _send(self, ws: Any, message: Dict[str, Any]) -> None:
        await ws.send(json.dumps(message))

    async def _consume(self, ws: Any) -> AsyncIterator[List[Any]]:
        await self._send(ws, {
            "type": "connection_init",
            "payload": {"GOLDRUSH_API_KEY": self.api_key},
        })

        async for raw in ws:
            try:
                message = json.loads(raw)
            except ValueError as e:
                logger.warning(f"[{self.name}] Undecodable message: {e}")
                continue
            if not isinstance(message, dict):
                continue

            kind = message.get("type")
            if kind == "connection_ack":
                await self._send(ws, {
                    "id": SUBSCRIPTION_ID,
                    "type": "subscribe",
                    "payload": {"query": self.query, "variables": {}},
                })
                self._status("subscribed to ohlcvCandlesForToken")
            elif kind == "ping":
                await self._send(ws, {"type": "pong"})
            elif kind == "next":
                yield extract_candles(message.get("payload"))
            elif kind == "error":
                raise FeedError(f"stream error: {json.dumps(message.get('payload'))}")
            elif kind == "complete":
                self._completed = True
                return
            else:
                logger.debug(f"[{self.name}] Ignoring {kind} message")
