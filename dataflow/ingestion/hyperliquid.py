"""
Hyperliquid Trade Feed

Direct exchange WebSocket feed of trade prints.

Subscribe:  {"method": "subscribe", "subscription": {"type": "trades", "coin": "HYPE"}}
Messages:   {"channel": "trades", "data": [{"coin", "side", "px", "sz", "time", "hash", "tid"}]}
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from dataflow.ingestion.base import StatusHandler, WebSocketFeed

logger = logging.getLogger(__name__)


def subscription_message(coin: str) -> str:
    return json.dumps({
        "method": "subscribe",
        "subscription": {"type": "trades", "coin": coin},
    })


def _to_record(raw: Any) -> Any:
    # Non-objects pass through so the strict decoder reports them
    if not isinstance(raw, dict):
        return raw
    trade_id = raw.get("tid")
    if trade_id is None:
        trade_id = raw.get("hash")
    return {
        "timestamp": raw.get("time"),
        "price": raw.get("px"),
        "size": raw.get("sz"),
        "side": raw.get("side"),
        "trade_id": trade_id,
    }


def parse_trade_message(message: Dict[str, Any]) -> Optional[List[Any]]:
    """
    Map a trades-channel message to canonical trade records.

    Returns:
        List of records, or None for messages on other channels
        (subscription acks, pongs)
    """
    if message.get("channel") != "trades":
        return None
    data = message.get("data")
    if not isinstance(data, list):
        return data
    return [_to_record(t) for t in data]


class HyperliquidTradeFeed(WebSocketFeed):
    """Reconnecting trades subscription for one coin"""

    name = "hyperliquid"

    def __init__(
        self,
        ws_url: str,
        coin: str,
        reconnect_backoff_s: float = 1.0,
        max_backoff_s: float = 30.0,
        on_status: Optional[StatusHandler] = None,
    ):
        super().__init__(ws_url, reconnect_backoff_s, max_backoff_s, on_status)
        self.coin = coin

    async def _consume(self, ws: Any) -> AsyncIterator[List[Any]]:
        await ws.send(subscription_message(self.coin))
        self._status(f"subscribed to trades for {self.coin}")

        async for raw in ws:
            try:
                message = json.loads(raw)
            except ValueError as e:
                logger.warning(f"[{self.name}] Undecodable message: {e}")
                continue
            if not isinstance(message, dict):
                continue

            batch = parse_trade_message(message)
            if batch is None:
                logger.debug(f"[{self.name}] Ignoring {message.get('channel')} message")
                continue
            yield batch
