"""
WebSocket Feed Base

Connection lifecycle shared by the two market-data feeds: connect,
consume until the socket drops, reconnect with capped exponential backoff.
The aggregation core only ever sees the decoded batches.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Callable, List, Optional

import websockets

logger = logging.getLogger(__name__)

StatusHandler = Callable[[str, str], None]


class FeedError(RuntimeError):
    """Raised by a feed when the remote side reports a stream error"""


class WebSocketFeed:
    """
    Base for reconnecting WebSocket feeds.

    Subclasses implement _consume(ws), an async generator that performs the
    subscription handshake and yields batches of raw records.
    """

    name = "feed"
    subprotocols: Optional[List[str]] = None

    def __init__(
        self,
        ws_url: str,
        reconnect_backoff_s: float = 1.0,
        max_backoff_s: float = 30.0,
        on_status: Optional[StatusHandler] = None,
    ):
        self.ws_url = ws_url
        self.reconnect_backoff_s = reconnect_backoff_s
        self.max_backoff_s = max_backoff_s
        self._on_status = on_status
        self._completed = False

    def _status(self, message: str) -> None:
        if self._on_status is not None:
            self._on_status(self.name, message)
        else:
            logger.info(f"[{self.name}] {message}")

    def _connect(self):
        if self.subprotocols:
            return websockets.connect(
                self.ws_url, subprotocols=self.subprotocols, ping_interval=20, ping_timeout=20
            )
        return websockets.connect(self.ws_url, ping_interval=20, ping_timeout=20)

    async def _consume(self, ws: Any) -> AsyncIterator[List[Any]]:
        raise NotImplementedError
        yield  # pragma: no cover

    async def batches(self) -> AsyncIterator[List[Any]]:
        """Yield record batches until the remote completes the stream"""
        backoff = self.reconnect_backoff_s
        while not self._completed:
            try:
                async with self._connect() as ws:
                    self._status("connected")
                    backoff = self.reconnect_backoff_s
                    async for batch in self._consume(ws):
                        yield batch
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[{self.name}] connection error: {e}")
                self._status(f"error: {e}")

            if self._completed:
                break

            self._status(f"disconnected, reconnecting in {backoff:.1f}s")
            await asyncio.sleep(backoff)
            backoff = min(self.max_backoff_s, backoff * 2)

        self._status("stream complete")
