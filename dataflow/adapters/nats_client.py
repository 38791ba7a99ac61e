"""
NATS Client Adapter

Async NATS client for publishing reconciliation snapshots so other
services can render or record them.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import nats
from nats.aio.client import Client as NatsConnection

logger = logging.getLogger(__name__)


@dataclass
class NatsConfig:
    """NATS connection configuration"""
    servers: list[str] = field(default_factory=lambda: ["nats://localhost:4222"])
    name: str = "candle-reconciler"
    reconnect_time_wait: float = 2.0
    max_reconnect_attempts: int = -1  # Infinite reconnects
    ping_interval: int = 20
    max_outstanding_pings: int = 3


class NatsClient:
    """
    Async NATS client wrapper.

    Topic Patterns:
    - candles.{symbol}.{source}          - Candle series snapshot per source
    - reconciliation.{symbol}.metrics    - Agreement metrics
    """

    def __init__(self, config: Optional[NatsConfig] = None):
        self.config = config or NatsConfig()
        self._nc: Optional[NatsConnection] = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if client is connected"""
        return self._connected and self._nc is not None and self._nc.is_connected

    async def connect(self) -> None:
        """Establish connection to NATS server"""
        if self._connected:
            return

        async def error_handler(e):
            logger.error(f"NATS error: {e}")

        async def closed_handler():
            logger.warning("NATS connection closed")
            self._connected = False

        async def reconnected_handler():
            logger.info("NATS reconnected")
            self._connected = True

        async def disconnected_handler():
            logger.warning("NATS disconnected")
            self._connected = False

        try:
            self._nc = await nats.connect(
                servers=self.config.servers,
                name=self.config.name,
                reconnect_time_wait=self.config.reconnect_time_wait,
                max_reconnect_attempts=self.config.max_reconnect_attempts,
                ping_interval=self.config.ping_interval,
                max_outstanding_pings=self.config.max_outstanding_pings,
                error_cb=error_handler,
                closed_cb=closed_handler,
                reconnected_cb=reconnected_handler,
                disconnected_cb=disconnected_handler,
            )
            self._connected = True
            logger.info(f"Connected to NATS: {self.config.servers}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    async def close(self) -> None:
        """Close NATS connection"""
        if self._nc:
            await self._nc.drain()
            self._connected = False
            logger.info("NATS connection closed")

    async def publish(self, subject: str, data: bytes) -> None:
        """
        Publish data to a NATS subject.

        Args:
            subject: NATS subject (e.g., "candles.HYPE.direct")
            data: Bytes payload (typically JSON)
        """
        if not self.is_connected:
            raise RuntimeError("NATS client not connected")
        await self._nc.publish(subject, data)
        logger.debug(f"Published to {subject}: {len(data)} bytes")

    async def publish_json(self, subject: str, data: str) -> None:
        """Publish JSON string to a NATS subject."""
        await self.publish(subject, data.encode("utf-8"))


# Topic helpers
class Topics:
    """NATS topic name builders"""

    @staticmethod
    def _sanitize(name: str) -> str:
        """
        Sanitize a name for use in NATS topics.

        Segments may only contain alphanumerics, hyphens and underscores;
        anything else becomes an underscore.
        """
        return "".join(c if c.isalnum() or c in "-_" else "_" for c in name)

    @staticmethod
    def candles(symbol: str, source: str) -> str:
        """Candle series topic for a symbol and source"""
        return f"candles.{Topics._sanitize(symbol)}.{Topics._sanitize(source)}"

    @staticmethod
    def metrics(symbol: str) -> str:
        """Reconciliation metrics topic"""
        return f"reconciliation.{Topics._sanitize(symbol)}.metrics"


class SnapshotPublisher:
    """
    Publishes session snapshots after each ingest.

    Publishing is fire-and-forget from the session's point of view: the
    session listener only schedules publish(); failures are logged here.
    """

    def __init__(self, nats_client: Any, symbol: str):
        self.nats = nats_client
        self.symbol = symbol
        self._published = 0

    @property
    def published(self) -> int:
        return self._published

    async def publish(self, source: str, candles: list, metrics: dict) -> None:
        """
        Publish one source's candle series and the current metrics.

        Args:
            source: "direct" or "indexed"
            candles: Candle dicts, oldest first
            metrics: Metrics dict
        """
        try:
            await self.nats.publish_json(Topics.candles(self.symbol, source), json.dumps(candles))
            await self.nats.publish_json(Topics.metrics(self.symbol), json.dumps(metrics))
            self._published += 1
        except Exception as e:
            logger.error(f"Failed to publish {source} snapshot: {e}")
