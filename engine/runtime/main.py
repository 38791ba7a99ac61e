"""
Candle Reconciler - Main Entry Point

Runs one comparison session: both market-data feeds, the HTTP query API
and optional NATS publishing, all in one event loop.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Callable, List, Optional

import uvicorn

from dataflow.adapters.nats_client import NatsClient, NatsConfig, SnapshotPublisher
from dataflow.ingestion import GoldRushCandleFeed, HyperliquidTradeFeed
from dataflow.query.api.main import create_app
from engine.config.loader import ConfigLoader, ReconcilerConfig
from engine.runtime.session import CandleSource, ComparisonSession

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def run_trade_feed(feed: HyperliquidTradeFeed, session: ComparisonSession) -> None:
    """Apply trade batches in arrival order"""
    async for batch in feed.batches():
        _apply(feed.name, session.ingest_trades, batch, session)


async def run_candle_feed(feed: GoldRushCandleFeed, session: ComparisonSession) -> None:
    """Apply candle batches in arrival order"""
    async for batch in feed.batches():
        _apply(feed.name, session.ingest_candles, batch, session)


def _apply(source: str, ingest: Callable[[Any], Any], batch: Any, session: ComparisonSession) -> None:
    # One bad batch must not end the feed
    try:
        ingest(batch)
    except Exception as e:
        logger.exception(f"[{source}] Failed to apply batch")
        session.log(source, f"batch failed: {e}")


def supervise(task: asyncio.Task, session: ComparisonSession) -> asyncio.Task:
    """Log and record a feed task that stops on its own"""
    def on_done(done: asyncio.Task) -> None:
        if done.cancelled():
            return
        error = done.exception()
        if error is not None:
            logger.error(f"[{done.get_name()}] Feed task failed: {error!r}")
            session.log(done.get_name(), f"feed stopped: {error!r}")
        else:
            logger.info(f"[{done.get_name()}] Feed task finished")

    task.add_done_callback(on_done)
    return task


def build_feeds(config: ReconcilerConfig, session: ComparisonSession) -> List[asyncio.Task]:
    """
    Create the feed tasks for a session.

    The indexed feed is skipped when no API key is configured.

    Returns:
        Running feed tasks
    """
    hl = config.hyperliquid
    trade_feed = HyperliquidTradeFeed(
        ws_url=hl.ws_url,
        coin=hl.coin,
        reconnect_backoff_s=hl.reconnect_backoff_s,
        max_backoff_s=hl.max_backoff_s,
        on_status=session.log,
    )
    task = asyncio.create_task(run_trade_feed(trade_feed, session), name="hyperliquid")
    tasks = [supervise(task, session)]

    gr = config.goldrush
    if not gr.api_key:
        session.log("goldrush", "Missing GoldRush API key, indexed feed disabled")
        return tasks

    candle_feed = GoldRushCandleFeed(
        ws_url=gr.ws_url,
        api_key=gr.api_key,
        chain_name=gr.chain_name,
        token_addresses=gr.token_addresses,
        interval=gr.interval,
        timeframe=gr.timeframe,
        reconnect_backoff_s=gr.reconnect_backoff_s,
        max_backoff_s=gr.max_backoff_s,
        on_status=session.log,
    )
    task = asyncio.create_task(run_candle_feed(candle_feed, session), name="goldrush")
    tasks.append(supervise(task, session))
    session.log("goldrush", f"Subscribing to {config.symbol} on {gr.chain_name}")
    return tasks


def attach_publisher(session: ComparisonSession, publisher: SnapshotPublisher) -> None:
    """Publish the updated series and metrics after every ingest"""
    pending = set()

    def on_update(source: CandleSource) -> None:
        candles = [c.to_dict() for c in session.series(source)]
        task = asyncio.get_running_loop().create_task(
            publisher.publish(source.value, candles, session.metrics().to_dict())
        )
        pending.add(task)
        task.add_done_callback(pending.discard)

    session.add_listener(on_update)


async def main(config_path: Optional[Path] = None) -> None:
    """
    Main entry point.

    Environment Variables:
        CONFIG_PATH: YAML config path (default: "config/reconciler.yaml")
        plus the overrides listed in engine.config.loader.ENV_OVERRIDES
    """
    config_path = config_path or Path(os.getenv("CONFIG_PATH", "config/reconciler.yaml"))
    config = ConfigLoader(config_path).load()

    logger.info("=" * 60)
    logger.info("Candle Reconciler Starting")
    logger.info("=" * 60)
    logger.info(f"Symbol: {config.symbol}")

    session = ComparisonSession(config)

    nats_client = None
    if config.nats.enabled:
        nats_client = NatsClient(NatsConfig(servers=config.nats.servers, name=config.nats.client_name))
        try:
            await nats_client.connect()
            attach_publisher(session, SnapshotPublisher(nats_client, config.symbol))
        except Exception as e:
            logger.warning(f"Failed to connect to NATS: {e}. Running without publishing.")
            nats_client = None

    tasks = build_feeds(config, session)

    if config.api.enabled:
        server = uvicorn.Server(uvicorn.Config(
            create_app(session),
            host=config.api.host,
            port=config.api.port,
            log_level="info",
        ))
        tasks.append(asyncio.create_task(server.serve(), name="api"))
        logger.info(f"Query API on {config.api.host}:{config.api.port}")

    try:
        while True:
            await asyncio.sleep(60)
            metrics = session.metrics()
            logger.info(
                f"Metrics [{config.symbol}]: "
                f"matched={metrics.matched_pct}% "
                f"deviation={metrics.mean_price_deviation_bps:.2f}bps "
                f"counters={session.get_metrics()}"
            )
    except asyncio.CancelledError:
        logger.info("Shutting down...")
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if nats_client:
            await nats_client.close()
        logger.info("Candle reconciler stopped")


def run() -> None:
    """Console script entry point"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
