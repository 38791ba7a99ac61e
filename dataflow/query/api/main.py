"""
Query API

FastAPI service exposing read-only snapshots of a running comparison
session.

HTTP Endpoints:
- GET  /                  - Health check
- GET  /health            - Detailed health status
- GET  /series/{source}   - Candle series for "direct" or "indexed"
- GET  /metrics           - Match rate and mean close deviation
- GET  /comparison        - Matched buckets side by side
- GET  /trades            - Recent direct-feed trades, newest first
- GET  /diagnostics       - Feed status and dropped-input log, newest first
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from engine.runtime.session import CandleSource, ComparisonSession

logger = logging.getLogger(__name__)


# Response models (Pydantic)
class CandleResponse(BaseModel):
    """Single candle response"""
    bucket_start: int
    time: str  # ISO 8601
    open: float
    high: float
    low: float
    close: float
    volume: float
    trade_count: int


class SeriesResponse(BaseModel):
    """Response containing one candle series"""
    symbol: str
    source: str
    bucket_width_ms: int
    count: int
    candles: list[CandleResponse]


class MetricsResponse(BaseModel):
    """Agreement metrics"""
    symbol: str
    matched_fraction: float
    matched_pct: int
    mean_price_deviation_bps: float
    compared_count: int
    matched_count: int
    deviation_count: int
    zero_close_skips: int


class ComparisonRow(BaseModel):
    bucket_start: int
    close_a: float
    close_b: float
    deviation_bps: Optional[float] = None


class TradeResponse(BaseModel):
    timestamp: int
    price: float
    size: float
    side: str
    trade_id: str


class DiagnosticResponse(BaseModel):
    kind: str
    source: str
    message: str
    timestamp: str


def create_app(session: ComparisonSession) -> FastAPI:
    """
    Build the API for one session.

    Args:
        session: Session whose snapshots are served

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="Candle Reconciler - Query API",
        description="Live comparison of direct and indexed OHLCV candles",
        version="1.0.0",
    )

    @app.get("/")
    async def root():
        """Health check endpoint"""
        return {
            "status": "running",
            "service": "candle-reconciler",
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/health")
    async def health():
        """Detailed health status"""
        return {
            "status": "healthy",
            "service": "candle-reconciler",
            "symbol": session.symbol,
            "token_address": session.config.token_address,
            "counters": session.get_metrics(),
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/series/{source}")
    async def get_series(
        source: str,
        limit: int = Query(default=100, ge=1, le=1000, description="Number of most recent candles"),
    ) -> SeriesResponse:
        """
        Fetch the most recent candles of one series, oldest first.

        Raises:
            404: Unknown source
        """
        try:
            candle_source = CandleSource(source.lower())
        except ValueError:
            raise HTTPException(
                status_code=404,
                detail=f"Unknown source '{source}'. Must be one of: {[s.value for s in CandleSource]}",
            )

        candles = session.series(candle_source)[-limit:]
        return SeriesResponse(
            symbol=session.symbol,
            source=candle_source.value,
            bucket_width_ms=session.aggregator.bucket_width_ms,
            count=len(candles),
            candles=[CandleResponse(**c.to_dict()) for c in candles],
        )

    @app.get("/metrics")
    async def get_metrics() -> MetricsResponse:
        """Current agreement metrics"""
        return MetricsResponse(symbol=session.symbol, **session.metrics().to_dict())

    @app.get("/comparison")
    async def get_comparison() -> list[ComparisonRow]:
        """Matched buckets, oldest first"""
        return [ComparisonRow(**row.to_dict()) for row in session.comparison()]

    @app.get("/trades")
    async def get_trades(
        limit: int = Query(default=100, ge=1, le=1000, description="Number of trades"),
    ) -> list[TradeResponse]:
        """Recent direct-feed trades, newest first"""
        return [TradeResponse(**t.to_dict()) for t in session.recent_trades()[:limit]]

    @app.get("/diagnostics")
    async def get_diagnostics() -> list[DiagnosticResponse]:
        """Diagnostic log, newest first"""
        return [DiagnosticResponse(**d.to_dict()) for d in session.diagnostics()]

    return app
