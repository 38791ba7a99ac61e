"""
Config Loader

Loads the reconciler session configuration from a YAML file and applies
environment variable overrides. Values are fixed for the lifetime of a
session.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, List, Mapping, Optional
from pydantic import BaseModel, Field, ValidationError
import logging

from dataflow.candle_aggregation.aggregator import DEFAULT_BUCKET_WIDTH_MS, LateTradePolicy
from dataflow.candle_aggregation.series import DEFAULT_MAX_SERIES_LENGTH

logger = logging.getLogger(__name__)


class AggregationConfig(BaseModel):
    """Candle bucketing and retention"""
    bucket_width_ms: int = Field(default=DEFAULT_BUCKET_WIDTH_MS, gt=0)
    max_series_length: int = Field(default=DEFAULT_MAX_SERIES_LENGTH, gt=0)
    late_trade_policy: LateTradePolicy = LateTradePolicy.DROP


class HyperliquidConfig(BaseModel):
    """Direct exchange trade feed"""
    ws_url: str = "wss://api.hyperliquid.xyz/ws"
    coin: str = "HYPE"
    reconnect_backoff_s: float = Field(default=1.0, gt=0)
    max_backoff_s: float = Field(default=30.0, gt=0)


class GoldRushConfig(BaseModel):
    """Indexed GraphQL candle subscription"""
    ws_url: str = "wss://gr-staging-v2.streaming.covalenthq.com/graphql"
    api_key: str = ""
    chain_name: str = "HYPERCORE_MAINNET"
    token_addresses: List[str] = Field(default_factory=lambda: ["HYPE"])
    interval: str = "ONE_MINUTE"
    timeframe: str = "ONE_HOUR"
    reconnect_backoff_s: float = Field(default=1.0, gt=0)
    max_backoff_s: float = Field(default=30.0, gt=0)


class ApiConfig(BaseModel):
    """HTTP snapshot API"""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8000


class PublishConfig(BaseModel):
    """Optional NATS publishing of snapshots"""
    enabled: bool = False
    servers: List[str] = Field(default_factory=lambda: ["nats://localhost:4222"])
    client_name: str = "candle-reconciler"


class ReconcilerConfig(BaseModel):
    """Complete session configuration"""
    symbol: str = "HYPE"
    token_address: str = "0x0d01dc56dcaaca66ad901c959b4011ec"
    recent_trades_limit: int = Field(default=500, gt=0)
    diagnostics_limit: int = Field(default=50, gt=0)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    hyperliquid: HyperliquidConfig = Field(default_factory=HyperliquidConfig)
    goldrush: GoldRushConfig = Field(default_factory=GoldRushConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    nats: PublishConfig = Field(default_factory=PublishConfig)


# env var -> (section, key); section None means top level
ENV_OVERRIDES = {
    "TOKEN_SYMBOL": (None, "symbol"),
    "TOKEN_ADDRESS": (None, "token_address"),
    "HL_WS_URL": ("hyperliquid", "ws_url"),
    "GR_WS_URL": ("goldrush", "ws_url"),
    "GR_API_KEY": ("goldrush", "api_key"),
    "BUCKET_WIDTH_MS": ("aggregation", "bucket_width_ms"),
    "MAX_SERIES_LENGTH": ("aggregation", "max_series_length"),
    "HOST": ("api", "host"),
    "PORT": ("api", "port"),
    "NATS_SERVERS": ("nats", "servers"),
}


class ConfigLoader:
    """
    Loads and validates the reconciler configuration.

    The loader:
    1. Reads the YAML file if it exists (defaults otherwise)
    2. Applies environment variable overrides
    3. Validates the result into a ReconcilerConfig

    Example usage:
        loader = ConfigLoader(Path("config/reconciler.yaml"))
        config = loader.load()
    """

    def __init__(self, config_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None):
        """
        Initialize loader.

        Args:
            config_path: YAML file path; None or a missing file means defaults
            environ: Environment mapping, defaults to os.environ
        """
        self.config_path = config_path
        self.environ = os.environ if environ is None else environ
        logger.info(f"Initialized ConfigLoader with config_path: {config_path}")

    def load(self) -> ReconcilerConfig:
        """
        Load the session configuration.

        Returns:
            Validated ReconcilerConfig

        Raises:
            ValueError: If the file cannot be parsed or validation fails
        """
        raw = self._read_yaml()
        self._apply_env(raw)

        try:
            config = ReconcilerConfig(**raw)
        except ValidationError as e:
            logger.error(f"Invalid reconciler config: {e}")
            raise ValueError(f"Invalid reconciler config: {e}")

        logger.info(
            f"Loaded config for {config.symbol}: "
            f"bucket={config.aggregation.bucket_width_ms}ms, "
            f"max_length={config.aggregation.max_series_length}, "
            f"late_trades={config.aggregation.late_trade_policy.value}"
        )
        return config

    def _read_yaml(self) -> Dict:
        if self.config_path is None:
            return {}

        if not self.config_path.exists():
            logger.warning(f"Config file not found: {self.config_path}, using defaults")
            return {}

        try:
            with open(self.config_path) as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Failed to load {self.config_path}: {e}")
            raise ValueError(f"Failed to load {self.config_path}: {e}")

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config root must be a mapping in {self.config_path}")
        return raw

    def _apply_env(self, raw: Dict) -> None:
        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = self.environ.get(env_name)
            if value is None or value == "":
                continue

            if key == "servers":
                value = value.split(",")

            if section is None:
                raw[key] = value
            else:
                target = raw.setdefault(section, {})
                if not isinstance(target, dict):
                    raise ValueError(f"Config section '{section}' must be a mapping")
                target[key] = value
            logger.debug(f"Applied override {env_name} -> {section or ''}.{key}")
