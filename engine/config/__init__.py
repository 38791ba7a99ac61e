"""
Config Module

YAML session configuration loading and validation.
"""

from .loader import (
    ConfigLoader,
    ReconcilerConfig,
    AggregationConfig,
    HyperliquidConfig,
    GoldRushConfig,
    ApiConfig,
    PublishConfig,
)

__all__ = [
    "ConfigLoader",
    "ReconcilerConfig",
    "AggregationConfig",
    "HyperliquidConfig",
    "GoldRushConfig",
    "ApiConfig",
    "PublishConfig",
]
