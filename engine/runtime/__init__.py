"""
Runtime Module

Comparison session and service entry point.
"""

from .session import CandleSource, ComparisonSession

__all__ = [
    "CandleSource",
    "ComparisonSession",
]
