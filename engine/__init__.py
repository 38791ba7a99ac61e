"""
Engine

Session configuration and runtime for the candle reconciler.
"""
