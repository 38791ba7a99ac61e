"""
Reconciliation

Compares the direct and indexed candle series bucket by bucket.
"""

from dataflow.reconciliation.reconciler import Reconciler

__all__ = ["Reconciler"]
