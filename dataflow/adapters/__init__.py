"""
NATS Adapters

Publishes reconciliation snapshots onto NATS.
"""

from dataflow.adapters.nats_client import NatsClient, NatsConfig, SnapshotPublisher, Topics

__all__ = ["NatsClient", "NatsConfig", "SnapshotPublisher", "Topics"]
