"""
Dataflow Layer

Event I/O and aggregation for the candle reconciler. Contains:
- ingestion: Direct exchange trade feed and indexed GraphQL candle feed
- candle_aggregation: Trade to candle aggregation, provider candle merging
- reconciliation: Agreement metrics between the two series
- adapters: NATS publishing
- query: HTTP snapshot API
"""
