"""
Core streaming components.

This package contains the ingestion and presentation pipeline:
- Pattern matching and masking
- Include/exclude filtering
- Bounded ingest queue and latest-per-topic state store
- Rate-adaptive render scheduler
- Metrics collection
"""
