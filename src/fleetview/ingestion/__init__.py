"""Ingestion layer.

This package turns raw snapshot documents delivered by the source feeds
into typed, read-only record snapshots.
"""

__all__: list[str] = []
