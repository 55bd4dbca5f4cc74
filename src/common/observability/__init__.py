"""Shared observability helpers."""

from common.observability.metrics import CacheEvent, metadata_cache_metrics

__all__ = ["CacheEvent", "metadata_cache_metrics"]
