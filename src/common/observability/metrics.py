"""OpenTelemetry counters for the derived-metadata caches.

Counters are only emitted when ``METADATA_CACHE_METRICS_ENABLED`` is true, or
when it is unset and an OTLP exporter endpoint is configured. Every counter
carries a single ``cache`` attribute (``columns`` or ``partitions``), which
keeps the series count bounded by the number of cache kinds.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from opentelemetry import metrics

from common.config.env import get_env_bool

logger = logging.getLogger(__name__)


class CacheEvent(str, Enum):
    """Cache events counted per cache; the value is the OTEL counter name."""

    HIT = "metadata.cache.hit"
    MISS = "metadata.cache.miss"
    LOAD_FAILURE = "metadata.cache.load_failure"
    LOAD_TIMEOUT = "metadata.cache.load_timeout"


_DESCRIPTIONS = {
    CacheEvent.HIT: "Lookups answered by a fresh or in-flight entry",
    CacheEvent.MISS: "Lookups that started a load for a missing or expired entry",
    CacheEvent.LOAD_FAILURE: "Loads that failed or could not be scheduled",
    CacheEvent.LOAD_TIMEOUT: "Introspection queries that exceeded the metadata timeout",
}


def is_otel_exporter_configured() -> bool:
    """Return True when an OTLP endpoint is set and exporting is not switched off."""
    if get_env_bool("OTEL_DISABLE_EXPORTER", False):
        return False
    if (os.getenv("OTEL_METRICS_EXPORTER") or "").strip().lower() == "none":
        return False

    endpoint = (os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or "").strip()
    metrics_endpoint = (os.getenv("OTEL_EXPORTER_OTLP_METRICS_ENDPOINT") or "").strip()
    return bool(endpoint or metrics_endpoint)


def is_metrics_enabled(enabled_env_var: str) -> bool:
    """Resolve enablement from an explicit env override, else from exporter config."""
    raw = os.getenv(enabled_env_var)
    if raw is None:
        return is_otel_exporter_configured()
    try:
        return get_env_bool(enabled_env_var, False) is True
    except ValueError:
        logger.warning("Invalid %s value '%s'; metrics disabled.", enabled_env_var, raw)
        return False


@dataclass
class MetadataCacheMetrics:
    """Lazily-created cache event counters behind an env switch."""

    meter_name: str = "dal-metadata-cache"
    enabled_env_var: str = "METADATA_CACHE_METRICS_ENABLED"
    _meter: Any = None
    _counters: dict[CacheEvent, Any] = field(default_factory=dict)

    def enabled(self) -> bool:
        """Return True when counters should be emitted."""
        return is_metrics_enabled(self.enabled_env_var)

    def record(self, event: CacheEvent, cache_name: str) -> None:
        """Count one ``event`` for the cache named ``cache_name``.

        Emission errors are logged at debug level and never reach the cache.
        """
        if not self.enabled():
            return
        try:
            self._counter(event).add(1, {"cache": cache_name})
        except Exception as exc:
            logger.debug("metadata_cache_metric_failed event=%s error=%s", event.value, exc)

    def _counter(self, event: CacheEvent):
        counter = self._counters.get(event)
        if counter is None:
            if self._meter is None:
                self._meter = metrics.get_meter(self.meter_name)
            counter = self._meter.create_counter(
                name=event.value, description=_DESCRIPTIONS[event], unit="1"
            )
            self._counters[event] = counter
        return counter


metadata_cache_metrics = MetadataCacheMetrics()
