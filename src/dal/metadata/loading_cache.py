"""Thread-safe, single-flight, expire-after-write loading cache."""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from common.observability.metrics import CacheEvent, metadata_cache_metrics
from dal.metadata.background_loader import BackgroundCacheLoader

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

logger = logging.getLogger(__name__)


class CacheComputationError(RuntimeError):
    """Raised when the load backing a cache lookup failed."""

    def __init__(self, key: Hashable, cause: BaseException) -> None:
        """Record the key whose load failed; the cause is chained by the caller."""
        self.key = key
        super().__init__(f"Failed to load cache entry for {key!r}: {cause}")


@dataclass
class _Entry:
    """Pending or resolved load; ``loaded_at`` is set once the load succeeds."""

    future: Future
    loaded_at: Optional[float] = None


class LoadingCache(Generic[K, V]):
    """Cache whose misses are loaded in the background and awaited by every caller.

    At most one load per key is in flight: concurrent ``get`` calls for a key
    that is missing or expired share the same future. Entries expire ``ttl``
    seconds after their load completed, regardless of reads. Failed loads are
    evicted so the next ``get`` retries.
    """

    def __init__(
        self,
        loader: BackgroundCacheLoader[K, V],
        ttl_seconds: float,
        *,
        name: str = "cache",
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        """Initialize with a loader, write-time TTL and optional clock override."""
        if ttl_seconds is None or ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive for cache '{name}'.")
        self._loader = loader
        self._ttl_seconds = float(ttl_seconds)
        self._name = name
        self._clock = clock or time.monotonic
        self._entries: Dict[K, _Entry] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        """Return the cache name used in logs and metrics."""
        return self._name

    def get(self, key: K) -> V:
        """Return the value for ``key``, loading it if missing or expired.

        Blocks until the value (or an in-flight load for the same key) resolves.

        Raises:
            CacheComputationError: The load for ``key`` failed, or could not be
                scheduled on the executor.
        """
        entry, created = self._get_or_start_load(key)
        self._record(CacheEvent.MISS if created else CacheEvent.HIT)
        try:
            return entry.future.result()
        except Exception as exc:
            raise CacheComputationError(key, exc) from exc

    def get_if_present(self, key: K) -> Optional[V]:
        """Return a fresh loaded value without triggering a load."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.loaded_at is None or self._is_expired(entry):
                return None
            return entry.future.result()

    def invalidate(self, key: K) -> bool:
        """Drop ``key``; an in-flight load still resolves its current waiters."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_matching(self, predicate: Callable[[K], bool]) -> int:
        """Drop every key for which ``predicate`` is true and return the count."""
        with self._lock:
            keys = [key for key in self._entries if predicate(key)]
            for key in keys:
                del self._entries[key]
        return len(keys)

    def invalidate_all(self) -> int:
        """Drop every entry and return the count."""
        return self.invalidate_matching(lambda key: True)

    def __len__(self) -> int:
        """Return the number of pending and loaded entries."""
        with self._lock:
            return len(self._entries)

    def _get_or_start_load(self, key: K) -> Tuple[_Entry, bool]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and not self._is_expired(entry):
                return entry, False
            try:
                future = self._submit_load(key, entry)
            except Exception as exc:
                self._entries.pop(key, None)
                logger.warning(
                    "loading_cache_submit_failed cache=%s key=%s error=%s", self._name, key, exc
                )
                self._record(CacheEvent.LOAD_FAILURE)
                raise CacheComputationError(key, exc) from exc
            entry = _Entry(future=future)
            self._entries[key] = entry

        # Registered outside the lock: an already-finished future runs the callback inline.
        future.add_done_callback(lambda done: self._on_load_done(key, entry, done))
        return entry, True

    def _submit_load(self, key: K, entry: Optional[_Entry]) -> Future:
        if entry is None:
            return self._loader.load_async(key)
        logger.debug("loading_cache_expired cache=%s key=%s", self._name, key)
        return self._loader.reload_async(key, entry.future.result())

    def _on_load_done(self, key: K, entry: _Entry, future: Future) -> None:
        failed = future.cancelled() or future.exception() is not None
        with self._lock:
            if self._entries.get(key) is not entry:
                return
            if failed:
                del self._entries[key]
            else:
                entry.loaded_at = self._clock()

        if failed:
            error = "cancelled" if future.cancelled() else future.exception()
            logger.warning(
                "loading_cache_load_failed cache=%s key=%s error=%s", self._name, key, error
            )
            self._record(CacheEvent.LOAD_FAILURE)

    def _is_expired(self, entry: _Entry) -> bool:
        if entry.loaded_at is None:
            return False
        return self._clock() - entry.loaded_at >= self._ttl_seconds

    def _record(self, event: CacheEvent) -> None:
        metadata_cache_metrics.record(event, self._name)
