from concurrent.futures import Executor, Future
from typing import Callable, Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class BackgroundCacheLoader(Generic[K, V]):
    """Adapts a blocking ``key -> value`` function into work submitted to an executor.

    The loader holds no state of its own; ``LoadingCache`` keeps the returned
    futures so concurrent lookups for the same key share one computation.
    """

    def __init__(self, load_fn: Callable[[K], V], executor: Executor) -> None:
        """Wrap ``load_fn`` for execution on ``executor``."""
        if executor is None:
            raise ValueError("executor was None!")
        self._load_fn = load_fn
        self._executor = executor

    def load(self, key: K) -> V:
        """Compute the value for ``key`` on the calling thread."""
        return self._load_fn(key)

    def load_async(self, key: K) -> "Future[V]":
        """Submit the computation for ``key`` and return its pending future."""
        return self._executor.submit(self._load_fn, key)

    def reload_async(self, key: K, old_value: V) -> "Future[V]":
        """Recompute an expired value; the stale value is not reused."""
        _ = old_value
        return self.load_async(key)
