from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

# 5 hours
DEFAULT_QUERY_TIMEOUT_SECONDS = 60 * 60 * 5
METADATA_QUERY_TIMEOUT_SECONDS = 60


class QueryTimeoutError(TimeoutError):
    """Raised when a query session runs past its elapsed-time budget."""

    def __init__(self, elapsed_ms: int, timeout_seconds: Optional[float] = None) -> None:
        """Initialize with the elapsed time observed when the budget was exceeded."""
        self.elapsed_ms = int(elapsed_ms)
        self.timeout_seconds = timeout_seconds
        timeout_display = "unknown"
        if isinstance(timeout_seconds, (int, float)):
            timeout_display = f"{float(timeout_seconds):g}"
        super().__init__(
            f"Query timed out after {self.elapsed_ms}ms (budget {timeout_display}s)."
        )


@dataclass(frozen=True)
class QueryOutcome(Generic[T]):
    """Result of a bounded query run: either a value or a timeout with elapsed time."""

    value: Optional[T] = None
    timed_out: bool = False
    elapsed_ms: Optional[int] = None

    @classmethod
    def success(cls, value: Optional[T]) -> "QueryOutcome[T]":
        """Build a completed outcome."""
        return cls(value=value)

    @classmethod
    def timeout(cls, error: QueryTimeoutError) -> "QueryOutcome[T]":
        """Build a timed-out outcome from the raised error."""
        return cls(timed_out=True, elapsed_ms=error.elapsed_ms)
