"""Protocols for stateful, page-at-a-time query sessions against a remote engine."""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Tuple, runtime_checkable


@dataclass(frozen=True)
class Column:
    """Column descriptor as reported by the engine."""

    name: str
    type: str


@dataclass(frozen=True)
class ResultPage:
    """One step of results: column descriptors plus column-ordered rows."""

    columns: Tuple[Column, ...] = ()
    rows: Tuple[Tuple[Any, ...], ...] = ()
    query_id: Optional[str] = None
    state: Optional[str] = None

    @classmethod
    def of(cls, columns, rows, query_id: Optional[str] = None, state: Optional[str] = None):
        """Build a page from any iterables, freezing rows into tuples."""
        return cls(
            columns=tuple(columns or ()),
            rows=tuple(tuple(row) for row in rows or ()),
            query_id=query_id,
            state=state,
        )

    @property
    def has_data(self) -> bool:
        """Return True when the page carries both columns and rows."""
        return bool(self.columns) and bool(self.rows)


EMPTY_PAGE = ResultPage()


@runtime_checkable
class QuerySession(Protocol):
    """A single multi-step query execution, advanced page by page."""

    def is_valid(self) -> bool:
        """Return True while the session may still be advanced."""
        ...

    def advance(self) -> None:
        """Move to the next step; may block on network I/O."""
        ...

    def current(self) -> ResultPage:
        """Return the page for the current step."""
        ...

    def final_results(self) -> Optional[ResultPage]:
        """Return the terminal page once the session is finished."""
        ...

    def close(self) -> None:
        """Release the session and any remote resources it holds."""
        ...


@runtime_checkable
class QueryRunner(Protocol):
    """Starts query sessions on behalf of one caller."""

    def start_query(self, sql: str) -> QuerySession:
        """Open a new session for the given query text."""
        ...


@runtime_checkable
class QueryRunnerFactory(Protocol):
    """Creates query runners; must be safe for concurrent use."""

    def create(self) -> QueryRunner:
        """Return a runner bound to a fresh engine session."""
        ...
