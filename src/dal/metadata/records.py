from dataclasses import dataclass, field
from typing import Any, List, Tuple

from dal.query_session import Column

PARTITION_KEY_MARKER = "Partition Key"


def fqn(database_name: str, table_name: str) -> str:
    """Return the fully-qualified ``database.table`` name used as a cache key."""
    return f"{database_name}.{table_name}"


def split_fqn(fq_table_name: str) -> Tuple[str, str]:
    """Split a ``database.table`` cache key back into its two parts."""
    database_name, _, table_name = fq_table_name.partition(".")
    return database_name, table_name


@dataclass(frozen=True)
class HiveColumn:
    """A table column as reported by ``SHOW COLUMNS``."""

    name: str
    type: str
    is_nullable: bool = False
    is_partition: bool = False
    table: str = ""

    @classmethod
    def from_column(
        cls, column: Column, is_nullable: bool, is_partition: bool, table: str = ""
    ) -> "HiveColumn":
        """Build a record from an engine column descriptor."""
        return cls(
            name=column.name,
            type=column.type,
            is_nullable=is_nullable,
            is_partition=is_partition,
            table=table,
        )


@dataclass(frozen=True)
class HivePartition:
    """All observed values of one partition column."""

    name: str
    type: str
    values: List[Any] = field(default_factory=list)

    @classmethod
    def from_column(cls, column: Column, values: List[Any]) -> "HivePartition":
        """Build a record from a column descriptor and its values in row order."""
        return cls(name=column.name, type=column.type, values=list(values))
