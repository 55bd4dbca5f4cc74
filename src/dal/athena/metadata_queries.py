"""Introspection queries for Athena-backed metadata caches.

Athena answers ``SHOW COLUMNS`` with a single ``field`` column of names and
``SHOW PARTITIONS`` with ``k=v/k2=v2`` strings. These queries return the
name/type/extra rows and one-column-per-key partition pages the caches read.
"""

from typing import Mapping

from dal.metadata.column_cache import MetadataKind
from dal.metadata.records import PARTITION_KEY_MARKER

ATHENA_METADATA_QUERIES: Mapping[MetadataKind, str] = {
    MetadataKind.COLUMNS: (
        "SELECT column_name, data_type, "
        f"CASE WHEN extra_info = 'partition key' THEN '{PARTITION_KEY_MARKER}' ELSE '' END "
        "AS extra "
        "FROM information_schema.columns "
        "WHERE table_schema = '{database}' AND table_name = '{table}' "
        "ORDER BY ordinal_position"
    ),
    MetadataKind.PARTITIONS: 'SELECT * FROM "{database}"."{table}$partitions"',
}
