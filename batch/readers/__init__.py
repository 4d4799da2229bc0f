"""
Readers implementing the RecordStream / LookupAccessor contracts.

Modules:
    cursor: Keyset-paginated cursor over one ordered SELECT
    lookup: Point lookup by id against one table
    merge: Merge-join of a driving cursor with a lookup accessor
"""

from batch.readers.cursor import KeysetCursorReader, table_cursor, joined_cursor
from batch.readers.lookup import TableLookup
from batch.readers.merge import MergeJoinReader

__all__ = [
    "KeysetCursorReader",
    "table_cursor",
    "joined_cursor",
    "TableLookup",
    "MergeJoinReader",
]
