"""
CsvQL In-Memory Source
======================
A relation held in a Python list. Same interface as CsvSource
(table_name, schema, scan), used for embedding and tests.
"""

from typing import Any, Iterable, Iterator, Tuple

from storage.schema import Schema
from storage.types import validate


class MemorySource:
    """
    Rows kept in memory, validated against the schema up front.

    Usage:
        source = MemorySource("t", schema, [(1, "a"), (2, "b")])
    """

    def __init__(self, table_name: str, schema: Schema, rows: Iterable[Tuple[Any, ...]]):
        self.table_name = table_name
        self.schema = schema
        self.rows = [tuple(row) for row in rows]
        # Number of scans started, so callers can see that EXPLAIN reads nothing
        self.scan_count = 0

        for i, row in enumerate(self.rows):
            if len(row) != schema.column_count:
                raise ValueError(f"Row {i} has {len(row)} values, expected {schema.column_count}")
            for value, col in zip(row, schema.columns):
                if not validate(value, col.data_type):
                    raise ValueError(f"Row {i}: {value!r} is not a valid {col.data_type.value} "
                                     f"for column '{col.name}'")

    @property
    def file_name(self) -> str:
        return f"<memory:{self.table_name}>"

    def scan(self) -> Iterator[Tuple[Any, ...]]:
        self.scan_count += 1
        for row in self.rows:
            yield row

    def __repr__(self) -> str:
        return f"MemorySource({self.table_name!r}, {len(self.rows)} rows)"
