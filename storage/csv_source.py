"""
CsvQL CSV Source
================
Treats one CSV file as a relation.

File layout:
  Line 1: header (column names)
  Line 2..N: data records

The schema is resolved once: column names come from the header and types
are inferred from the first `infer_rows` data records (see storage.types).
Scans re-open the file and stream records one at a time, so a query that
stops early (LIMIT) never reads the rest of the file.

Scan order:
  Records are yielded in file order. Blank lines are skipped.
"""

import csv
import logging
import os
from typing import Any, Iterator, List, Optional, Tuple

from storage.schema import Column, Schema
from storage.types import DataType, coerce, infer_type, widen

logger = logging.getLogger(__name__)

DEFAULT_INFER_ROWS = 100


class CsvSourceError(IOError):
    """Missing file, malformed record, or value that does not fit its column."""
    pass


class CsvSource:
    """
    A CSV file exposed as a typed row source.

    Usage:
        source = CsvSource("data/test.csv")
        print(source.schema)
        for row in source.scan():
            print(row)
    """

    def __init__(self, path: str, delimiter: str = ",",
                 infer_rows: int = DEFAULT_INFER_ROWS,
                 table_name: Optional[str] = None):
        if len(delimiter) != 1:
            raise ValueError(f"Delimiter must be a single character, got {delimiter!r}")
        if infer_rows < 1:
            raise ValueError(f"infer_rows must be positive, got {infer_rows}")
        self.path = path
        self.delimiter = delimiter
        self.infer_rows = infer_rows
        self.table_name = table_name or os.path.splitext(os.path.basename(path))[0]
        self._schema: Optional[Schema] = None

    @property
    def file_name(self) -> str:
        return os.path.basename(self.path)

    @property
    def schema(self) -> Schema:
        """Schema of the file, resolved on first access."""
        if self._schema is None:
            self._schema = self._load_schema()
        return self._schema

    # ─── Scanning ───────────────────────────────────────────────────

    def scan(self) -> Iterator[Tuple[Any, ...]]:
        """
        Yield typed rows in file order.
        The file handle is released when the generator is exhausted or closed.
        """
        types = [col.data_type for col in self.schema.columns]
        width = len(types)

        with self._open_file() as f:
            reader = csv.reader(f, delimiter=self.delimiter)
            try:
                next(reader, None)  # header
                for record in reader:
                    if not record:
                        continue
                    if len(record) != width:
                        raise CsvSourceError(
                            f"{self.file_name}:{reader.line_num}: expected {width} fields, "
                            f"got {len(record)}")
                    yield self._convert(record, types, reader.line_num)
            except (csv.Error, UnicodeDecodeError) as e:
                raise CsvSourceError(f"{self.file_name}:{reader.line_num}: {e}") from e

    def _convert(self, record: List[str], types: List[DataType], line_num: int) -> Tuple[Any, ...]:
        values = []
        for raw, dtype, col in zip(record, types, self.schema.columns):
            try:
                values.append(coerce(raw, dtype))
            except ValueError:
                raise CsvSourceError(
                    f"{self.file_name}:{line_num}: value {raw!r} in column "
                    f"'{col.name}' is not a valid {dtype.value}") from None
        return tuple(values)

    # ─── Schema Inference ───────────────────────────────────────────

    def _load_schema(self) -> Schema:
        with self._open_file() as f:
            reader = csv.reader(f, delimiter=self.delimiter)
            try:
                header = next(reader, None)
                if not header:
                    raise CsvSourceError(f"{self.file_name}: missing header line")
                names = self._column_names(header)

                inferred: List[Optional[DataType]] = [None] * len(names)
                sampled = 0
                for record in reader:
                    if not record:
                        continue
                    if len(record) != len(names):
                        raise CsvSourceError(
                            f"{self.file_name}:{reader.line_num}: expected {len(names)} "
                            f"fields, got {len(record)}")
                    for i, raw in enumerate(record):
                        inferred[i] = widen(inferred[i], infer_type(raw))
                    sampled += 1
                    if sampled >= self.infer_rows:
                        break
            except (csv.Error, UnicodeDecodeError) as e:
                raise CsvSourceError(f"{self.file_name}:{reader.line_num}: {e}") from e

        try:
            schema = Schema([Column(name, dtype or DataType.TEXT)
                             for name, dtype in zip(names, inferred)])
        except ValueError as e:
            raise CsvSourceError(f"{self.file_name}: {e}") from None
        logger.debug("Inferred schema for %s from %d row(s): %s",
                     self.file_name, sampled, schema)
        return schema

    def _column_names(self, header: List[str]) -> List[str]:
        names = []
        for i, raw in enumerate(header):
            name = raw.strip()
            names.append(name or f"column_{i + 1}")
        return names

    def _open_file(self):
        try:
            return open(self.path, "r", encoding="utf-8-sig", newline="")
        except OSError as e:
            raise CsvSourceError(f"Cannot open CSV file '{self.path}': {e.strerror}") from e

    def __repr__(self) -> str:
        return f"CsvSource({self.path!r}, table={self.table_name!r})"
