"""
CsvQL CSV Sink
==============
Writes a row stream back to CSV text: one header line with the output
schema's column names, then one record per row.

Rows are written as they arrive. If the producing query fails midway,
the records already written stay in the file.
"""

import csv
import logging
from typing import Any, Iterable, Tuple

from storage.csv_source import CsvSourceError
from storage.schema import Schema
from storage.types import format_value

logger = logging.getLogger(__name__)


class CsvSink:
    """Streaming CSV writer for COPY ... TO."""

    def __init__(self, path: str, delimiter: str = ","):
        self.path = path
        self.delimiter = delimiter

    def write(self, schema: Schema, rows: Iterable[Tuple[Any, ...]]) -> int:
        """Write header + rows. Returns the number of data rows written."""
        try:
            f = open(self.path, "w", encoding="utf-8", newline="")
        except OSError as e:
            raise CsvSourceError(f"Cannot write CSV file '{self.path}': {e.strerror}") from e

        count = 0
        with f:
            writer = csv.writer(f, delimiter=self.delimiter, lineterminator="\n")
            writer.writerow(schema.column_names())
            for row in rows:
                writer.writerow([format_value(v) for v in row])
                count += 1

        logger.info("Wrote %d row(s) to %s", count, self.path)
        return count
