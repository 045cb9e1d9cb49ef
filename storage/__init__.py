"""
CsvQL Storage Layer
===================
Public API for types, schemas and CSV I/O.

Usage:
    from storage import DataType, Schema, Column, CsvSource, CsvSink, MemorySource
"""

from storage.types import DataType, NullOrder, coerce, infer_type, widen, sort_key
from storage.schema import Column, Schema
from storage.csv_source import CsvSource, CsvSourceError
from storage.csv_sink import CsvSink
from storage.memory_source import MemorySource

__all__ = [
    "DataType", "NullOrder", "coerce", "infer_type", "widen", "sort_key",
    "Column", "Schema",
    "CsvSource", "CsvSourceError",
    "CsvSink", "MemorySource",
]
