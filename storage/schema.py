"""
CsvQL Schema Definition
=======================
An ordered list of (column name, data type) pairs. Every plan node,
logical or physical, owns one describing the rows it yields.

Column names are unique within a schema. Lookup is case-insensitive,
matching how unquoted SQL identifiers are usually treated.
"""

from dataclasses import dataclass, field
from typing import List

from storage.types import DataType


@dataclass(frozen=True)
class Column:
    """Definition of a single column."""
    name: str
    data_type: DataType


@dataclass
class Schema:
    """
    Ordered list of column definitions.
    Provides column lookup by name and index.
    """
    columns: List[Column] = field(default_factory=list)

    def __post_init__(self):
        seen = set()
        for col in self.columns:
            key = col.name.lower()
            if key in seen:
                raise ValueError(f"Duplicate column name '{col.name}' in schema")
            seen.add(key)

    @property
    def column_count(self) -> int:
        return len(self.columns)

    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def has_column(self, name: str) -> bool:
        return any(c.name.lower() == name.lower() for c in self.columns)

    def column_index(self, name: str) -> int:
        """Get the zero-based index of a column by name. Raises KeyError if not found."""
        for i, col in enumerate(self.columns):
            if col.name.lower() == name.lower():
                return i
        raise KeyError(f"Column '{name}' not found in schema. "
                       f"Available: {self.column_names()}")

    def __str__(self) -> str:
        return ", ".join(f"{c.name}: {c.data_type.value}" for c in self.columns)
