"""
CsvQL Data Type System
======================
Defines supported data types: INTEGER, FLOAT, TEXT, BOOLEAN.
Values are plain Python objects (int, float, str, bool) and NULL is None.

Provides:
  - validation of a Python value against a DataType
  - coercion of raw CSV text into typed values
  - type inference and widening for CSV columns
  - a total ordering key with a configurable NULL extreme

Teaching note:
  A CSV file carries no type information. Like most CSV readers we sample
  the leading rows and pick the narrowest type that fits every sampled
  value, widening BOOLEAN/INTEGER -> FLOAT -> TEXT as needed.
"""

import re
from enum import Enum
from typing import Any, Optional, Tuple


class DataType(Enum):
    """Supported data types in CsvQL."""
    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    TEXT = "TEXT"
    BOOLEAN = "BOOLEAN"


NUMERIC_TYPES = frozenset({DataType.INTEGER, DataType.FLOAT})


class NullOrder(Enum):
    """Where NULL sorts relative to every non-NULL value."""
    FIRST = "first"   # NULL is the least value
    LAST = "last"     # NULL is the greatest value


# ─── Validation ─────────────────────────────────────────────────────────────

def validate(value: Any, dtype: DataType) -> bool:
    """
    Check if a Python value is compatible with the given DataType.
    Returns True if valid, False otherwise.
    """
    if value is None:
        return True  # NULL is valid for any type

    if dtype == DataType.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    elif dtype == DataType.FLOAT:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    elif dtype == DataType.TEXT:
        return isinstance(value, str)
    elif dtype == DataType.BOOLEAN:
        return isinstance(value, bool)
    return False


def type_of(value: Any) -> Optional[DataType]:
    """Runtime type of a value. None for NULL."""
    if value is None:
        return None
    if isinstance(value, bool):
        return DataType.BOOLEAN
    if isinstance(value, int):
        return DataType.INTEGER
    if isinstance(value, float):
        return DataType.FLOAT
    if isinstance(value, str):
        return DataType.TEXT
    raise ValueError(f"Unsupported value {value!r} of type {type(value).__name__}")


def type_name(dtype: Optional[DataType]) -> str:
    """Display name of a type; None (untyped NULL) shows as NULL."""
    return dtype.value if dtype is not None else "NULL"


# ─── CSV text -> value ──────────────────────────────────────────────────────

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")
_TRUE_WORDS = ("true",)
_FALSE_WORDS = ("false",)


def coerce(raw: str, dtype: DataType) -> Any:
    """
    Convert a raw CSV field to a value of the target DataType.
    The empty string is NULL for every type.
    Raises ValueError on failure.
    """
    if raw == "":
        return None

    if dtype == DataType.INTEGER:
        if not _INT_RE.match(raw.strip()):
            raise ValueError(f"Cannot coerce {raw!r} to INTEGER")
        return int(raw)
    elif dtype == DataType.FLOAT:
        if not _FLOAT_RE.match(raw.strip()):
            raise ValueError(f"Cannot coerce {raw!r} to FLOAT")
        return float(raw)
    elif dtype == DataType.TEXT:
        return raw
    elif dtype == DataType.BOOLEAN:
        lowered = raw.strip().lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise ValueError(f"Cannot coerce {raw!r} to BOOLEAN")
    raise ValueError(f"Unknown data type: {dtype}")


def infer_type(raw: str) -> Optional[DataType]:
    """
    Narrowest DataType that can hold a raw CSV field.
    Returns None for the empty field (NULL says nothing about the type).
    """
    if raw == "":
        return None
    text = raw.strip()
    if text.lower() in _TRUE_WORDS or text.lower() in _FALSE_WORDS:
        return DataType.BOOLEAN
    if _INT_RE.match(text):
        return DataType.INTEGER
    if _FLOAT_RE.match(text):
        return DataType.FLOAT
    return DataType.TEXT


def widen(current: Optional[DataType], seen: Optional[DataType]) -> Optional[DataType]:
    """
    Smallest type that holds values of both `current` and `seen`.
    INTEGER + FLOAT -> FLOAT; any other mismatch -> TEXT.
    """
    if current is None:
        return seen
    if seen is None or seen == current:
        return current
    if current in NUMERIC_TYPES and seen in NUMERIC_TYPES:
        return DataType.FLOAT
    return DataType.TEXT


# ─── Ordering ───────────────────────────────────────────────────────────────

def sort_key(value: Any, null_order: NullOrder = NullOrder.LAST) -> Tuple:
    """
    Key placing NULL at the configured extreme.
    Non-NULL values keep Python ordering: ints and floats compare
    numerically, text lexicographically, False < True.
    """
    if value is None:
        return (0,) if null_order == NullOrder.FIRST else (2,)
    return (1, value)


def format_value(value: Any) -> str:
    """Render a value as CSV text. NULL is the empty field."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)

