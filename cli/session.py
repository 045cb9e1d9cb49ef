"""
CsvQL Session
=============
Per-connection state object that wires the engine components together.

Owns:
  - The row source (one CSV file, or any object with table_name/schema/scan)
  - ExecutionContext + Executor
  - Statement statistics

Result contract for execute():
  - SELECT:  (row_iterator, "", [col_names])
  - EXPLAIN: (None, plan_text, None)
  - COPY:    (None, "COPY n", None)
"""

import logging
import os
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from execution.context import ExecutionContext
from execution.executor import Executor
from parser import parse
from parser.ast_nodes import ExplainStmt, SelectStmt
from storage.csv_source import CsvSource, DEFAULT_INFER_ROWS
from storage.types import NullOrder

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Session-level error (closed session, bad setting, etc.)."""
    pass


class Session:
    """
    Query session over one CSV file.

    Usage:
        session = Session("data/test.csv")
        rows, msg, cols = session.execute("SELECT * FROM test")
        for row in rows:
            print(row)
        session.close()
    """

    def __init__(self, csv_path: Optional[str] = None, *, delimiter: str = ",",
                 infer_rows: int = DEFAULT_INFER_ROWS,
                 null_order: NullOrder = NullOrder.LAST,
                 output_dir: Optional[str] = None,
                 source=None):
        if source is None and csv_path is not None:
            source = CsvSource(csv_path, delimiter=delimiter, infer_rows=infer_rows)
        self.source = source

        # ── Execution context ──
        self.context = ExecutionContext(
            source=self.source,
            null_order=null_order,
            output_dir=os.path.abspath(output_dir or os.getcwd()),
        )
        self.executor = Executor(self.context)

        # ── Session state ──
        self._closed: bool = False

        # ── Statistics ──
        self.stats = {
            "statements_executed": 0,
            "statements_failed": 0,
            "rows_returned": 0,
        }

    # ─── Query Execution ────────────────────────────────────────────

    def execute(self, sql: str) -> Tuple[Optional[Iterator[Sequence[Any]]], str, Optional[List[str]]]:
        """
        Execute a SQL statement.

        Returns: (row_iterator_or_None, message, column_names_or_None)
        """
        self._check_closed()
        self.stats["statements_executed"] += 1

        try:
            stmt = parse(sql)

            # ─ EXPLAIN (no execution) ─
            if isinstance(stmt, ExplainStmt):
                result = self.executor.explain(stmt)
                return None, "\n".join(line for (line,) in result.rows), None

            result = self.executor.run_statement(stmt)
        except Exception:
            self.stats["statements_failed"] += 1
            raise

        if result.rows is None:
            return None, result.message, None

        # Streaming: return iterator, caller consumes
        return self._wrap_iterator(result.rows), "", result.column_names

    def explain_plan(self, sql: str) -> Optional[str]:
        """Physical plan text for a SELECT, None for other statements."""
        stmt = parse(sql)
        if not isinstance(stmt, SelectStmt):
            return None
        result = self.executor.explain(ExplainStmt(inner=stmt, level="physical"))
        return "\n".join(line for (line,) in result.rows)

    # ─── Introspection ──────────────────────────────────────────────

    def describe(self) -> str:
        """Table name and schema of the source, one column per line."""
        self._check_closed()
        if self.source is None:
            return "No CSV file loaded."
        lines = [f"Table '{self.source.table_name}' ({self.source.file_name})"]
        for col in self.source.schema.columns:
            lines.append(f"  {col.name}: {col.data_type.value}")
        return "\n".join(lines)

    def set_null_order(self, value: str) -> str:
        try:
            self.context.null_order = NullOrder(value.lower())
        except ValueError:
            raise SessionError(f"Unknown NULL order '{value}', expected 'first' or 'last'") from None
        return f"NULL ordering: {self.context.null_order.value}"

    # ─── Internal ───────────────────────────────────────────────────

    def _wrap_iterator(self, rows):
        """Count rows while the caller consumes; closing it closes the pipeline."""
        try:
            for row in rows:
                self.stats["rows_returned"] += 1
                yield row
        except Exception:
            self.stats["statements_failed"] += 1
            raise
        finally:
            if hasattr(rows, "close"):
                rows.close()

    def _check_closed(self):
        if self._closed:
            raise SessionError("Session is closed")

    # ─── Lifecycle ──────────────────────────────────────────────────

    def close(self):
        """Close the session. Further statements raise SessionError."""
        if self._closed:
            return
        logger.debug("Session closed after %d statement(s)", self.stats["statements_executed"])
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
