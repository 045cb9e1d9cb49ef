"""
CsvQL Result Renderer
=====================
Formats query results as aligned ASCII tables.

Features:
  - Streaming: prints rows as they arrive (no full materialization)
  - Auto-column-width with configurable max
  - NULL displayed distinctly
  - Row count + elapsed time footer
  - Modes: table, vertical, raw, csv
  - Configurable: headers, timer, display limit
"""

import csv
import sys
import time
from typing import Any, Dict, Iterator, List, Optional, Sequence, TextIO

from storage.types import format_value

MODES = ("table", "vertical", "raw", "csv")


class Renderer:
    """
    Streaming result renderer with configurable display modes.
    Rows are tuples aligned with `column_names`.
    """

    def __init__(self, output: TextIO = None):
        self.output = output or sys.stdout
        self.mode: str = "table"        # table, vertical, raw, csv
        self.show_headers: bool = True
        self.show_timer: bool = True
        self.display_limit: Optional[int] = None  # None = no limit
        self.max_col_width: int = 50

    # ─── Public API ─────────────────────────────────────────────────

    def render_rows(self, rows: Iterator[Sequence[Any]], column_names: List[str]) -> int:
        """
        Render query results. Streams rows from iterator.
        Returns number of rows rendered.

        Strategy for table mode:
          - Buffer first N rows to determine column widths
          - Then stream remaining rows using those widths
          - This balances alignment quality with streaming
        """
        start = time.perf_counter()

        if self.mode == "raw":
            count = self._render_raw(rows, column_names)
        elif self.mode == "vertical":
            count = self._render_vertical(rows, column_names)
        elif self.mode == "csv":
            count = self._render_csv(rows, column_names)
        else:
            count = self._render_table(rows, column_names)

        elapsed = time.perf_counter() - start

        # csv output stays machine-readable
        if self.mode != "csv":
            if self.show_timer:
                self._print(f"\n{count} row(s) returned ({elapsed:.3f}s)")
            else:
                self._print(f"\n{count} row(s) returned")

        return count

    def render_plan(self, plan_text: str):
        """Render an execution plan block."""
        self._print("=== Execution Plan ===")
        self._print(plan_text)

    def render_message(self, message: str):
        """Render a non-query result message (COPY, meta-commands)."""
        if message:
            self._print(message)

    def render_error(self, error: BaseException):
        """Render an error with classification prefix."""
        error_type = type(error).__name__
        # Classify known error types
        prefix = self._classify_error(error_type)
        self._print(f"{prefix}: {error}")

    # ─── Table Mode (streaming with width sampling) ─────────────────

    def _render_table(self, rows: Iterator, column_names: List[str]) -> int:
        """
        Render rows in aligned table format.
        Buffers first batch to determine column widths, then streams.
        """
        # Buffer first batch (up to 100 rows) for width calculation
        buffer = []
        sample_size = 100
        headers = list(column_names)
        truncated = False

        for row in rows:
            if self.display_limit is not None and len(buffer) >= self.display_limit:
                truncated = True
                break
            buffer.append(self._extract_values(row, headers))
            if len(buffer) >= sample_size:
                break

        if not buffer and not headers:
            return 0

        # Calculate column widths from buffer
        widths = self._calculate_widths(headers, buffer)

        # Print header
        if self.show_headers:
            self._print_table_separator(widths, headers)
            self._print_table_row(widths, headers, {h: h for h in headers})
            self._print_table_separator(widths, headers)

        # Print buffered rows
        count = 0
        for vals in buffer:
            self._print_table_row(widths, headers, vals)
            count += 1

        # Stream remaining rows
        if not truncated:
            for row in rows:
                if self.display_limit is not None and count >= self.display_limit:
                    truncated = True
                    break
                self._print_table_row(widths, headers, self._extract_values(row, headers))
                count += 1

        # Footer separator
        if self.show_headers and count > 0:
            self._print_table_separator(widths, headers)
        if truncated:
            self._print(f"... (display limit {self.display_limit} reached)")

        return count

    def _calculate_widths(self, headers: List[str], rows: List[Dict]) -> Dict[str, int]:
        """Calculate column widths from headers and sample rows."""
        widths = {}
        for h in headers:
            widths[h] = min(len(h), self.max_col_width)

        for row in rows:
            for h in headers:
                val = self._format_value(row.get(h))
                widths[h] = max(widths[h], min(len(val), self.max_col_width))

        return widths

    def _print_table_separator(self, widths: Dict[str, int], headers: List[str]):
        """Print +----+------+ separator line."""
        parts = ["+"]
        for h in headers:
            parts.append("-" * (widths[h] + 2) + "+")
        self._print("".join(parts))

    def _print_table_row(self, widths: Dict[str, int], headers: List[str], vals: Dict):
        """Print | col1 | col2 | row."""
        parts = ["|"]
        for h in headers:
            val_str = self._format_value(vals.get(h))
            if len(val_str) > self.max_col_width:
                val_str = val_str[:self.max_col_width - 3] + "..."
            w = widths[h]
            # Right-align numbers, left-align strings
            raw_val = vals.get(h)
            if isinstance(raw_val, (int, float)) and not isinstance(raw_val, bool):
                parts.append(f" {val_str:>{w}} |")
            else:
                parts.append(f" {val_str:<{w}} |")
        self._print("".join(parts))

    # ─── Vertical Mode ──────────────────────────────────────────────

    def _render_vertical(self, rows: Iterator, column_names: List[str]) -> int:
        """Render each row as key: value pairs."""
        count = 0
        headers = list(column_names)
        max_key_len = max((len(h) for h in headers), default=0)

        for row in rows:
            if self.display_limit is not None and count >= self.display_limit:
                self._print(f"... (display limit {self.display_limit} reached)")
                break
            vals = self._extract_values(row, headers)

            count += 1
            self._print(f"*** Row {count} ***")
            for h in headers:
                val_str = self._format_value(vals.get(h))
                self._print(f"  {h:>{max_key_len}}: {val_str}")

        return count

    # ─── Raw / CSV Modes ────────────────────────────────────────────

    def _render_raw(self, rows: Iterator, column_names: List[str]) -> int:
        """Render values separated by pipes, no formatting."""
        count = 0
        if self.show_headers:
            self._print("|".join(column_names))

        for row in rows:
            if self.display_limit is not None and count >= self.display_limit:
                break
            self._print("|".join(self._format_value(v) for v in row))
            count += 1

        return count

    def _render_csv(self, rows: Iterator, column_names: List[str]) -> int:
        """Render as CSV text; NULL is the empty field, as COPY writes it."""
        writer = csv.writer(self.output, lineterminator="\n")
        if self.show_headers:
            writer.writerow(column_names)

        count = 0
        for row in rows:
            if self.display_limit is not None and count >= self.display_limit:
                break
            writer.writerow([format_value(v) for v in row])
            count += 1
        return count

    # ─── Helpers ────────────────────────────────────────────────────

    def _extract_values(self, row: Sequence[Any], headers: List[str]) -> Dict[str, Any]:
        """Map a positional row onto the column names."""
        return dict(zip(headers, row))

    def _format_value(self, value) -> str:
        """Format a single value for display."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float):
            # Keep one decimal on whole floats so they read as FLOAT
            if value.is_integer():
                return f"{value:.1f}"
            return f"{value:.6g}"
        return str(value)

    def _classify_error(self, error_type: str) -> str:
        """Map error class name to user-friendly prefix."""
        mapping = {
            "ParseError": "SyntaxError",
            "PlanError": "PlanError",
            "SqlTypeError": "TypeError",
            "CsvSourceError": "IOError",
            "SessionError": "SessionError",
            "RuntimeError": "ExecutionError",
            "ValueError": "ExecutionError",
            "KeyError": "ExecutionError",
            "TypeError": "ExecutionError",
            "KeyboardInterrupt": "Interrupted",
        }
        return mapping.get(error_type, f"Error[{error_type}]")

    def _print(self, text: str):
        """Print a line to the output stream."""
        print(text, file=self.output)
