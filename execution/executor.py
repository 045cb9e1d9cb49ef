"""
CsvQL Executor
==============
End-to-end SQL Execution Engine.
Pipeline: SQL -> Parser -> Logical Planner -> Physical Planner -> Execution.

Statements:
  SELECT      -> rows streamed from the operator tree
  EXPLAIN     -> one TEXT row per plan line; nothing is executed
  COPY ... TO -> query result written as CSV; returns the row count
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional

from parser import parse
from parser.ast_nodes import Statement, ExplainStmt, CopyStmt
from planning.logical_plan import LogicalNode
from planning.planner import Planner
from execution.planner import PhysicalPlanner
from execution.context import ExecutionContext
from execution.explain import format_plan, format_plan_lines
from execution.physical_plan import PhysicalNode, Row
from storage.csv_sink import CsvSink
from storage.schema import Column, Schema
from storage.types import DataType

logger = logging.getLogger(__name__)

EXPLAIN_COLUMN = "QUERY PLAN"


@dataclass
class QueryResult:
    """
    Outcome of one statement.
    rows is a lazy iterator, or None for statements without a result set.
    """
    schema: Schema
    rows: Optional[Iterator[Row]] = None
    message: str = ""

    @property
    def column_names(self) -> List[str]:
        return self.schema.column_names()

    def fetchall(self) -> List[Row]:
        return list(self.rows) if self.rows is not None else []


class Executor:
    """
    Executes SQL queries against the context's source.
    """
    def __init__(self, context: ExecutionContext):
        self.context = context
        self.logical_planner = Planner(context.source)
        self.physical_planner = PhysicalPlanner(context)

    def run(self, sql: str) -> QueryResult:
        """Parse and run one statement."""
        return self.run_statement(parse(sql))

    def run_statement(self, stmt: Statement) -> QueryResult:
        if isinstance(stmt, ExplainStmt):
            return self.explain(stmt)
        if isinstance(stmt, CopyStmt):
            count = self.copy_to(stmt)
            return QueryResult(Schema([]), None, f"COPY {count}")

        physical_plan = self.prepare(stmt)
        return QueryResult(physical_plan.schema, self._stream(physical_plan))

    def prepare(self, stmt: Statement) -> PhysicalNode:
        """Plan a statement down to an unopened operator tree."""
        return self.lower(self.logical_planner.plan(stmt))

    def lower(self, logical_plan: LogicalNode) -> PhysicalNode:
        logger.debug("Logical plan:\n%s", format_plan(logical_plan))
        physical_plan = self.physical_planner.plan(logical_plan)
        logger.debug("Physical plan:\n%s", format_plan(physical_plan))
        return physical_plan

    def run_plan(self, logical_plan: LogicalNode) -> QueryResult:
        """Run an already built logical plan (see execution.dataframe)."""
        physical_plan = self.lower(logical_plan)
        return QueryResult(physical_plan.schema, self._stream(physical_plan))

    def execute(self, sql: str) -> Iterator[Row]:
        """
        Execute SQL query and yield result rows.
        """
        result = self.run(sql)
        if result.rows is not None:
            yield from result.rows

    def execute_and_fetchall(self, sql: str) -> List[Row]:
        """
        Execute and return all rows.
        Helper for tests/API.
        """
        return list(self.execute(sql))

    def query(self, sql: str) -> QueryResult:
        """Run a statement and materialize its rows."""
        result = self.run(sql)
        return QueryResult(result.schema, iter(result.fetchall()), result.message)

    # ─── EXPLAIN ────────────────────────────────────────────────────

    def explain(self, stmt: ExplainStmt) -> QueryResult:
        """Plan without opening any operator."""
        logical_plan = self.logical_planner.plan(stmt)
        if stmt.level == "logical":
            lines = format_plan_lines(logical_plan)
        else:
            lines = format_plan_lines(self.physical_planner.plan(logical_plan))
        schema = Schema([Column(EXPLAIN_COLUMN, DataType.TEXT)])
        return QueryResult(schema, iter([(line,) for line in lines]))

    def explain_text(self, sql: str) -> str:
        """Physical plan of a SELECT as text."""
        return format_plan(self.prepare(parse(sql)))

    # ─── COPY ───────────────────────────────────────────────────────

    def copy_to(self, stmt: CopyStmt) -> int:
        """Run the COPY query and write its rows, header first. Returns rows written."""
        physical_plan = self.prepare(stmt)
        path = self.context.resolve_output_path(stmt.path)
        sink = CsvSink(path)
        return sink.write(physical_plan.schema, self._stream(physical_plan))

    def _stream(self, physical_plan: PhysicalNode) -> Iterator[Row]:
        # Resource Guarantee: Ensure close() is called.
        try:
            physical_plan.open()
            while True:
                row = physical_plan.next()
                if row is None:
                    break
                yield row
        finally:
            physical_plan.close()
