"""
CsvQL DataFrame
===============
Builds a logical plan one operator at a time, without SQL text.

Usage:
    df = DataFrame.from_csv("data/t.csv")
    rows = (df.filter("id > 1")
              .sort(["label"])
              .limit(1)
              .projection(["label"])
              .collect())

Each builder call binds its expression fragments against the current
plan's output schema and returns a new DataFrame; the receiver is left
unchanged. Fragments use the SQL expression grammar. Projection and
aggregate items may carry an alias (`id * 2 AS twice`), sort keys a
direction (`label DESC`).

Unlike SELECT, the builder applies operators in the order they are
called: a filter after aggregate() plays the part of HAVING.
"""

from typing import List, Optional

from parser import parse_expression, parse_select_item, parse_order_item
from parser.ast_nodes import is_star
from planning import expressions as bx
from planning.binder import Binder, PlanError
from planning.logical_plan import (
    LogicalNode, LogicalScan, LogicalFilter, LogicalAggregate, LogicalProject,
    LogicalSort, LogicalLimit, SortKey
)
from planning.planner import check_predicate, unique_names
from execution.context import ExecutionContext
from execution.executor import Executor, QueryResult
from execution.explain import format_plan
from execution.physical_plan import Row
from storage.csv_sink import CsvSink
from storage.csv_source import CsvSource, DEFAULT_INFER_ROWS
from storage.schema import Schema
from storage.types import NullOrder


class DataFrame:
    """A logical plan over one source, plus the source it scans."""

    def __init__(self, plan: LogicalNode, source):
        self.plan = plan
        self.source = source

    @classmethod
    def from_csv(cls, path: str, delimiter: str = ",",
                 infer_rows: int = DEFAULT_INFER_ROWS) -> "DataFrame":
        return cls.from_source(CsvSource(path, delimiter=delimiter, infer_rows=infer_rows))

    @classmethod
    def from_source(cls, source) -> "DataFrame":
        """Scan of any row source (CsvSource, MemorySource)."""
        return cls(LogicalScan(source.table_name, source.schema), source)

    @property
    def logical_plan(self) -> LogicalNode:
        return self.plan

    def schema(self) -> Schema:
        return self.plan.schema()

    # ─── Builders ───────────────────────────────────────────────────

    def projection(self, exprs: List[str]) -> "DataFrame":
        if not exprs:
            raise PlanError("projection() needs at least one expression")
        binder = self._binder()
        bound: List[bx.BoundExpr] = []
        names: List[str] = []
        for text in exprs:
            item = parse_select_item(text)
            if is_star(item.expr):
                for i, col in enumerate(binder.schema.columns):
                    bound.append(bx.ColumnRef(i, col.name))
                    names.append(col.name)
                continue
            expr = binder.bind(item.expr, "projection")
            bound.append(expr)
            names.append(item.alias or expr.display_name())
        return self._derive(LogicalProject(self.plan, bound, unique_names(names)))

    def filter(self, predicate: str) -> "DataFrame":
        bound = self._binder().bind(parse_expression(predicate), "filter")
        check_predicate(bound, self.schema(), "filter")
        return self._derive(LogicalFilter(self.plan, bound))

    def sort(self, exprs: List[str], ascending: Optional[List[bool]] = None) -> "DataFrame":
        """
        Stable sort by `exprs`, first key most significant.
        `ascending` gives one direction per key and overrides ASC/DESC
        written in the key text.
        """
        if not exprs:
            raise PlanError("sort() needs at least one key")
        if ascending is not None and len(ascending) != len(exprs):
            raise PlanError(f"sort() got {len(exprs)} key(s) but "
                            f"{len(ascending)} direction(s)")
        binder = self._binder()
        keys = []
        for i, text in enumerate(exprs):
            item = parse_order_item(text)
            direction = item.ascending if ascending is None else ascending[i]
            keys.append(SortKey(binder.bind(item.expr, "sort"), direction))
        return self._derive(LogicalSort(self.plan, keys))

    def limit(self, count: int) -> "DataFrame":
        if isinstance(count, bool) or not isinstance(count, int):
            raise PlanError(f"LIMIT must be an integer, got {count!r}")
        if count < 0:
            raise PlanError(f"LIMIT must not be negative, got {count}")
        return self._derive(LogicalLimit(self.plan, count))

    def aggregate(self, group_by: List[str], aggregates: List[str]) -> "DataFrame":
        """
        Group by `group_by` and compute `aggregates`, each a single
        aggregate call such as `COUNT(*)` or `SUM(score) AS total`.
        Output: group columns first, then one column per aggregate.
        An empty `group_by` aggregates the whole input as one group.
        """
        binder = self._binder()
        group_exprs: List[bx.BoundExpr] = []
        group_names: List[str] = []
        for text in group_by:
            item = parse_select_item(text)
            expr = binder.bind(item.expr, "GROUP BY")
            if expr in group_exprs:
                continue
            group_exprs.append(expr)
            group_names.append(item.alias or expr.display_name())

        calls: List[bx.AggregateCall] = []
        call_names: List[str] = []
        for text in aggregates:
            item = parse_select_item(text)
            expr = binder.bind(item.expr, "aggregate", allow_aggregates=True)
            if not isinstance(expr, bx.AggregateCall):
                raise PlanError(f"aggregate() expects aggregate function calls, got {expr}")
            calls.append(expr)
            call_names.append(item.alias or expr.display_name())

        names = unique_names(group_names + call_names)
        split = len(group_exprs)
        return self._derive(LogicalAggregate(self.plan, group_exprs, names[:split],
                                             calls, names[split:]))

    # ─── Execution ──────────────────────────────────────────────────

    def execute(self, null_order: NullOrder = NullOrder.LAST) -> QueryResult:
        """Run the plan; rows stream lazily from the returned result."""
        return self._executor(null_order).run_plan(self.plan)

    def collect(self, null_order: NullOrder = NullOrder.LAST) -> List[Row]:
        return self.execute(null_order).fetchall()

    def write_csv(self, path: str, null_order: NullOrder = NullOrder.LAST) -> int:
        """Stream the result into a CSV file. Returns rows written."""
        result = self.execute(null_order)
        return CsvSink(path).write(result.schema, result.rows)

    def explain(self, logical: bool = False) -> str:
        """Plan text; nothing is executed."""
        if logical:
            return format_plan(self.plan)
        return format_plan(self._executor(NullOrder.LAST).lower(self.plan))

    # ─── Internal ───────────────────────────────────────────────────

    def _binder(self) -> Binder:
        return Binder(self.schema(), self.source.table_name)

    def _derive(self, plan: LogicalNode) -> "DataFrame":
        return DataFrame(plan, self.source)

    def _executor(self, null_order: NullOrder) -> Executor:
        return Executor(ExecutionContext(source=self.source, null_order=null_order))

    def __repr__(self) -> str:
        return f"DataFrame({self.source.table_name!r}, {self.schema()})"
