"""
CsvQL Physical Planner
======================
Maps Logical Plan -> Physical Plan (Iterators).
One operator per logical node; Having becomes a FilterExec over the
aggregate output.
"""

from planning.logical_plan import (
    LogicalNode, LogicalScan, LogicalValues, LogicalFilter, LogicalAggregate, LogicalHaving,
    LogicalProject, LogicalSort, LogicalLimit
)
from execution.physical_plan import (
    PhysicalNode, SeqScanExec, ValuesExec, FilterExec, HashAggregateExec, ProjectExec,
    SortExec, LimitExec
)
from execution.context import ExecutionContext


class PhysicalPlanner:
    """
    Transforms Logical Plan tree into Physical Plan iterator tree.
    """
    def __init__(self, context: ExecutionContext):
        self.context = context

    def plan(self, node: LogicalNode) -> PhysicalNode:
        """Create physical plan from logical node."""

        if isinstance(node, LogicalScan):
            return self._plan_scan(node)
        if isinstance(node, LogicalValues):
            return ValuesExec(node.rows, node.schema())
        if isinstance(node, (LogicalFilter, LogicalHaving)):
            return FilterExec(self.plan(node.child), node.predicate)
        if isinstance(node, LogicalAggregate):
            return HashAggregateExec(self.plan(node.child), node.group_by,
                                     node.aggregates, node.schema())
        if isinstance(node, LogicalProject):
            return ProjectExec(self.plan(node.child), node.expressions, node.schema())
        if isinstance(node, LogicalSort):
            return SortExec(self.plan(node.child), node.keys, self.context.null_order)
        if isinstance(node, LogicalLimit):
            return LimitExec(self.plan(node.child), node.count)

        raise NotImplementedError(f"Logical node {type(node)} not supported")

    def _plan_scan(self, node: LogicalScan) -> SeqScanExec:
        source = self.context.source
        if source is None or source.table_name != node.table_name:
            raise RuntimeError(f"No source bound for table '{node.table_name}'")
        return SeqScanExec(source, node.schema())
