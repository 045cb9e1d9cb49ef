"""
CsvQL Logical Plan Nodes
========================
Data-agnostic representation of a query.
Every node's output schema is derived from its children's schemas
and its own parameters; nothing here touches data.
"""

from dataclasses import dataclass
from typing import Any, List, Tuple

from planning.expressions import BoundExpr, AggregateCall, output_type
from storage.schema import Column, Schema


@dataclass
class LogicalNode:
    """Base class for logical plan nodes."""
    def children(self) -> List['LogicalNode']:
        return []

    def schema(self) -> Schema:
        raise NotImplementedError


@dataclass
class SortKey:
    """One ORDER BY key, bound against the sort input."""
    expr: BoundExpr
    ascending: bool = True

    def __str__(self) -> str:
        return f"{self.expr} {'ASC' if self.ascending else 'DESC'}"


@dataclass
class LogicalScan(LogicalNode):
    """Read every row of the source table."""
    table_name: str
    source_schema: Schema

    def schema(self) -> Schema:
        return self.source_schema


@dataclass
class LogicalValues(LogicalNode):
    """
    Produce constant rows.
    Used for SELECT without FROM: one row with no columns.
    """
    rows: List[Tuple[Any, ...]]
    output_schema: Schema

    def schema(self) -> Schema:
        return self.output_schema


@dataclass
class LogicalFilter(LogicalNode):
    """Keep rows whose predicate is TRUE."""
    child: LogicalNode
    predicate: BoundExpr

    def children(self): return [self.child]

    def schema(self) -> Schema:
        return self.child.schema()


@dataclass
class LogicalAggregate(LogicalNode):
    """
    Group rows by group_by and compute aggregates per group.
    Output: group columns first, then one column per aggregate.
    No group_by means a single implicit group.
    """
    child: LogicalNode
    group_by: List[BoundExpr]
    group_names: List[str]
    aggregates: List[AggregateCall]
    aggregate_names: List[str]

    def children(self): return [self.child]

    def schema(self) -> Schema:
        input_schema = self.child.schema()
        columns = [Column(name, output_type(expr, input_schema))
                   for expr, name in zip(self.group_by, self.group_names)]
        columns += [Column(name, output_type(call, input_schema))
                    for call, name in zip(self.aggregates, self.aggregate_names)]
        return Schema(columns)


@dataclass
class LogicalHaving(LogicalNode):
    """Filter over aggregate output."""
    child: LogicalNode
    predicate: BoundExpr

    def children(self): return [self.child]

    def schema(self) -> Schema:
        return self.child.schema()


@dataclass
class LogicalProject(LogicalNode):
    """Project expressions to output columns."""
    child: LogicalNode
    expressions: List[BoundExpr]
    aliases: List[str]  # Output column names

    def children(self): return [self.child]

    def schema(self) -> Schema:
        input_schema = self.child.schema()
        return Schema([Column(alias, output_type(expr, input_schema))
                       for expr, alias in zip(self.expressions, self.aliases)])


@dataclass
class LogicalSort(LogicalNode):
    """Stable sort by keys, first key most significant."""
    child: LogicalNode
    keys: List[SortKey]

    def children(self): return [self.child]

    def schema(self) -> Schema:
        return self.child.schema()


@dataclass
class LogicalLimit(LogicalNode):
    """Emit at most `count` rows."""
    child: LogicalNode
    count: int

    def children(self): return [self.child]

    def schema(self) -> Schema:
        return self.child.schema()
