"""
CsvQL Plan Formatting
=====================
Renders logical and physical plan trees as indented text for EXPLAIN.
One line per node, children indented two spaces below their parent:

    LimitExec (count=1)
      SortExec (keys=[label ASC], nulls=last)
        ProjectExec (columns=[label])
          FilterExec (predicate=id > 1)
            SeqScanExec (file=t.csv, schema=[id: INTEGER, label: TEXT])

Formatting never opens an operator, so no data is read.
"""

from typing import Dict, List

from planning.logical_plan import (
    LogicalScan, LogicalValues, LogicalFilter, LogicalAggregate, LogicalHaving,
    LogicalProject, LogicalSort, LogicalLimit
)
from execution.physical_plan import (
    SeqScanExec, ValuesExec, FilterExec, HashAggregateExec, ProjectExec, SortExec, LimitExec
)


def _projection(exprs, names) -> str:
    items = []
    for expr, name in zip(exprs, names):
        text = str(expr)
        items.append(text if text == name else f"{text} AS {name}")
    return "[" + ", ".join(items) + "]"


def _list(items) -> str:
    return "[" + ", ".join(str(i) for i in items) + "]"


def _details(node) -> Dict[str, str]:
    """Node-specific attributes shown after the class name."""
    # Logical nodes
    if isinstance(node, LogicalScan):
        return {"table": node.table_name, "schema": f"[{node.source_schema}]"}
    if isinstance(node, LogicalValues):
        return {"rows": str(len(node.rows))}
    if isinstance(node, (LogicalFilter, LogicalHaving)):
        return {"predicate": str(node.predicate)}
    if isinstance(node, LogicalAggregate):
        return {"group_by": _list(node.group_by), "aggregates": _list(node.aggregates)}
    if isinstance(node, LogicalProject):
        return {"columns": _projection(node.expressions, node.aliases)}
    if isinstance(node, LogicalSort):
        return {"keys": _list(node.keys)}
    if isinstance(node, LogicalLimit):
        return {"count": str(node.count)}

    # Physical nodes
    if isinstance(node, SeqScanExec):
        return {"file": node.source.file_name, "schema": f"[{node.schema}]"}
    if isinstance(node, ValuesExec):
        return {"rows": str(len(node.rows))}
    if isinstance(node, FilterExec):
        return {"predicate": str(node.predicate)}
    if isinstance(node, HashAggregateExec):
        return {"group_by": _list(node.group_by), "aggregates": _list(node.aggregates)}
    if isinstance(node, ProjectExec):
        return {"columns": _projection(node.exprs, node.schema.column_names())}
    if isinstance(node, SortExec):
        return {"keys": _list(node.keys), "nulls": node.null_order.value}
    if isinstance(node, LimitExec):
        return {"count": str(node.limit)}
    return {}


def format_plan_lines(node, indent: int = 0) -> List[str]:
    """Recursively format a plan node tree, one string per node."""
    prefix = "  " * indent
    line = f"{prefix}{node.__class__.__name__}"
    attrs = _details(node)
    if attrs:
        detail = ", ".join(f"{k}={v}" for k, v in attrs.items())
        line += f" ({detail})"

    lines = [line]
    for child in node.children():
        lines.extend(format_plan_lines(child, indent + 1))
    return lines


def format_plan(node) -> str:
    return "\n".join(format_plan_lines(node))
