"""
CsvQL Logical Planner
=====================
Transforms AST into a Logical Plan.
Binds names against the source schema, checks types and fixes the
evaluation order of the SELECT clauses:

    Scan -> Filter(WHERE) -> Aggregate -> Having -> Project -> Sort -> Limit

Aggregation is introduced when the query has GROUP BY, HAVING, or any
aggregate call in SELECT / ORDER BY. Above the Aggregate node, group
expressions and aggregate calls are rewritten into references to the
aggregate's output columns; any other column reference there is an error.

ORDER BY keys may name an output alias, a 1-based output position, or
any expression over the input. Keys that are not output columns are
projected as hidden columns and stripped again after sorting.
"""

from typing import List, Optional, Tuple

from parser.ast_nodes import (
    Statement, SelectStmt, ExplainStmt, CopyStmt,
    Expression, Literal, QualifiedName, UnaryExpr, GroupingExpr, is_star
)
from parser.tokenizer import TokenType
from planning import expressions as bx
from planning.binder import Binder, PlanError
from planning.expressions import (
    BoundExpr, SqlTypeError, contains_aggregate, aggregate_calls, expression_type
)
from planning.logical_plan import (
    LogicalNode, LogicalScan, LogicalValues, LogicalFilter, LogicalAggregate, LogicalHaving,
    LogicalProject, LogicalSort, LogicalLimit, SortKey
)
from storage.schema import Schema
from storage.types import DataType, type_name


class Planner:
    """
    Converts AST to Logical Plan.

    `source` is the single queryable relation: any object with
    `table_name` and `schema` (CsvSource, MemorySource). Without a source
    only FROM-less queries such as `SELECT 1 + 1` can be planned.
    """

    def __init__(self, source=None):
        self.source = source

    def plan(self, stmt: Statement) -> LogicalNode:
        """Create logical plan from statement."""
        if isinstance(stmt, SelectStmt):
            return self._plan_select(stmt)
        if isinstance(stmt, ExplainStmt):
            return self._plan_select(stmt.inner)
        if isinstance(stmt, CopyStmt):
            return self._plan_select(stmt.query)
        raise NotImplementedError(f"Statement type {type(stmt)} not supported")

    # ─── SELECT ─────────────────────────────────────────────────────

    def _plan_select(self, stmt: SelectStmt) -> LogicalNode:
        # 1. Source (FROM or one empty row)
        if stmt.from_table is not None:
            node = self._plan_source(stmt.from_table)
            table_name = self.source.table_name
        else:
            node = LogicalValues(rows=[()], output_schema=Schema([]))
            table_name = None

        input_schema = node.schema()
        binder = Binder(input_schema, table_name)

        # 2. Filter (WHERE)
        if stmt.where is not None:
            predicate = binder.bind(stmt.where, "WHERE")
            check_predicate(predicate, input_schema, "WHERE")
            node = LogicalFilter(node, predicate)

        # 3. Bind the remaining clauses against the input
        select_exprs, select_names = self._bind_select_list(stmt, binder)
        group_exprs = self._bind_group_by(stmt, binder, select_exprs, select_names)
        having = None
        if stmt.having is not None:
            having = binder.bind(stmt.having, "HAVING", allow_aggregates=True)
        order_items = self._bind_order_by(stmt, binder, select_names)

        order_input_exprs = [value for kind, value, _ in order_items if kind == "input"]
        aggregating = (bool(group_exprs) or having is not None
                       or any(contains_aggregate(e) for e in select_exprs + order_input_exprs))

        # 4. Aggregate + Having
        if aggregating:
            calls: List[bx.AggregateCall] = []
            for expr in select_exprs + ([having] if having is not None else []) + order_input_exprs:
                for call in aggregate_calls(expr):
                    if call not in calls:
                        calls.append(call)

            names = unique_names([e.display_name() for e in group_exprs]
                                  + [c.display_name() for c in calls])
            node = LogicalAggregate(node, group_exprs, names[:len(group_exprs)],
                                    calls, names[len(group_exprs):])
            agg_schema = node.schema()

            def rewrite(expr: BoundExpr) -> BoundExpr:
                return _rewrite_over_aggregate(expr, group_exprs, calls, agg_schema)

            if having is not None:
                predicate = rewrite(having)
                check_predicate(predicate, agg_schema, "HAVING")
                node = LogicalHaving(node, predicate)

            select_exprs = [rewrite(e) for e in select_exprs]
            order_items = [(kind, rewrite(value) if kind == "input" else value, asc)
                           for kind, value, asc in order_items]

        # 5. Project, with hidden columns for sort keys not in the output
        project_exprs = list(select_exprs)
        key_positions: List[Tuple[int, bool]] = []
        for kind, value, ascending in order_items:
            if kind == "output":
                index = value
            elif value in project_exprs:
                index = project_exprs.index(value)
            else:
                project_exprs.append(value)
                index = len(project_exprs) - 1
            key_positions.append((index, ascending))

        hidden_names = [e.display_name() for e in project_exprs[len(select_exprs):]]
        project_names = unique_names(select_names + hidden_names)
        node = LogicalProject(node, project_exprs, project_names)

        # 6. Sort
        if key_positions:
            keys = [SortKey(bx.ColumnRef(i, project_names[i]), asc) for i, asc in key_positions]
            node = LogicalSort(node, keys)

        if len(project_exprs) > len(select_exprs):
            visible = range(len(select_exprs))
            node = LogicalProject(node, [bx.ColumnRef(i, project_names[i]) for i in visible],
                                  project_names[:len(select_exprs)])

        # 7. Limit
        if stmt.limit is not None:
            node = LogicalLimit(node, self._limit_count(stmt.limit))

        return node

    def _plan_source(self, from_table: QualifiedName) -> LogicalScan:
        name = from_table.name
        if self.source is None:
            raise PlanError(f"Table '{name}' does not exist")
        if name.lower() != self.source.table_name.lower():
            raise PlanError(f"Table '{name}' does not exist "
                            f"(available: '{self.source.table_name}')")
        return LogicalScan(self.source.table_name, self.source.schema)

    # ─── Clause Binding ─────────────────────────────────────────────

    def _bind_select_list(self, stmt: SelectStmt, binder: Binder) -> Tuple[List[BoundExpr], List[str]]:
        exprs = []
        names = []
        for item in stmt.columns:
            if is_star(item.expr):
                if stmt.from_table is None:
                    raise PlanError("SELECT * requires a FROM clause")
                for i, col in enumerate(binder.schema.columns):
                    exprs.append(bx.ColumnRef(i, col.name))
                    names.append(col.name)
                continue

            bound = binder.bind(item.expr, "SELECT", allow_aggregates=True)
            exprs.append(bound)
            names.append(item.alias or bound.display_name())
        return exprs, names

    def _bind_group_by(self, stmt: SelectStmt, binder: Binder,
                       select_exprs: List[BoundExpr], select_names: List[str]) -> List[BoundExpr]:
        group_exprs: List[BoundExpr] = []
        for item in stmt.group_by or []:
            position = _position(item)
            if position is not None:
                bound = self._select_at(position, select_exprs, "GROUP BY")
            else:
                alias_index = self._alias_index(item, select_names)
                if alias_index is not None and not binder.schema.has_column(item.name):
                    bound = select_exprs[alias_index]
                else:
                    bound = binder.bind(item, "GROUP BY")

            if contains_aggregate(bound):
                raise PlanError(f"Aggregate function is not allowed in GROUP BY ({bound})")
            if bound not in group_exprs:
                group_exprs.append(bound)
        return group_exprs

    def _bind_order_by(self, stmt: SelectStmt, binder: Binder,
                       select_names: List[str]) -> List[Tuple[str, object, bool]]:
        """
        Resolve each ORDER BY item to ("output", column index, asc)
        or ("input", bound expression, asc).
        """
        items = []
        for item in stmt.order_by or []:
            position = _position(item.expr)
            if position is not None:
                if not 1 <= position <= len(select_names):
                    raise PlanError(f"ORDER BY position {position} is not in select list")
                items.append(("output", position - 1, item.ascending))
                continue

            alias_index = self._alias_index(item.expr, select_names)
            if alias_index is not None:
                items.append(("output", alias_index, item.ascending))
                continue

            bound = binder.bind(item.expr, "ORDER BY", allow_aggregates=True)
            items.append(("input", bound, item.ascending))
        return items

    def _select_at(self, position: int, select_exprs: List[BoundExpr], clause: str) -> BoundExpr:
        if not 1 <= position <= len(select_exprs):
            raise PlanError(f"{clause} position {position} is not in select list")
        return select_exprs[position - 1]

    def _alias_index(self, expr: Expression, select_names: List[str]) -> Optional[int]:
        if not isinstance(expr, QualifiedName) or len(expr.parts) != 1:
            return None
        for i, name in enumerate(select_names):
            if name.lower() == expr.name.lower():
                return i
        return None

    # ─── Checks ─────────────────────────────────────────────────────

    def _limit_count(self, expr: Expression) -> int:
        while isinstance(expr, GroupingExpr):
            expr = expr.inner
        negative = False
        if isinstance(expr, UnaryExpr) and expr.op in (TokenType.MINUS, TokenType.PLUS):
            negative = expr.op == TokenType.MINUS
            expr = expr.operand

        if not (isinstance(expr, Literal) and expr.data_type == DataType.INTEGER):
            raise PlanError(f"LIMIT must be an integer constant, got {expr}")
        count = -expr.value if negative else expr.value
        if count < 0:
            raise PlanError(f"LIMIT must not be negative, got {count}")
        return count


# ─── Helpers ────────────────────────────────────────────────────────────────

def _position(expr: Expression) -> Optional[int]:
    """1-based position for `ORDER BY 2` / `GROUP BY 1`, else None."""
    if isinstance(expr, Literal) and expr.data_type == DataType.INTEGER:
        return expr.value
    return None


def check_predicate(predicate: BoundExpr, schema: Schema, clause: str):
    """A filter condition must be BOOLEAN (or an untyped NULL)."""
    dtype = expression_type(predicate, schema)
    if dtype is not None and dtype != DataType.BOOLEAN:
        raise SqlTypeError(f"{clause} condition must be BOOLEAN, got {type_name(dtype)}")


def unique_names(names: List[str]) -> List[str]:
    """Suffix repeated names (case-insensitive) with _1, _2, ... keeping order."""
    seen = set()
    result = []
    for name in names:
        candidate = name
        n = 1
        while candidate.lower() in seen:
            candidate = f"{name}_{n}"
            n += 1
        seen.add(candidate.lower())
        result.append(candidate)
    return result


def _rewrite_over_aggregate(expr: BoundExpr, group_exprs: List[BoundExpr],
                            calls: List[bx.AggregateCall], agg_schema: Schema) -> BoundExpr:
    """Re-express `expr` over the aggregate's output columns."""
    if expr in group_exprs:
        index = group_exprs.index(expr)
        return bx.ColumnRef(index, agg_schema.columns[index].name)
    if isinstance(expr, bx.AggregateCall):
        index = len(group_exprs) + calls.index(expr)
        return bx.ColumnRef(index, agg_schema.columns[index].name)
    if isinstance(expr, bx.ColumnRef):
        raise PlanError(f"Column '{expr.name}' must appear in the GROUP BY clause "
                        f"or be used in an aggregate function")
    if isinstance(expr, bx.Literal):
        return expr

    def recurse(e):
        return _rewrite_over_aggregate(e, group_exprs, calls, agg_schema)

    if isinstance(expr, bx.UnaryOp):
        return bx.UnaryOp(expr.op, recurse(expr.operand))
    if isinstance(expr, bx.BinaryOp):
        return bx.BinaryOp(expr.op, recurse(expr.left), recurse(expr.right))
    if isinstance(expr, bx.IsNull):
        return bx.IsNull(recurse(expr.operand), expr.negated)
    raise NotImplementedError(f"Expression type {type(expr)} not supported")
