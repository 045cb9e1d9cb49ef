"""
CsvQL Binder
============
Resolves AST expressions against an input schema.

- Column names become positional ColumnRefs (case-insensitive lookup)
- Qualified names (t.col) must use the table being queried
- Aggregate calls are only accepted where the caller allows them,
  and never nested
- Every bound expression is type-checked immediately, so type errors
  surface before any row is read
"""

from typing import Optional

from parser.ast_nodes import (
    Expression, Literal, QualifiedName, BinaryExpr, UnaryExpr, GroupingExpr, IsNullExpr,
    FunctionCall, is_star
)
from parser.tokenizer import TokenType
from planning import expressions as bx
from planning.expressions import (
    BoundExpr, BinaryOperator, UnaryOperator, AggregateFunction, expression_type, unary_result_type
)
from storage.schema import Schema


class PlanError(Exception):
    """Query is valid SQL but cannot be planned against the source."""
    pass


_BINARY_OPS = {
    TokenType.PLUS: BinaryOperator.ADD,
    TokenType.MINUS: BinaryOperator.SUB,
    TokenType.STAR: BinaryOperator.MUL,
    TokenType.SLASH: BinaryOperator.DIV,
    TokenType.PERCENT: BinaryOperator.MOD,
    TokenType.EQ: BinaryOperator.EQ,
    TokenType.NEQ: BinaryOperator.NEQ,
    TokenType.LT: BinaryOperator.LT,
    TokenType.LTE: BinaryOperator.LTE,
    TokenType.GT: BinaryOperator.GT,
    TokenType.GTE: BinaryOperator.GTE,
    TokenType.AND: BinaryOperator.AND,
    TokenType.OR: BinaryOperator.OR,
}


class Binder:
    """
    Binds expressions over one schema.

    Usage:
        binder = Binder(source.schema, "test")
        predicate = binder.bind(stmt.where, "WHERE")
    """

    def __init__(self, schema: Schema, table_name: Optional[str] = None):
        self.schema = schema
        self.table_name = table_name

    def bind(self, expr: Expression, clause: str, allow_aggregates: bool = False) -> BoundExpr:
        """
        Bind and type-check `expr`. `clause` names the SQL clause for error messages.
        Raises PlanError for unresolvable names and misplaced aggregates,
        SqlTypeError for operand type mismatches.
        """
        bound = self._bind(expr, clause, allow_aggregates, inside_aggregate=False)
        expression_type(bound, self.schema)
        return bound

    def _bind(self, expr: Expression, clause: str, allow_aggregates: bool,
              inside_aggregate: bool) -> BoundExpr:
        if isinstance(expr, Literal):
            return bx.Literal(expr.value, expr.data_type)

        if isinstance(expr, GroupingExpr):
            return self._bind(expr.inner, clause, allow_aggregates, inside_aggregate)

        if isinstance(expr, QualifiedName):
            return self._bind_column(expr, clause)

        if isinstance(expr, UnaryExpr):
            operand = self._bind(expr.operand, clause, allow_aggregates, inside_aggregate)
            if expr.op == TokenType.NOT:
                return bx.UnaryOp(UnaryOperator.NOT, operand)
            if expr.op == TokenType.MINUS:
                return bx.UnaryOp(UnaryOperator.NEG, operand)
            # Unary plus: numeric check only, no node
            unary_result_type(UnaryOperator.NEG, expression_type(operand, self.schema))
            return operand

        if isinstance(expr, BinaryExpr):
            op = _BINARY_OPS.get(expr.op)
            if op is None:
                raise PlanError(f"Unsupported operator {expr.op.name}")
            left = self._bind(expr.left, clause, allow_aggregates, inside_aggregate)
            right = self._bind(expr.right, clause, allow_aggregates, inside_aggregate)
            return bx.BinaryOp(op, left, right)

        if isinstance(expr, IsNullExpr):
            operand = self._bind(expr.expr, clause, allow_aggregates, inside_aggregate)
            return bx.IsNull(operand, negated=expr.not_null)

        if isinstance(expr, FunctionCall):
            return self._bind_aggregate(expr, clause, allow_aggregates, inside_aggregate)

        raise NotImplementedError(f"Expression type {type(expr)} not supported")

    def _bind_column(self, expr: QualifiedName, clause: str) -> bx.ColumnRef:
        if is_star(expr):
            raise PlanError(f"'*' is not allowed in {clause}")
        if len(expr.parts) > 2:
            raise PlanError(f"Invalid column reference '{expr}'")
        if len(expr.parts) == 2:
            qualifier = expr.parts[0]
            if self.table_name is None or qualifier.lower() != self.table_name.lower():
                raise PlanError(f"Unknown table '{qualifier}' in column reference '{expr}'")

        name = expr.name
        try:
            index = self.schema.column_index(name)
        except KeyError:
            raise PlanError(f"Column '{name}' does not exist") from None
        return bx.ColumnRef(index, self.schema.columns[index].name)

    def _bind_aggregate(self, expr: FunctionCall, clause: str, allow_aggregates: bool,
                        inside_aggregate: bool) -> bx.AggregateCall:
        name = expr.name.upper()
        if inside_aggregate:
            raise PlanError(f"Aggregate function calls cannot be nested ({expr})")
        if not allow_aggregates:
            raise PlanError(f"Aggregate function {name} is not allowed in {clause}")
        try:
            func = AggregateFunction[name]
        except KeyError:
            raise PlanError(f"Unknown function '{expr.name}'") from None

        if expr.star:
            return bx.AggregateCall(func, None, distinct=False)
        argument = self._bind(expr.args[0], clause, allow_aggregates, inside_aggregate=True)
        return bx.AggregateCall(func, argument, distinct=expr.distinct)
