"""
CsvQL Bound Expressions
=======================
Expressions after name resolution. Column references carry the position
of the column in the input schema, so evaluation never looks names up.

Variants (closed set, dispatched with isinstance):
  ColumnRef, Literal, UnaryOp, BinaryOp, IsNull, AggregateCall

All variants are frozen dataclasses: structurally comparable and hashable,
which the planner relies on to match SELECT/HAVING/ORDER BY expressions
against GROUP BY expressions and to share one accumulator between
identical aggregate calls.

Typing rules live here as well (binary_result_type and friends) so the
planner's static checks and the evaluator's runtime checks agree.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional, Tuple

from storage.schema import Schema
from storage.types import DataType, NUMERIC_TYPES, type_name


class SqlTypeError(TypeError):
    """Operand types that no numeric promotion can reconcile."""
    pass


class UnaryOperator(Enum):
    NEG = "-"
    NOT = "NOT"


class BinaryOperator(Enum):
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    EQ = "="
    NEQ = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    AND = "AND"
    OR = "OR"


ARITHMETIC_OPS = frozenset({BinaryOperator.ADD, BinaryOperator.SUB, BinaryOperator.MUL,
                            BinaryOperator.DIV, BinaryOperator.MOD})
COMPARISON_OPS = frozenset({BinaryOperator.EQ, BinaryOperator.NEQ, BinaryOperator.LT,
                            BinaryOperator.LTE, BinaryOperator.GT, BinaryOperator.GTE})
LOGICAL_OPS = frozenset({BinaryOperator.AND, BinaryOperator.OR})


class AggregateFunction(Enum):
    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"


# ═══════════════════════════════════════════════════════════════════════════
# Variants
# ═══════════════════════════════════════════════════════════════════════════

class BoundExpr:
    """Base class for bound expressions."""

    def children(self) -> Tuple["BoundExpr", ...]:
        return ()

    def display_name(self) -> str:
        return str(self)


@dataclass(frozen=True)
class ColumnRef(BoundExpr):
    """Reference to the input column at `index`. `name` is for display only."""
    index: int
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Literal(BoundExpr):
    """Constant value. data_type is None for an untyped NULL."""
    value: Any
    data_type: Optional[DataType]

    def __str__(self) -> str:
        if self.value is None: return "NULL"
        if isinstance(self.value, bool): return "TRUE" if self.value else "FALSE"
        if isinstance(self.value, str): return "'" + self.value.replace("'", "''") + "'"
        return str(self.value)


@dataclass(frozen=True)
class UnaryOp(BoundExpr):
    op: UnaryOperator
    operand: BoundExpr

    def children(self):
        return (self.operand,)

    def __str__(self) -> str:
        if self.op == UnaryOperator.NOT:
            return f"NOT {_wrap(self.operand)}"
        return f"-{_wrap(self.operand)}"


@dataclass(frozen=True)
class BinaryOp(BoundExpr):
    op: BinaryOperator
    left: BoundExpr
    right: BoundExpr

    def children(self):
        return (self.left, self.right)

    def __str__(self) -> str:
        return f"{_wrap(self.left)} {self.op.value} {_wrap(self.right)}"


@dataclass(frozen=True)
class IsNull(BoundExpr):
    """operand IS NULL, or IS NOT NULL when negated. Never yields NULL."""
    operand: BoundExpr
    negated: bool = False

    def children(self):
        return (self.operand,)

    def __str__(self) -> str:
        return f"{_wrap(self.operand)} IS {'NOT ' if self.negated else ''}NULL"


@dataclass(frozen=True)
class AggregateCall(BoundExpr):
    """
    Aggregate marker. argument is None only for COUNT(*).
    Legal only where the planner introduced an Aggregate node.
    """
    func: AggregateFunction
    argument: Optional[BoundExpr] = None
    distinct: bool = False

    def children(self):
        return (self.argument,) if self.argument is not None else ()

    @property
    def is_count_star(self) -> bool:
        return self.func == AggregateFunction.COUNT and self.argument is None

    def __str__(self) -> str:
        if self.argument is None:
            return f"{self.func.value}(*)"
        prefix = "DISTINCT " if self.distinct else ""
        return f"{self.func.value}({prefix}{self.argument})"


def _wrap(expr: BoundExpr) -> str:
    if isinstance(expr, (BinaryOp, IsNull)):
        return f"({expr})"
    return str(expr)


# ═══════════════════════════════════════════════════════════════════════════
# Traversal
# ═══════════════════════════════════════════════════════════════════════════

def walk(expr: BoundExpr) -> Iterator[BoundExpr]:
    """Pre-order traversal."""
    yield expr
    for child in expr.children():
        yield from walk(child)


def contains_aggregate(expr: BoundExpr) -> bool:
    return any(isinstance(e, AggregateCall) for e in walk(expr))


def aggregate_calls(expr: BoundExpr) -> Iterator[AggregateCall]:
    """Outermost aggregate calls in `expr`, left to right."""
    if isinstance(expr, AggregateCall):
        yield expr
        return
    for child in expr.children():
        yield from aggregate_calls(child)


# ═══════════════════════════════════════════════════════════════════════════
# Typing
# ═══════════════════════════════════════════════════════════════════════════

def _mismatch(op_symbol: str, *types: Optional[DataType]) -> SqlTypeError:
    names = " and ".join(type_name(t) for t in types)
    return SqlTypeError(f"Operator '{op_symbol}' cannot be applied to {names}")


def binary_result_type(op: BinaryOperator, left: Optional[DataType],
                       right: Optional[DataType]) -> Optional[DataType]:
    """
    Result type of `left op right`. None stands for an untyped NULL.
    Raises SqlTypeError when the operand types cannot be reconciled.
    """
    if op in ARITHMETIC_OPS:
        for t in (left, right):
            if t is not None and t not in NUMERIC_TYPES:
                raise _mismatch(op.value, left, right)
        if DataType.FLOAT in (left, right):
            return DataType.FLOAT
        if left is None and right is None:
            return None
        return DataType.INTEGER

    if op in COMPARISON_OPS:
        if left is None or right is None or left == right:
            return DataType.BOOLEAN
        if left in NUMERIC_TYPES and right in NUMERIC_TYPES:
            return DataType.BOOLEAN
        raise _mismatch(op.value, left, right)

    if op in LOGICAL_OPS:
        for t in (left, right):
            if t is not None and t != DataType.BOOLEAN:
                raise _mismatch(op.value, left, right)
        return DataType.BOOLEAN

    raise ValueError(f"Unknown binary operator {op}")


def unary_result_type(op: UnaryOperator, operand: Optional[DataType]) -> Optional[DataType]:
    if op == UnaryOperator.NOT:
        if operand is not None and operand != DataType.BOOLEAN:
            raise _mismatch(op.value, operand)
        return DataType.BOOLEAN
    if operand is not None and operand not in NUMERIC_TYPES:
        raise _mismatch(op.value, operand)
    return operand


def aggregate_result_type(func: AggregateFunction, argument: Optional[DataType]) -> Optional[DataType]:
    if func == AggregateFunction.COUNT:
        return DataType.INTEGER
    if func in (AggregateFunction.SUM, AggregateFunction.AVG):
        if argument is not None and argument not in NUMERIC_TYPES:
            raise SqlTypeError(f"{func.value} requires a numeric argument, got {type_name(argument)}")
        if func == AggregateFunction.AVG:
            return DataType.FLOAT
        return argument or DataType.INTEGER
    return argument


def expression_type(expr: BoundExpr, schema: Schema) -> Optional[DataType]:
    """
    Static type of `expr` over rows of `schema`.
    None means the expression is an untyped NULL.
    """
    if isinstance(expr, ColumnRef):
        return schema.columns[expr.index].data_type
    if isinstance(expr, Literal):
        return expr.data_type
    if isinstance(expr, UnaryOp):
        return unary_result_type(expr.op, expression_type(expr.operand, schema))
    if isinstance(expr, BinaryOp):
        return binary_result_type(expr.op, expression_type(expr.left, schema),
                                  expression_type(expr.right, schema))
    if isinstance(expr, IsNull):
        expression_type(expr.operand, schema)
        return DataType.BOOLEAN
    if isinstance(expr, AggregateCall):
        arg_type = None
        if expr.argument is not None:
            arg_type = expression_type(expr.argument, schema)
        return aggregate_result_type(expr.func, arg_type)
    raise NotImplementedError(f"Expression type {type(expr)} not supported")


def output_type(expr: BoundExpr, schema: Schema) -> DataType:
    """Column type for an output schema. An untyped NULL column is TEXT."""
    return expression_type(expr, schema) or DataType.TEXT
