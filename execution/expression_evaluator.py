"""
CsvQL Expression Evaluator
==========================
Runtime evaluation of bound expressions against a data row.

Features:
- Three-Valued Logic (TRUE, FALSE, UNKNOWN/None)
- Arithmetic with type promotion (INT+FLOAT -> FLOAT)
- Integer division truncates toward zero; % takes the dividend's sign
- Division or modulo by zero yields NULL
- Comparisons with NULL propagation
- Operand types checked with the same rules the planner uses
"""

import logging
from typing import Any, Iterable, Sequence

from planning.expressions import (
    BoundExpr, ColumnRef, Literal, UnaryOp, BinaryOp, IsNull, AggregateCall,
    BinaryOperator, UnaryOperator, SqlTypeError,
    ARITHMETIC_OPS, COMPARISON_OPS, binary_result_type, unary_result_type
)
from execution.accumulators import create_accumulator
from storage.types import DataType, type_of

logger = logging.getLogger(__name__)

# Type alias for Row Values: positional, aligned with the input schema
RowValues = Sequence[Any]

__all__ = ["ExpressionEvaluator", "SqlTypeError", "evaluate", "evaluate_over_group"]


class ExpressionEvaluator:
    """
    Evaluates bound expressions against a row.
    Stateless; one instance can be shared by every operator.
    """

    def evaluate(self, expr: BoundExpr, row: RowValues) -> Any:
        """
        Evaluate an expression against a row.
        Returns: Python value (int, float, str, bool, or None for NULL/UNKNOWN)
        """
        if isinstance(expr, Literal):
            return expr.value

        if isinstance(expr, ColumnRef):
            return row[expr.index]

        if isinstance(expr, IsNull):
            val = self.evaluate(expr.operand, row)
            if expr.negated:
                return val is not None
            return val is None

        if isinstance(expr, UnaryOp):
            return self._eval_unary(expr, self.evaluate(expr.operand, row))

        if isinstance(expr, BinaryOp):
            return self._eval_binary(expr, lambda e: self.evaluate(e, row))

        if isinstance(expr, AggregateCall):
            raise RuntimeError(f"Aggregate {expr} evaluated outside of an aggregation")

        raise NotImplementedError(f"Expression type {type(expr)} not supported")

    def evaluate_over_group(self, expr: BoundExpr, rows: Sequence[RowValues]) -> Any:
        """
        Evaluate an expression over a whole group of rows.
        Aggregate calls fold over every row; anything else is taken from
        the first row (group keys are equal across the group).
        An empty group gives NULL for non-aggregate parts.
        """
        if isinstance(expr, AggregateCall):
            acc = create_accumulator(expr)
            for row in rows:
                acc.add(None if expr.argument is None else self.evaluate(expr.argument, row))
            return acc.result()

        if isinstance(expr, Literal):
            return expr.value

        if isinstance(expr, ColumnRef):
            return rows[0][expr.index] if rows else None

        if isinstance(expr, IsNull):
            val = self.evaluate_over_group(expr.operand, rows)
            return (val is not None) if expr.negated else (val is None)

        if isinstance(expr, UnaryOp):
            return self._eval_unary(expr, self.evaluate_over_group(expr.operand, rows))

        if isinstance(expr, BinaryOp):
            return self._eval_binary(expr, lambda e: self.evaluate_over_group(e, rows))

        raise NotImplementedError(f"Expression type {type(expr)} not supported")

    # ─── Operators ──────────────────────────────────────────────────

    def _eval_unary(self, expr: UnaryOp, val: Any) -> Any:
        unary_result_type(expr.op, type_of(val))

        if expr.op == UnaryOperator.NOT:
            # 3VL NOT:
            # NOT TRUE -> FALSE
            # NOT FALSE -> TRUE
            # NOT UNKNOWN -> UNKNOWN
            if val is None:
                return None
            return not val

        if expr.op == UnaryOperator.NEG:
            if val is None: return None
            return -val

        raise RuntimeError(f"Unknown unary operator {expr.op}")

    def _eval_binary(self, expr: BinaryOp, eval_child) -> Any:
        # Python `and`/`or` are strictly boolean, so the 3VL tables are
        # spelled out. Both sides are evaluated: a type error on the right
        # surfaces even when the left side decides the result.

        if expr.op == BinaryOperator.AND:
            # F AND _ = F, T AND T = T, otherwise U
            left = eval_child(expr.left)
            right = eval_child(expr.right)
            binary_result_type(expr.op, type_of(left), type_of(right))
            if left is False or right is False:
                return False
            if left is True and right is True:
                return True
            return None

        if expr.op == BinaryOperator.OR:
            # T OR _ = T, F OR F = F, otherwise U
            left = eval_child(expr.left)
            right = eval_child(expr.right)
            binary_result_type(expr.op, type_of(left), type_of(right))
            if left is True or right is True:
                return True
            if left is False and right is False:
                return False
            return None

        left = eval_child(expr.left)
        right = eval_child(expr.right)
        result_type = binary_result_type(expr.op, type_of(left), type_of(right))

        # Null propagation: If either is NULL, result is NULL
        if left is None or right is None:
            return None

        if expr.op in ARITHMETIC_OPS:
            return self._eval_arithmetic(expr.op, left, right, result_type)

        if expr.op in COMPARISON_OPS:
            if expr.op == BinaryOperator.EQ: return left == right
            if expr.op == BinaryOperator.NEQ: return left != right
            if expr.op == BinaryOperator.LT: return left < right
            if expr.op == BinaryOperator.GT: return left > right
            if expr.op == BinaryOperator.LTE: return left <= right
            if expr.op == BinaryOperator.GTE: return left >= right

        raise RuntimeError(f"Unknown binary operator {expr.op}")

    def _eval_arithmetic(self, op: BinaryOperator, left, right, result_type: DataType) -> Any:
        if result_type == DataType.FLOAT:
            left, right = float(left), float(right)

        if op == BinaryOperator.ADD: return left + right
        if op == BinaryOperator.SUB: return left - right
        if op == BinaryOperator.MUL: return left * right

        if right == 0:
            logger.debug("%s by zero yields NULL", "Division" if op == BinaryOperator.DIV else "Modulo")
            return None

        if op == BinaryOperator.DIV:
            if result_type == DataType.INTEGER:
                # Truncate toward zero, not floor
                quotient = abs(left) // abs(right)
                return quotient if (left >= 0) == (right >= 0) else -quotient
            return left / right

        if op == BinaryOperator.MOD:
            remainder = abs(left) % abs(right)
            return remainder if left >= 0 else -remainder

        raise RuntimeError(f"Unknown arithmetic operator {op}")


_default = ExpressionEvaluator()


def evaluate(expr: BoundExpr, row: RowValues) -> Any:
    """Evaluate `expr` against one row with the shared evaluator."""
    return _default.evaluate(expr, row)


def evaluate_over_group(expr: BoundExpr, rows: Iterable[RowValues]) -> Any:
    """Evaluate `expr` over a group of rows with the shared evaluator."""
    return _default.evaluate_over_group(expr, list(rows))
