"""
CsvQL Physical Plan Operators
=============================
Volcano Iterator Model implementation.
Nodes implement open(), next(), close(); rows are pulled one at a time
from the root, so nothing is read until the consumer asks for it.

Rows are tuples aligned with the operator's `schema`.

Operator lifecycle:
  NOT_STARTED -> STREAMING -> EXHAUSTED
  NOT_STARTED -> BUFFERING -> STREAMING -> EXHAUSTED   (Sort, HashAggregate)
Once EXHAUSTED, next() keeps returning None without touching children.
"""

import functools
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from planning.expressions import BoundExpr, AggregateCall
from planning.logical_plan import SortKey
from execution.accumulators import Accumulator, create_accumulator
from execution.expression_evaluator import ExpressionEvaluator
from storage.schema import Schema
from storage.types import NullOrder, sort_key

logger = logging.getLogger(__name__)

# Row Structure Contract: tuple of values, positional per schema
Row = Tuple[Any, ...]


class OperatorState(Enum):
    NOT_STARTED = "not_started"
    BUFFERING = "buffering"
    STREAMING = "streaming"
    EXHAUSTED = "exhausted"


class PhysicalNode(ABC):
    """Base class for execution operators."""

    def __init__(self, schema: Schema):
        self.schema = schema
        self.state = OperatorState.NOT_STARTED
        self.rows_produced = 0
        self._open = False

    def open(self):
        """Initialize the operator state and open children."""
        self._open = True
        self.state = OperatorState.NOT_STARTED
        self.rows_produced = 0
        for child in self.children():
            child.open()

    def next(self) -> Optional[Row]:
        """Return the next row or None if exhausted."""
        if not self._open:
            raise RuntimeError(f"{type(self).__name__}.next() called before open()")
        if self.state == OperatorState.EXHAUSTED:
            return None
        if self.state == OperatorState.NOT_STARTED:
            self.state = OperatorState.STREAMING

        row = self._produce()
        if row is None:
            self.state = OperatorState.EXHAUSTED
            return None
        self.rows_produced += 1
        return row

    @abstractmethod
    def _produce(self) -> Optional[Row]:
        """Operator-specific next(); None signals end of stream."""
        pass

    def close(self):
        """Clean up resources. Safe to call more than once."""
        if self._open:
            logger.debug("%s produced %d row(s)", type(self).__name__, self.rows_produced)
        self._open = False
        for child in self.children():
            child.close()

    def children(self) -> List['PhysicalNode']:
        return []


class SeqScanExec(PhysicalNode):
    """
    Sequential scan of a row source (CsvSource, MemorySource).
    The source iterator is created in open() and released in close().
    """
    def __init__(self, source, schema: Schema):
        super().__init__(schema)
        self.source = source
        self._iterator: Optional[Iterator[Row]] = None

    def open(self):
        super().open()
        self._iterator = self.source.scan()

    def _produce(self) -> Optional[Row]:
        return next(self._iterator, None)

    def close(self):
        if self._iterator is not None and hasattr(self._iterator, "close"):
            self._iterator.close()
        self._iterator = None
        super().close()


class ValuesExec(PhysicalNode):
    """Produces constant rows."""
    def __init__(self, rows: List[Row], schema: Schema):
        super().__init__(schema)
        self.rows = rows
        self._iter: Optional[Iterator[Row]] = None

    def open(self):
        super().open()
        self._iter = iter(self.rows)

    def _produce(self) -> Optional[Row]:
        return next(self._iter, None)

    def close(self):
        self._iter = None
        super().close()


class FilterExec(PhysicalNode):
    """Filters rows based on a predicate. Used for both WHERE and HAVING."""
    def __init__(self, child: PhysicalNode, predicate: BoundExpr):
        super().__init__(child.schema)
        self.child = child
        self.predicate = predicate
        self.evaluator = ExpressionEvaluator()

    def _produce(self) -> Optional[Row]:
        while True:
            row = self.child.next()
            if row is None:
                return None

            # 3VL: Only TRUE passes
            res = self.evaluator.evaluate(self.predicate, row)
            if res is True:
                return row
            # Discard False/Unknown

    def children(self): return [self.child]


class ProjectExec(PhysicalNode):
    """Projects expressions to new rows."""
    def __init__(self, child: PhysicalNode, exprs: List[BoundExpr], schema: Schema):
        super().__init__(schema)
        self.child = child
        self.exprs = exprs
        self.evaluator = ExpressionEvaluator()

    def _produce(self) -> Optional[Row]:
        row = self.child.next()
        if row is None:
            return None
        return tuple(self.evaluator.evaluate(expr, row) for expr in self.exprs)

    def children(self): return [self.child]


class LimitExec(PhysicalNode):
    """
    Limits the number of output rows.
    Once `limit` rows are out, the child is never pulled again.
    """
    def __init__(self, child: PhysicalNode, limit: int):
        super().__init__(child.schema)
        self.child = child
        self.limit = limit
        self._count = 0

    def open(self):
        super().open()
        self._count = 0

    def _produce(self) -> Optional[Row]:
        if self._count >= self.limit:
            return None

        row = self.child.next()
        if row is None:
            return None

        self._count += 1
        return row

    def children(self): return [self.child]


class SortExec(PhysicalNode):
    """
    Materializes all rows, sorts them, and yields.
    Stable: rows equal on every key keep their input order.
    Keys compare left to right; the first differing key decides.
    NULL placement follows `null_order` as if NULL were a value
    (LAST: greater than everything, FIRST: smaller than everything),
    so DESC flips it.
    """
    def __init__(self, child: PhysicalNode, keys: List[SortKey],
                 null_order: NullOrder = NullOrder.LAST):
        super().__init__(child.schema)
        self.child = child
        self.keys = keys
        self.null_order = null_order
        self.evaluator = ExpressionEvaluator()
        self._iter_rows: Optional[Iterator[Row]] = None

    def open(self):
        super().open()
        self._iter_rows = None

    def _produce(self) -> Optional[Row]:
        if self._iter_rows is None:
            self.state = OperatorState.BUFFERING
            self._iter_rows = iter(self._sorted_input())
            self.state = OperatorState.STREAMING
        return next(self._iter_rows, None)

    def _sorted_input(self) -> List[Row]:
        # Materialize, computing key values once per row
        decorated = []
        while True:
            row = self.child.next()
            if row is None:
                break
            keys = tuple(sort_key(self.evaluator.evaluate(k.expr, row), self.null_order)
                         for k in self.keys)
            decorated.append((keys, row))

        directions = [k.ascending for k in self.keys]

        def compare(a, b) -> int:
            for left, right, ascending in zip(a[0], b[0], directions):
                if left == right:
                    continue
                result = -1 if left < right else 1
                return result if ascending else -result
            return 0

        # sorted() is stable, so ties keep input order
        decorated = sorted(decorated, key=functools.cmp_to_key(compare))
        return [row for _, row in decorated]

    def close(self):
        self._iter_rows = None
        super().close()

    def children(self): return [self.child]


class HashAggregateExec(PhysicalNode):
    """
    Drains the child into a hash table keyed by the group values, then
    emits one row per group: group values followed by aggregate results.
    Groups come out in first-seen order.
    Without GROUP BY there is exactly one group, even for empty input.
    """
    def __init__(self, child: PhysicalNode, group_by: List[BoundExpr],
                 aggregates: List[AggregateCall], schema: Schema):
        super().__init__(schema)
        self.child = child
        self.group_by = group_by
        self.aggregates = aggregates
        self.evaluator = ExpressionEvaluator()
        self._iter_rows: Optional[Iterator[Row]] = None

    def open(self):
        super().open()
        self._iter_rows = None

    def _produce(self) -> Optional[Row]:
        if self._iter_rows is None:
            self.state = OperatorState.BUFFERING
            self._iter_rows = iter(self._aggregate_input())
            self.state = OperatorState.STREAMING
        return next(self._iter_rows, None)

    def _aggregate_input(self) -> List[Row]:
        groups: Dict[Row, List[Accumulator]] = {}
        while True:
            row = self.child.next()
            if row is None:
                break
            key = tuple(self.evaluator.evaluate(expr, row) for expr in self.group_by)
            accumulators = groups.get(key)
            if accumulators is None:
                accumulators = [create_accumulator(call) for call in self.aggregates]
                groups[key] = accumulators
            for call, acc in zip(self.aggregates, accumulators):
                if call.argument is None:
                    acc.add(None)
                else:
                    acc.add(self.evaluator.evaluate(call.argument, row))

        if not self.group_by and not groups:
            groups[()] = [create_accumulator(call) for call in self.aggregates]

        logger.debug("HashAggregateExec built %d group(s)", len(groups))
        return [key + tuple(acc.result() for acc in accumulators)
                for key, accumulators in groups.items()]

    def close(self):
        self._iter_rows = None
        super().close()

    def children(self): return [self.child]
