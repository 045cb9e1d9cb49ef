"""
CsvQL Aggregate Accumulators
============================
Per-group running state for aggregate functions.

Every accumulator follows the same protocol:
  add(value)  -- feed one input value (already evaluated)
  result()    -- final value for the group

NULL inputs are skipped by everything except COUNT(*). With DISTINCT,
a value is fed to the running state only the first time it is seen.

Empty-group results:
  COUNT(*) / COUNT(x) -> 0
  SUM / AVG / MIN / MAX -> NULL
"""

from typing import Any, Optional

from planning.expressions import AggregateCall, AggregateFunction, SqlTypeError


class Accumulator:
    """Base class: NULL skipping and DISTINCT de-duplication."""

    def __init__(self, distinct: bool = False):
        self._seen = set() if distinct else None

    def add(self, value: Any):
        if value is None:
            return
        if self._seen is not None:
            if value in self._seen:
                return
            self._seen.add(value)
        self._update(value)

    def _update(self, value: Any):
        raise NotImplementedError

    def result(self) -> Any:
        raise NotImplementedError


class CountStarAccumulator(Accumulator):
    """COUNT(*): counts rows, NULL or not."""

    def __init__(self):
        super().__init__()
        self.count = 0

    def add(self, value: Any):
        self.count += 1

    def result(self) -> int:
        return self.count


class CountAccumulator(Accumulator):
    def __init__(self, distinct: bool = False):
        super().__init__(distinct)
        self.count = 0

    def _update(self, value):
        self.count += 1

    def result(self) -> int:
        return self.count


def _require_number(func: str, value: Any):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SqlTypeError(f"{func} requires numeric values, got {value!r}")


class SumAccumulator(Accumulator):
    """Integer sum stays integer; any float input makes it float."""

    def __init__(self, distinct: bool = False):
        super().__init__(distinct)
        self.total: Optional[Any] = None

    def _update(self, value):
        _require_number("SUM", value)
        self.total = value if self.total is None else self.total + value

    def result(self):
        return self.total


class AvgAccumulator(Accumulator):
    """Always FLOAT."""

    def __init__(self, distinct: bool = False):
        super().__init__(distinct)
        self.total = 0
        self.count = 0

    def _update(self, value):
        _require_number("AVG", value)
        self.total += value
        self.count += 1

    def result(self) -> Optional[float]:
        if self.count == 0:
            return None
        return self.total / self.count


class MinAccumulator(Accumulator):
    def __init__(self, distinct: bool = False):
        super().__init__(distinct)
        self.value = None

    def _update(self, value):
        if self.value is None or value < self.value:
            self.value = value

    def result(self):
        return self.value


class MaxAccumulator(Accumulator):
    def __init__(self, distinct: bool = False):
        super().__init__(distinct)
        self.value = None

    def _update(self, value):
        if self.value is None or value > self.value:
            self.value = value

    def result(self):
        return self.value


_ACCUMULATORS = {
    AggregateFunction.COUNT: CountAccumulator,
    AggregateFunction.SUM: SumAccumulator,
    AggregateFunction.AVG: AvgAccumulator,
    AggregateFunction.MIN: MinAccumulator,
    AggregateFunction.MAX: MaxAccumulator,
}


def create_accumulator(call: AggregateCall) -> Accumulator:
    """Fresh accumulator for one group."""
    if call.is_count_star:
        return CountStarAccumulator()
    return _ACCUMULATORS[call.func](distinct=call.distinct)
