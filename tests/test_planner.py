"""
CsvQL Logical Planner Tests
===========================
Plan shape, name binding, aggregate placement and LIMIT validation.
Every error here must surface before any row is read.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from parser import parse
from planning.planner import Planner, PlanError
from planning.expressions import (
    SqlTypeError, ColumnRef, BinaryOp, AggregateCall, AggregateFunction, BinaryOperator
)
from planning.logical_plan import (
    LogicalScan, LogicalValues, LogicalFilter, LogicalAggregate, LogicalHaving,
    LogicalProject, LogicalSort, LogicalLimit
)
from storage.memory_source import MemorySource
from storage.schema import Column, Schema
from storage.types import DataType


@pytest.fixture
def source():
    schema = Schema([
        Column("id", DataType.INTEGER),
        Column("label", DataType.TEXT),
        Column("score", DataType.FLOAT),
    ])
    return MemorySource("t", schema, [(1, "a", 1.5), (2, "b", None)])


@pytest.fixture
def planner(source):
    return Planner(source)


def plan(planner, sql):
    return planner.plan(parse(sql))


def chain(node):
    """Node class names from the root down the first-child path."""
    names = []
    while node is not None:
        names.append(type(node).__name__)
        children = node.children()
        node = children[0] if children else None
    return names


# ─── Plan Shape ─────────────────────────────────────────────────────────────

def test_scan_project(planner, source):
    root = plan(planner, "SELECT * FROM t")
    assert chain(root) == ["LogicalProject", "LogicalScan"]
    assert root.schema() == source.schema


def test_clause_order_is_fixed(planner):
    root = plan(planner, "SELECT id, COUNT(*) FROM t WHERE score > 0 GROUP BY id "
                         "HAVING COUNT(*) > 1 ORDER BY id LIMIT 3")
    assert chain(root) == [
        "LogicalLimit", "LogicalSort", "LogicalProject", "LogicalHaving",
        "LogicalAggregate", "LogicalFilter", "LogicalScan",
    ]


def test_filter_sort_limit(planner):
    root = plan(planner, "SELECT label FROM t WHERE id > 1 ORDER BY label LIMIT 1")
    assert chain(root) == ["LogicalLimit", "LogicalSort", "LogicalProject",
                           "LogicalFilter", "LogicalScan"]
    assert root.count == 1
    assert root.schema().column_names() == ["label"]


def test_columns_bound_by_position(planner):
    root = plan(planner, "SELECT score, ID FROM t WHERE label = 'a'")
    assert root.expressions == [ColumnRef(2, "score"), ColumnRef(0, "id")]
    predicate = root.child.predicate
    assert isinstance(predicate, BinaryOp)
    assert predicate.left == ColumnRef(1, "label")


def test_from_less_select(planner):
    root = plan(planner, "SELECT 1 + 1 AS two")
    assert isinstance(root, LogicalProject)
    assert isinstance(root.child, LogicalValues)
    assert root.schema().columns == [Column("two", DataType.INTEGER)]


def test_table_name_case_insensitive(planner):
    root = plan(planner, "SELECT id FROM T")
    assert isinstance(root.child, LogicalScan)
    assert root.child.table_name == "t"


def test_qualified_column(planner):
    root = plan(planner, "SELECT t.label FROM t")
    assert root.expressions == [ColumnRef(1, "label")]


# ─── Output Names & Types ───────────────────────────────────────────────────

def test_output_names(planner):
    root = plan(planner, "SELECT id + 1, label AS name, COUNT(*) FROM t GROUP BY id, label")
    assert root.schema().column_names() == ["id + 1", "name", "COUNT(*)"]


def test_duplicate_output_names_suffixed(planner):
    root = plan(planner, "SELECT id, id, ID FROM t")
    assert root.schema().column_names() == ["id", "id_1", "id_2"]


def test_output_types(planner):
    root = plan(planner, "SELECT id * score, id / 2, NULL FROM t")
    types = [c.data_type for c in root.schema().columns]
    assert types == [DataType.FLOAT, DataType.INTEGER, DataType.TEXT]

    root = plan(planner, "SELECT AVG(id), SUM(id), SUM(score), COUNT(label) FROM t")
    types = [c.data_type for c in root.schema().columns]
    assert types == [DataType.FLOAT, DataType.INTEGER, DataType.FLOAT, DataType.INTEGER]


# ─── Aggregation ────────────────────────────────────────────────────────────

def test_implicit_single_group(planner):
    root = plan(planner, "SELECT COUNT(*), MAX(score) FROM t")
    agg = root.child
    assert isinstance(agg, LogicalAggregate)
    assert agg.group_by == []
    assert [c.func for c in agg.aggregates] == [AggregateFunction.COUNT, AggregateFunction.MAX]


def test_having_without_group_by(planner):
    root = plan(planner, "SELECT COUNT(*) FROM t HAVING COUNT(*) > 0")
    assert chain(root) == ["LogicalProject", "LogicalHaving", "LogicalAggregate", "LogicalScan"]


def test_aggregate_output_references(planner):
    root = plan(planner, "SELECT id, COUNT(*) FROM t GROUP BY id HAVING COUNT(*) > 1 ORDER BY id")
    project = root.child
    assert project.expressions == [ColumnRef(0, "id"), ColumnRef(1, "COUNT(*)")]
    having = project.child
    assert isinstance(having, LogicalHaving)
    assert having.predicate.left == ColumnRef(1, "COUNT(*)")


def test_identical_aggregates_shared(planner):
    root = plan(planner, "SELECT COUNT(*), COUNT(*) + 1 FROM t HAVING COUNT(*) > 0")
    agg = root.child.child
    assert agg.aggregates == [AggregateCall(AggregateFunction.COUNT, None, False)]


def test_distinct_aggregate_kept_apart(planner):
    root = plan(planner, "SELECT COUNT(label), COUNT(DISTINCT label) FROM t")
    agg = root.child
    assert len(agg.aggregates) == 2
    assert agg.aggregates[1].distinct


def test_group_by_position(planner):
    root = plan(planner, "SELECT label, COUNT(*) FROM t GROUP BY 1")
    assert root.child.group_by == [ColumnRef(1, "label")]


def test_group_by_select_alias(planner):
    root = plan(planner, "SELECT id % 2 AS parity, COUNT(*) FROM t GROUP BY parity")
    group = root.child.group_by[0]
    assert isinstance(group, BinaryOp)
    assert group.op == BinaryOperator.MOD


def test_group_by_expression_matches_select(planner):
    root = plan(planner, "SELECT id + 1, COUNT(*) FROM t GROUP BY id + 1")
    assert root.expressions[0] == ColumnRef(0, "id + 1")


def test_order_by_aggregate_not_selected(planner):
    root = plan(planner, "SELECT id FROM t GROUP BY id ORDER BY COUNT(*) DESC")
    assert chain(root) == ["LogicalProject", "LogicalSort", "LogicalProject",
                           "LogicalAggregate", "LogicalScan"]
    assert root.schema().column_names() == ["id"]


# ─── ORDER BY ───────────────────────────────────────────────────────────────

def test_order_by_alias(planner):
    root = plan(planner, "SELECT score AS s FROM t ORDER BY s DESC")
    assert isinstance(root, LogicalSort)
    assert root.keys[0].expr == ColumnRef(0, "s")
    assert root.keys[0].ascending is False


def test_order_by_position(planner):
    root = plan(planner, "SELECT id, label FROM t ORDER BY 2")
    assert root.keys[0].expr == ColumnRef(1, "label")


def test_order_by_hidden_column(planner):
    root = plan(planner, "SELECT label FROM t ORDER BY id")
    assert isinstance(root, LogicalProject)
    assert root.schema().column_names() == ["label"]
    sort = root.child
    assert isinstance(sort, LogicalSort)
    assert sort.schema().column_names() == ["label", "id"]
    assert sort.keys[0].expr == ColumnRef(1, "id")


def test_order_by_expression_matching_select(planner):
    root = plan(planner, "SELECT id * 2 FROM t ORDER BY id * 2")
    assert isinstance(root, LogicalSort)
    assert root.keys[0].expr == ColumnRef(0, "id * 2")


def test_order_by_position_out_of_range(planner):
    with pytest.raises(PlanError) as exc:
        plan(planner, "SELECT id FROM t ORDER BY 2")
    assert "position 2" in str(exc.value)


# ─── LIMIT ──────────────────────────────────────────────────────────────────

def test_limit_zero(planner):
    root = plan(planner, "SELECT id FROM t LIMIT 0")
    assert isinstance(root, LogicalLimit)
    assert root.count == 0


def test_limit_negative(planner):
    with pytest.raises(PlanError) as exc:
        plan(planner, "SELECT id FROM t LIMIT -1")
    assert "must not be negative" in str(exc.value)


@pytest.mark.parametrize("limit", ["1.5", "id", "'3'", "1 + 1"])
def test_limit_must_be_integer_constant(planner, limit):
    with pytest.raises(PlanError) as exc:
        plan(planner, f"SELECT id FROM t LIMIT {limit}")
    assert "integer constant" in str(exc.value)


# ─── Plan Errors ────────────────────────────────────────────────────────────

def test_unknown_column(planner):
    with pytest.raises(PlanError) as exc:
        plan(planner, "SELECT missing FROM t")
    assert "Column 'missing' does not exist" in str(exc.value)


def test_unknown_table(planner):
    with pytest.raises(PlanError) as exc:
        plan(planner, "SELECT id FROM other")
    assert "Table 'other' does not exist" in str(exc.value)


def test_no_source(planner):
    with pytest.raises(PlanError):
        Planner().plan(parse("SELECT id FROM t"))


def test_unknown_qualifier(planner):
    with pytest.raises(PlanError) as exc:
        plan(planner, "SELECT q.id FROM t")
    assert "Unknown table 'q'" in str(exc.value)


def test_star_without_from(planner):
    with pytest.raises(PlanError):
        plan(planner, "SELECT *")


def test_aggregate_in_where(planner):
    with pytest.raises(PlanError) as exc:
        plan(planner, "SELECT id FROM t WHERE COUNT(*) > 1")
    assert "not allowed in WHERE" in str(exc.value)


def test_aggregate_in_group_by(planner):
    with pytest.raises(PlanError):
        plan(planner, "SELECT COUNT(*) FROM t GROUP BY COUNT(*)")


def test_nested_aggregate(planner):
    with pytest.raises(PlanError) as exc:
        plan(planner, "SELECT SUM(COUNT(*)) FROM t")
    assert "cannot be nested" in str(exc.value)


def test_column_not_grouped(planner):
    with pytest.raises(PlanError) as exc:
        plan(planner, "SELECT label, COUNT(*) FROM t GROUP BY id")
    assert "must appear in the GROUP BY clause" in str(exc.value)


def test_column_mixed_with_implicit_group(planner):
    with pytest.raises(PlanError):
        plan(planner, "SELECT id, COUNT(*) FROM t")


def test_having_references_ungrouped_column(planner):
    with pytest.raises(PlanError):
        plan(planner, "SELECT id FROM t GROUP BY id HAVING label = 'a'")


def test_order_by_ungrouped_column(planner):
    with pytest.raises(PlanError):
        plan(planner, "SELECT id FROM t GROUP BY id ORDER BY label")


# ─── Type Errors ────────────────────────────────────────────────────────────

def test_text_plus_integer(planner):
    with pytest.raises(SqlTypeError) as exc:
        plan(planner, "SELECT label + id FROM t")
    assert "Operator '+' cannot be applied to TEXT and INTEGER" in str(exc.value)


def test_compare_text_to_number(planner):
    with pytest.raises(SqlTypeError):
        plan(planner, "SELECT id FROM t WHERE label > 1")


def test_where_must_be_boolean(planner):
    with pytest.raises(SqlTypeError) as exc:
        plan(planner, "SELECT id FROM t WHERE id")
    assert "WHERE condition must be BOOLEAN, got INTEGER" in str(exc.value)


def test_having_must_be_boolean(planner):
    with pytest.raises(SqlTypeError):
        plan(planner, "SELECT COUNT(*) FROM t HAVING COUNT(*)")


def test_sum_of_text(planner):
    with pytest.raises(SqlTypeError):
        plan(planner, "SELECT SUM(label) FROM t")


def test_min_of_text_allowed(planner):
    root = plan(planner, "SELECT MIN(label) FROM t")
    assert root.schema().columns[0].data_type == DataType.TEXT


def test_null_literal_is_untyped(planner):
    root = plan(planner, "SELECT id FROM t WHERE label = NULL OR NULL")
    assert isinstance(root.child, LogicalFilter)


def test_type_errors_are_type_errors(planner):
    with pytest.raises(TypeError):
        plan(planner, "SELECT NOT id FROM t")
