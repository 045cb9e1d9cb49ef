"""
CsvQL AST Nodes
===============
Abstract Syntax Tree definitions for SQL statements and expressions.

Design:
- Dataclasses, compared structurally (handy in tests)
- Strict separation between Statements and Expressions
- QualifiedName for column references (split by dot)
- GroupingExpr to preserve parentheses structure
- Names are unresolved here; the logical planner binds them
"""

from dataclasses import dataclass, field
from typing import List, Optional, Any

from parser.tokenizer import TokenType
from storage.types import DataType


class ASTNode:
    """Base class for all AST nodes."""
    pass


# ═══════════════════════════════════════════════════════════════════════════
# Expressions
# ═══════════════════════════════════════════════════════════════════════════

class Expression(ASTNode):
    """Base class for SQL expressions."""
    pass


_OP_SYMBOLS = {
    TokenType.PLUS: "+", TokenType.MINUS: "-", TokenType.STAR: "*", TokenType.SLASH: "/",
    TokenType.PERCENT: "%",
    TokenType.EQ: "=", TokenType.NEQ: "!=", TokenType.LT: "<", TokenType.GT: ">",
    TokenType.LTE: "<=", TokenType.GTE: ">=", TokenType.AND: "AND", TokenType.OR: "OR",
    TokenType.NOT: "NOT",
}


@dataclass
class Literal(Expression):
    """Literal value (number, string, boolean, null). NULL has no data_type."""
    value: Any
    data_type: Optional[DataType]

    def __repr__(self) -> str:
        dtype = self.data_type.name if self.data_type else "NULL"
        return f"Literal({self.value!r}, {dtype})"

    def __str__(self) -> str:
        if self.value is None: return "NULL"
        if isinstance(self.value, bool): return "TRUE" if self.value else "FALSE"
        if isinstance(self.value, str): return "'" + self.value.replace("'", "''") + "'"
        return str(self.value)


@dataclass
class QualifiedName(Expression):
    """
    Identifier with optional qualification (e.g. table.column).
    parts=['column'] or parts=['table', 'column']
    """
    parts: List[str]

    @property
    def name(self) -> str:
        return self.parts[-1]

    def __repr__(self) -> str:
        return f"QualifiedName({'.'.join(self.parts)})"

    def __str__(self) -> str:
        return ".".join(self.parts)


@dataclass
class BinaryExpr(Expression):
    """Binary operation: left op right (e.g. a + b, a = b)."""
    left: Expression
    op: TokenType
    right: Expression

    def __repr__(self) -> str:
        return f"BinaryExpr({self.left}, {self.op.name}, {self.right})"

    def __str__(self) -> str:
        sym = _OP_SYMBOLS.get(self.op, self.op.name)
        return f"{self.left} {sym} {self.right}"


@dataclass
class UnaryExpr(Expression):
    """Unary operation: op operand (e.g. -a, NOT a)."""
    op: TokenType
    operand: Expression

    def __repr__(self) -> str:
        return f"UnaryExpr({self.op.name}, {self.operand})"

    def __str__(self) -> str:
        if self.op == TokenType.NOT:
            return f"NOT {self.operand}"
        return f"{_OP_SYMBOLS.get(self.op, self.op.name)}{self.operand}"


@dataclass
class GroupingExpr(Expression):
    """Parenthesized expression: ( expr ). Preserves structure."""
    inner: Expression

    def __repr__(self) -> str:
        return f"GroupingExpr({self.inner})"

    def __str__(self) -> str:
        return f"({self.inner})"


@dataclass
class IsNullExpr(Expression):
    """IS NULL or IS NOT NULL check."""
    expr: Expression
    not_null: bool  # True if IS NOT NULL

    def __repr__(self) -> str:
        ops = "IS NOT NULL" if self.not_null else "IS NULL"
        return f"IsNullExpr({self.expr}, {ops})"

    def __str__(self) -> str:
        ops = "IS NOT NULL" if self.not_null else "IS NULL"
        return f"{self.expr} {ops}"


@dataclass
class FunctionCall(Expression):
    """
    Function call: name(args). Only aggregate functions exist.
    COUNT(*) is represented with star=True and no args.
    """
    name: str
    args: List[Expression] = field(default_factory=list)
    distinct: bool = False
    star: bool = False

    def __repr__(self) -> str:
        return f"FunctionCall({self})"

    def __str__(self) -> str:
        if self.star:
            return f"{self.name.upper()}(*)"
        prefix = "DISTINCT " if self.distinct else ""
        return f"{self.name.upper()}({prefix}{', '.join(map(str, self.args))})"


# ═══════════════════════════════════════════════════════════════════════════
# Support Structures
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class SelectItem(ASTNode):
    """Item in SELECT list: expression AS alias."""
    expr: Expression
    alias: Optional[str] = None

    def __repr__(self) -> str:
        if self.alias:
            return f"SelectItem({self.expr}, AS '{self.alias}')"
        return f"SelectItem({self.expr})"

    def __str__(self) -> str:
        if self.alias:
            return f"{self.expr} AS {self.alias}"
        return str(self.expr)


@dataclass
class OrderItem(ASTNode):
    """Item in ORDER BY: expression ASC/DESC."""
    expr: Expression
    ascending: bool = True  # Default ASC

    def __repr__(self) -> str:
        direction = "ASC" if self.ascending else "DESC"
        return f"OrderItem({self.expr}, {direction})"

    def __str__(self) -> str:
        return f"{self.expr} {'ASC' if self.ascending else 'DESC'}"


def is_star(expr: Expression) -> bool:
    """True for the `*` placeholder in a SELECT list."""
    return isinstance(expr, QualifiedName) and expr.parts == ["*"]


# ═══════════════════════════════════════════════════════════════════════════
# Statements
# ═══════════════════════════════════════════════════════════════════════════

class Statement(ASTNode):
    """Base class for SQL statements."""
    pass


@dataclass
class SelectStmt(Statement):
    """
    SELECT statement.
    Clauses are stored as written; the planner fixes evaluation order.
    """
    columns: List[SelectItem]
    from_table: Optional[QualifiedName] = None  # Optional for "SELECT 1"
    where: Optional[Expression] = None
    group_by: Optional[List[Expression]] = None
    having: Optional[Expression] = None
    order_by: Optional[List[OrderItem]] = None
    limit: Optional[Expression] = None  # LIMIT can be a constant expression

    def __str__(self) -> str:
        parts = ["SELECT", ", ".join(map(str, self.columns))]
        if self.from_table:
            parts.append(f"FROM {self.from_table}")
        if self.where:
            parts.append(f"WHERE {self.where}")
        if self.group_by:
            parts.append(f"GROUP BY {', '.join(map(str, self.group_by))}")
        if self.having:
            parts.append(f"HAVING {self.having}")
        if self.order_by:
            parts.append(f"ORDER BY {', '.join(map(str, self.order_by))}")
        if self.limit:
            parts.append(f"LIMIT {self.limit}")
        return " ".join(parts)


# ─── Query Analysis ───────────────────────────────────────────────────────

@dataclass
class ExplainStmt(Statement):
    """
    EXPLAIN [LOGICAL|PHYSICAL] <select>
    Show query plan without executing. Default level is physical.
    """
    inner: SelectStmt
    level: str = "physical"  # "logical" or "physical"

    def __str__(self) -> str:
        return f"EXPLAIN {self.level.upper()} {self.inner}"


# ─── Export ───────────────────────────────────────────────────────────────

@dataclass
class CopyStmt(Statement):
    """
    COPY (<select>) TO 'path'  or  COPY table TO 'path'.
    The table form is stored as SELECT * FROM table.
    """
    query: SelectStmt
    path: str

    def __str__(self) -> str:
        return f"COPY ({self.query}) TO '{self.path}'"
