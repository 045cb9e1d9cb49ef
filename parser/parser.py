"""
CsvQL SQL Parser
================
Recursive-descent parser for SQL.
Converts a stream of tokens into an AST.

Architecture:
- Input: Immutable list of Tokens (from Tokenizer)
- Output: Statement AST node
- Lookahead: 1 token (LL(1) mostly, 2 to tell a function call from a column)
"""

from typing import List, NoReturn

from parser.tokenizer import Token, TokenType, ParseError
from parser.ast_nodes import (
    Statement, SelectStmt, ExplainStmt, CopyStmt,
    Expression, Literal, QualifiedName, BinaryExpr, UnaryExpr, GroupingExpr, IsNullExpr,
    FunctionCall, SelectItem, OrderItem
)
from storage.types import DataType


AGGREGATE_FUNCTIONS = ("COUNT", "SUM", "AVG", "MIN", "MAX")


class Parser:
    """
    Recursive-descent SQL parser.
    Initialize with a list of tokens, call .parse() to get the AST.
    """

    def __init__(self, tokens: List[Token]):
        self._tokens = tokens
        self._pos = 0

    def parse(self) -> Statement:
        """Parse a single SQL statement."""
        if self._is_at_end():
            # Empty string or just comments
            self._error("Unexpected end of input", self._peek())

        stmt = self._parse_statement()

        # Optional trailing semicolon, then nothing else
        if self._match(TokenType.SEMICOLON):
            if not self._is_at_end():
                self._error("Multiple statements not supported", self._peek())
        elif not self._is_at_end():
            self._error(f"Unexpected token '{self._peek().value}' after statement", self._peek())

        return stmt

    # ─── Fragments (DataFrame builder) ──────────────────────────────

    def parse_expression(self) -> Expression:
        """Parse one bare expression such as `id > 1`."""
        return self._fragment(self._parse_expression)

    def parse_select_item(self) -> SelectItem:
        """Parse one select-list item: `expr [AS alias]` or `*`."""
        items = self._fragment(self._parse_select_list)
        if len(items) != 1:
            self._error("Expected a single expression", self._peek())
        return items[0]

    def parse_order_item(self) -> OrderItem:
        """Parse one sort key: `expr [ASC|DESC]`."""
        items = self._fragment(self._parse_order_list)
        if len(items) != 1:
            self._error("Expected a single sort key", self._peek())
        return items[0]

    def _fragment(self, rule):
        if self._is_at_end():
            self._error("Unexpected end of input", self._peek())
        result = rule()
        if not self._is_at_end():
            self._error(f"Unexpected token '{self._peek().value}'", self._peek())
        return result

    # ─── Statement Parsing ──────────────────────────────────────────

    def _parse_statement(self) -> Statement:
        if self._match(TokenType.SELECT):
            return self._parse_select()
        if self._match(TokenType.EXPLAIN):
            return self._parse_explain()
        if self._match(TokenType.COPY):
            return self._parse_copy()

        self._error(f"Unexpected token '{self._peek().value}', expected SELECT, EXPLAIN or COPY",
                    self._peek())

    def _parse_explain(self) -> ExplainStmt:
        """Parse EXPLAIN [LOGICAL|PHYSICAL] <select>."""
        level = "physical"
        if self._match(TokenType.LOGICAL):
            level = "logical"
        elif self._match(TokenType.PHYSICAL):
            level = "physical"
        self._consume(TokenType.SELECT, "EXPLAIN supports only SELECT statements")
        return ExplainStmt(inner=self._parse_select(), level=level)

    def _parse_copy(self) -> CopyStmt:
        """Parse COPY (<select>) TO 'path' or COPY table TO 'path'."""
        if self._match(TokenType.LPAREN):
            self._consume(TokenType.SELECT, "Expected SELECT inside COPY ( ... )")
            query = self._parse_select()
            self._consume(TokenType.RPAREN, "Expected ) after COPY query")
        else:
            table = self._parse_qualified_name()
            query = SelectStmt(columns=[SelectItem(QualifiedName(["*"]))], from_table=table)

        self._consume(TokenType.TO, "Expected TO in COPY statement")
        path = self._consume(TokenType.STRING_LIT, "Expected quoted file path after TO").value
        if not path:
            self._error("COPY target path must not be empty", self._previous())
        return CopyStmt(query=query, path=path)

    def _parse_select(self) -> SelectStmt:
        if self._check(TokenType.DISTINCT):
            self._error("SELECT DISTINCT is not supported; use GROUP BY", self._peek())

        columns = self._parse_select_list()

        from_table = None
        if self._match(TokenType.FROM):
            from_table = self._parse_qualified_name()

        where = None
        if self._match(TokenType.WHERE):
            where = self._parse_expression()

        group_by = None
        if self._match(TokenType.GROUP):
            self._consume(TokenType.BY, "Expected BY after GROUP")
            group_by = self._parse_expression_list()

        having = None
        if self._match(TokenType.HAVING):
            having = self._parse_expression()

        order_by = None
        if self._match(TokenType.ORDER):
            self._consume(TokenType.BY, "Expected BY after ORDER")
            order_by = self._parse_order_list()

        limit = None
        if self._match(TokenType.LIMIT):
            limit = self._parse_expression()

        return SelectStmt(
            columns=columns,
            from_table=from_table,
            where=where,
            group_by=group_by,
            having=having,
            order_by=order_by,
            limit=limit,
        )

    # ─── Expression Parsing ─────────────────────────────────────────
    # Precedence climbing: OR -> AND -> NOT -> Comparison -> Add -> Mult -> Unary -> Primary

    def _parse_expression(self) -> Expression:
        return self._parse_or()

    def _parse_or(self) -> Expression:
        expr = self._parse_and()
        while self._match(TokenType.OR):
            op = self._previous().type
            right = self._parse_and()
            expr = BinaryExpr(expr, op, right)
        return expr

    def _parse_and(self) -> Expression:
        expr = self._parse_not()
        while self._match(TokenType.AND):
            op = self._previous().type
            right = self._parse_not()
            expr = BinaryExpr(expr, op, right)
        return expr

    def _parse_not(self) -> Expression:
        if self._match(TokenType.NOT):
            op = self._previous().type
            operand = self._parse_not()
            return UnaryExpr(op, operand)
        return self._parse_comparison()

    def _parse_comparison(self) -> Expression:
        expr = self._parse_addition()

        # Handle IS NULL / IS NOT NULL
        if self._match(TokenType.IS):
            not_null = self._match(TokenType.NOT)
            self._consume(TokenType.NULL, "Expected NULL after IS")
            return IsNullExpr(expr, not_null)

        if self._match(TokenType.EQ, TokenType.NEQ, TokenType.LT,
                       TokenType.GT, TokenType.LTE, TokenType.GTE):
            op = self._previous().type
            right = self._parse_addition()
            return BinaryExpr(expr, op, right)

        return expr

    def _parse_addition(self) -> Expression:
        expr = self._parse_multiplication()
        while self._match(TokenType.PLUS, TokenType.MINUS):
            op = self._previous().type
            right = self._parse_multiplication()
            expr = BinaryExpr(expr, op, right)
        return expr

    def _parse_multiplication(self) -> Expression:
        expr = self._parse_unary()
        while self._match(TokenType.STAR, TokenType.SLASH, TokenType.PERCENT):
            op = self._previous().type
            right = self._parse_unary()
            expr = BinaryExpr(expr, op, right)
        return expr

    def _parse_unary(self) -> Expression:
        if self._match(TokenType.MINUS, TokenType.PLUS):
            op = self._previous().type
            operand = self._parse_unary()
            return UnaryExpr(op, operand)
        return self._parse_primary()

    def _parse_primary(self) -> Expression:
        if self._match(TokenType.FALSE): return Literal(False, DataType.BOOLEAN)
        if self._match(TokenType.TRUE): return Literal(True, DataType.BOOLEAN)
        if self._match(TokenType.NULL): return Literal(None, None)

        if self._match(TokenType.NUMBER):
            val_str = self._previous().value
            if '.' in val_str:
                return Literal(float(val_str), DataType.FLOAT)
            return Literal(int(val_str), DataType.INTEGER)

        if self._match(TokenType.STRING_LIT):
            return Literal(self._previous().value, DataType.TEXT)

        if self._match(TokenType.LPAREN):
            expr = self._parse_expression()
            self._consume(TokenType.RPAREN, "Expected ) after expression")
            return GroupingExpr(expr)

        if self._check(TokenType.IDENTIFIER):
            if self._peek_next().type == TokenType.LPAREN:
                return self._parse_function_call()
            return self._parse_qualified_name()

        if self._is_at_end():
            self._error("Unexpected end of input", self._peek())

        self._error(f"Unexpected token '{self._peek().value}', expected expression", self._peek())

    def _parse_function_call(self) -> FunctionCall:
        name_token = self._advance()
        name = name_token.value.upper()
        if name not in AGGREGATE_FUNCTIONS:
            self._error(f"Unknown function '{name_token.value}'", name_token)
        self._consume(TokenType.LPAREN, "Expected ( after function name")

        if self._match(TokenType.STAR):
            if name != "COUNT":
                self._error(f"{name}(*) is not supported, only COUNT(*)", self._previous())
            self._consume(TokenType.RPAREN, "Expected ) after *")
            return FunctionCall(name, [], distinct=False, star=True)

        distinct = self._match(TokenType.DISTINCT)
        arg = self._parse_expression()
        if self._check(TokenType.COMMA):
            self._error(f"{name} takes exactly one argument", self._peek())
        self._consume(TokenType.RPAREN, f"Expected ) after {name} argument")
        return FunctionCall(name, [arg], distinct=distinct)

    # ─── Helpers ────────────────────────────────────────────────────

    def _parse_qualified_name(self) -> QualifiedName:
        parts = [self._consume(TokenType.IDENTIFIER, "Expected identifier").value]
        while self._match(TokenType.DOT):
            parts.append(self._consume(TokenType.IDENTIFIER, "Expected identifier after dot").value)
        return QualifiedName(parts)

    def _parse_select_list(self) -> List[SelectItem]:
        items = []
        while True:
            if self._match(TokenType.STAR):
                # Represent * as a special QualifiedName(["*"])
                items.append(SelectItem(QualifiedName(["*"])))
            else:
                expr = self._parse_expression()
                alias = None
                if self._match(TokenType.AS):
                    alias = self._consume(TokenType.IDENTIFIER, "Expected alias").value
                elif self._check(TokenType.IDENTIFIER):
                    # Keywords are tokenized as keywords, so a bare
                    # IDENTIFIER here can only be an alias.
                    alias = self._advance().value
                items.append(SelectItem(expr, alias))
            if not self._match(TokenType.COMMA):
                break
        return items

    def _parse_expression_list(self) -> List[Expression]:
        exprs = [self._parse_expression()]
        while self._match(TokenType.COMMA):
            exprs.append(self._parse_expression())
        return exprs

    def _parse_order_list(self) -> List[OrderItem]:
        items = []
        while True:
            expr = self._parse_expression()
            ascending = True
            if self._match(TokenType.DESC):
                ascending = False
            elif self._match(TokenType.ASC):
                ascending = True
            items.append(OrderItem(expr, ascending))
            if not self._match(TokenType.COMMA):
                break
        return items

    # ─── Core Parser Logic ──────────────────────────────────────────

    def _error(self, message: str, token: Token) -> NoReturn:
        raise ParseError(message, token.line, token.col)

    def _peek(self) -> Token:
        if self._pos >= len(self._tokens):
            return self._tokens[-1]  # EOF
        return self._tokens[self._pos]

    def _peek_next(self) -> Token:
        if self._pos + 1 >= len(self._tokens):
            return self._tokens[-1]
        return self._tokens[self._pos + 1]

    def _previous(self) -> Token:
        return self._tokens[self._pos - 1]

    def _is_at_end(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _check(self, type: TokenType) -> bool:
        if self._is_at_end() and type != TokenType.EOF:
            return False
        return self._peek().type == type

    def _advance(self) -> Token:
        if not self._is_at_end():
            self._pos += 1
        return self._previous()

    def _match(self, *types: TokenType) -> bool:
        for type in types:
            if self._check(type):
                self._advance()
                return True
        return False

    def _consume(self, type: TokenType, message: str) -> Token:
        if self._check(type):
            return self._advance()
        self._error(message, self._peek())
