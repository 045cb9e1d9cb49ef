"""
CsvQL SQL Parser
================
Public API for the SQL parser.

Usage:
    from parser import parse, ParseError

    ast = parse("SELECT id, COUNT(*) FROM test GROUP BY id")
    print(ast)

    where = parse_expression("id > 1 AND label IS NOT NULL")
"""

from parser.parser import Parser, AGGREGATE_FUNCTIONS
from parser.tokenizer import Tokenizer, Token, TokenType, ParseError
from parser.ast_nodes import Statement, Expression, SelectItem, OrderItem


def parse(sql: str) -> Statement:
    """
    Parse a SQL string into an AST Statement.
    Raises ParseError if syntax is invalid.
    """
    tokenizer = Tokenizer()
    tokens = tokenizer.tokenize(sql)
    parser = Parser(tokens)
    return parser.parse()


def parse_expression(text: str) -> Expression:
    """Parse a bare expression such as `id > 1`."""
    return Parser(Tokenizer().tokenize(text)).parse_expression()


def parse_select_item(text: str) -> SelectItem:
    """Parse `expr [AS alias]` (or `*`)."""
    return Parser(Tokenizer().tokenize(text)).parse_select_item()


def parse_order_item(text: str) -> OrderItem:
    """Parse `expr [ASC|DESC]`."""
    return Parser(Tokenizer().tokenize(text)).parse_order_item()


def tokenize(sql: str) -> list[Token]:
    """Tokenize SQL string (for debugging)."""
    return Tokenizer().tokenize(sql)
