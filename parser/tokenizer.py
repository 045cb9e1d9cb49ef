"""
CsvQL SQL Tokenizer
===================
Converts raw SQL strings into a stream of typed tokens.

Features:
- Case-insensitive keywords (SELECT = select)
- Quoted identifiers ("My Column")
- String literals ('hello world', '' escapes a quote)
- Numeric literals (integers and decimals)
- Operators and punctuation
- Line/column tracking for error reporting
- EOF sentinel token
"""

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import List


class ParseError(Exception):
    """Malformed SQL text, with the position where it was detected."""
    def __init__(self, message: str, line: int, col: int):
        super().__init__(f"{message} at line {line}:{col}")
        self.line = line
        self.col = col


class TokenType(Enum):
    # Keywords
    SELECT = auto()
    FROM = auto()
    WHERE = auto()
    GROUP = auto()
    HAVING = auto()
    ORDER = auto()
    BY = auto()
    ASC = auto()
    DESC = auto()
    LIMIT = auto()
    AS = auto()
    AND = auto()
    OR = auto()
    NOT = auto()
    NULL = auto()
    TRUE = auto()
    FALSE = auto()
    DISTINCT = auto()
    IS = auto()

    # Query Analysis / Export
    EXPLAIN = auto()
    LOGICAL = auto()
    PHYSICAL = auto()
    COPY = auto()
    TO = auto()

    # Literals
    NUMBER = auto()      # 123, 3.14
    STRING_LIT = auto()  # 'hello'
    IDENTIFIER = auto()  # column_name, "Quoted Name"

    # Operators
    EQ = auto()          # =
    NEQ = auto()         # != or <>
    LT = auto()          # <
    GT = auto()          # >
    LTE = auto()         # <=
    GTE = auto()         # >=
    PLUS = auto()        # +
    MINUS = auto()       # -
    STAR = auto()        # *
    SLASH = auto()       # /
    PERCENT = auto()     # %

    # Punctuation
    LPAREN = auto()      # (
    RPAREN = auto()      # )
    COMMA = auto()       # ,
    DOT = auto()         # .
    SEMICOLON = auto()   # ;

    # Special
    EOF = auto()


@dataclass(frozen=True)
class Token:
    """Immutable token with position info."""
    type: TokenType
    value: str
    line: int
    col: int
    quoted: bool = False  # identifier written as "..."

    def __repr__(self) -> str:
        return f"Token({self.type.name}, '{self.value}', {self.line}:{self.col})"


class Tokenizer:
    """
    Lexer for SQL. Call .tokenize(sql) to get a list of tokens.
    """

    # Keyword map (uppercase for normalization)
    KEYWORDS = {
        "SELECT": TokenType.SELECT,
        "FROM": TokenType.FROM,
        "WHERE": TokenType.WHERE,
        "GROUP": TokenType.GROUP,
        "HAVING": TokenType.HAVING,
        "ORDER": TokenType.ORDER,
        "BY": TokenType.BY,
        "ASC": TokenType.ASC,
        "DESC": TokenType.DESC,
        "LIMIT": TokenType.LIMIT,
        "AS": TokenType.AS,
        "AND": TokenType.AND,
        "OR": TokenType.OR,
        "NOT": TokenType.NOT,
        "NULL": TokenType.NULL,
        "TRUE": TokenType.TRUE,
        "FALSE": TokenType.FALSE,
        "DISTINCT": TokenType.DISTINCT,
        "IS": TokenType.IS,
        "EXPLAIN": TokenType.EXPLAIN,
        "LOGICAL": TokenType.LOGICAL,
        "PHYSICAL": TokenType.PHYSICAL,
        "COPY": TokenType.COPY,
        "TO": TokenType.TO,
    }

    # Regex patterns
    # Note: order matters!
    PATTERNS = [
        # Whitespace (skip)
        (re.compile(r'\s+'), None),
        # Comments (skip) -- and /* */
        (re.compile(r'--.*'), None),
        (re.compile(r'/\*.*?\*/', re.DOTALL), None),

        # Operators (multi-char first)
        (re.compile(r'>='), TokenType.GTE),
        (re.compile(r'<='), TokenType.LTE),
        (re.compile(r'!='), TokenType.NEQ),
        (re.compile(r'<>'), TokenType.NEQ),
        (re.compile(r'='), TokenType.EQ),
        (re.compile(r'<'), TokenType.LT),
        (re.compile(r'>'), TokenType.GT),
        (re.compile(r'\+'), TokenType.PLUS),
        (re.compile(r'-'), TokenType.MINUS),
        (re.compile(r'\*'), TokenType.STAR),
        (re.compile(r'/'), TokenType.SLASH),
        (re.compile(r'%'), TokenType.PERCENT),

        # Punctuation
        (re.compile(r'\('), TokenType.LPAREN),
        (re.compile(r'\)'), TokenType.RPAREN),
        (re.compile(r','), TokenType.COMMA),
        (re.compile(r';'), TokenType.SEMICOLON),

        # Literals
        # String: 'hello' (supports escaped single quote via '')
        (re.compile(r"'((?:''|[^'])*)'"), TokenType.STRING_LIT),
        # Number: 123.45, .5 or 123
        (re.compile(r'\d+\.\d+'), TokenType.NUMBER),
        (re.compile(r'\.\d+'), TokenType.NUMBER),
        (re.compile(r'\d+'), TokenType.NUMBER),

        # Dot after numbers so ".5" is a number
        (re.compile(r'\.'), TokenType.DOT),

        # Identifiers / Keywords
        # Quoted identifier: "My Column" ("" escapes a quote)
        (re.compile(r'"((?:""|[^"])+)"'), TokenType.IDENTIFIER),
        # Unquoted word: my_column (could be keyword)
        (re.compile(r'[a-zA-Z_][a-zA-Z0-9_]*'), TokenType.IDENTIFIER),
    ]

    def tokenize(self, sql: str) -> List[Token]:
        """Tokenize SQL string into a list of Tokens."""
        tokens = []
        pos = 0
        line = 1
        col_start = 0  # position of start of current line in string

        while pos < len(sql):
            match = None

            for pattern, token_type in self.PATTERNS:
                regex_match = pattern.match(sql, pos)
                if regex_match:
                    text = regex_match.group(0)

                    if token_type:  # If not skipped (whitespace/comments)
                        quoted = False
                        if token_type == TokenType.IDENTIFIER and not text.startswith('"'):
                            upper_text = text.upper()
                            if upper_text in self.KEYWORDS:
                                token_type = self.KEYWORDS[upper_text]

                        value = text
                        if token_type == TokenType.STRING_LIT:
                            value = regex_match.group(1).replace("''", "'")
                        elif token_type == TokenType.IDENTIFIER and text.startswith('"'):
                            value = regex_match.group(1).replace('""', '"')
                            quoted = True

                        col = pos - col_start + 1
                        tokens.append(Token(token_type, value, line, col, quoted))

                    pos += len(text)

                    newlines = text.count('\n')
                    if newlines > 0:
                        line += newlines
                        col_start = pos - (len(text) - text.rfind('\n') - 1)

                    match = regex_match
                    break

            if not match:
                col = pos - col_start + 1
                char = sql[pos]
                raise ParseError(f"Unexpected character '{char}'", line, col)

        # Always append EOF
        tokens.append(Token(TokenType.EOF, "", line, pos - col_start + 1))
        return tokens
