"""Parser for the portable filter grammar.

Grammar::

    expression := or_expr
    or_expr    := and_expr (("||" | OR) and_expr)*
    and_expr   := unary (("&&" | AND) unary)*
    unary      := ("!" | NOT) unary | primary
    primary    := "(" expression ")" | predicate
    predicate  := FIELD op literal | FIELD IN "[" [literal ("," literal)*] "]"
    op         := "==" | "!=" | ">" | ">=" | "<" | "<="

Literals are single- or double-quoted strings, integers, floats and
``true``/``false``. Keywords are case-insensitive.
"""

import re
from dataclasses import dataclass

from src.exceptions import FilterSyntaxError
from src.filters.expressions import (
    And,
    Comparison,
    FilterExpression,
    Group,
    In,
    Not,
    Operator,
    Or,
    Scalar,
)

_TOKEN_SPEC = [
    ("WS", r"\s+"),
    ("AND", r"&&"),
    ("OR", r"\|\|"),
    ("OP", r"==|!=|>=|<=|>|<"),
    ("NOT", r"!"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("LBRACKET", r"\["),
    ("RBRACKET", r"\]"),
    ("COMMA", r","),
    ("STRING", r"'[^']*'|\"[^\"]*\""),
    ("NUMBER", r"-?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][-+]?\d+)?(?![A-Za-z_])"),
    ("IDENT", r"[A-Za-z_][A-Za-z0-9_.]*"),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_SPEC))

_KEYWORDS = {"and": "AND", "or": "OR", "not": "NOT", "in": "IN", "true": "BOOL", "false": "BOOL"}


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


def tokenize(text: str) -> list[Token]:
    """Split filter text into tokens.

    Raises:
        FilterSyntaxError: On characters that start no valid token.
    """
    tokens: list[Token] = []
    position = 0
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if match is None:
            if text[position] in "'\"":
                raise FilterSyntaxError("Unterminated string literal", position, text)
            raise FilterSyntaxError(
                f"Unexpected character {text[position]!r}", position, text
            )
        kind = match.lastgroup or ""
        value = match.group()
        if kind == "IDENT":
            kind = _KEYWORDS.get(value.lower(), "IDENT")
        if kind != "WS":
            tokens.append(Token(kind, value, position))
        position = match.end()
    tokens.append(Token("EOF", "", len(text)))
    return tokens


class FilterParser:
    """Recursive-descent parser producing ``FilterExpression`` trees."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._tokens = tokenize(text)
        self._index = 0

    def parse(self) -> FilterExpression:
        if self._peek().kind == "EOF":
            raise FilterSyntaxError("Empty filter expression", 0, self._text)
        expr = self._or_expr()
        token = self._peek()
        if token.kind == "RPAREN":
            raise FilterSyntaxError("Unbalanced ')'", token.position, self._text)
        if token.kind != "EOF":
            raise FilterSyntaxError(
                f"Unexpected token {token.text!r}", token.position, self._text
            )
        return expr

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _expect(self, kind: str, description: str) -> Token:
        token = self._peek()
        if token.kind != kind:
            found = "end of input" if token.kind == "EOF" else repr(token.text)
            raise FilterSyntaxError(
                f"Expected {description}, found {found}", token.position, self._text
            )
        return self._advance()

    def _or_expr(self) -> FilterExpression:
        expr = self._and_expr()
        while self._peek().kind == "OR":
            self._advance()
            expr = Or(left=expr, right=self._and_expr())
        return expr

    def _and_expr(self) -> FilterExpression:
        expr = self._unary()
        while self._peek().kind == "AND":
            self._advance()
            expr = And(left=expr, right=self._unary())
        return expr

    def _unary(self) -> FilterExpression:
        if self._peek().kind == "NOT":
            self._advance()
            return Not(child=self._unary())
        return self._primary()

    def _primary(self) -> FilterExpression:
        token = self._peek()
        if token.kind == "LPAREN":
            self._advance()
            inner = self._or_expr()
            closing = self._peek()
            if closing.kind != "RPAREN":
                raise FilterSyntaxError("Unbalanced '('", token.position, self._text)
            self._advance()
            return Group(child=inner)
        return self._predicate()

    def _predicate(self) -> FilterExpression:
        field = self._expect("IDENT", "field name")
        token = self._peek()
        if token.kind == "IN":
            self._advance()
            return In(field=field.text, values=self._list(field.text))
        if token.kind != "OP":
            found = "end of input" if token.kind == "EOF" else repr(token.text)
            raise FilterSyntaxError(
                f"Unknown operator {found} after field {field.text!r}",
                token.position,
                self._text,
            )
        self._advance()
        operator = Operator(token.text)
        value_token = self._peek()
        value = self._literal()
        if operator.is_ordering and isinstance(value, bool):
            raise FilterSyntaxError(
                f"Operator {operator.value!r} cannot compare boolean values",
                value_token.position,
                self._text,
            )
        return Comparison(field=field.text, operator=operator, value=value)

    def _list(self, field: str) -> tuple[Scalar, ...]:
        start = self._expect("LBRACKET", "'['")
        values: list[Scalar] = []
        if self._peek().kind != "RBRACKET":
            values.append(self._literal())
            while self._peek().kind == "COMMA":
                self._advance()
                values.append(self._literal())
        if self._peek().kind != "RBRACKET":
            raise FilterSyntaxError("Unbalanced '['", start.position, self._text)
        self._advance()
        kinds = {_literal_kind(v) for v in values}
        if len(kinds) > 1:
            raise FilterSyntaxError(
                f"Mixed value types in list for field {field!r}",
                start.position,
                self._text,
            )
        return tuple(values)

    def _literal(self) -> Scalar:
        token = self._advance()
        if token.kind == "STRING":
            return token.text[1:-1]
        if token.kind == "BOOL":
            return token.text.lower() == "true"
        if token.kind == "NUMBER":
            if any(c in token.text for c in ".eE"):
                return float(token.text)
            return int(token.text)
        found = "end of input" if token.kind == "EOF" else repr(token.text)
        raise FilterSyntaxError(
            f"Expected a value literal, found {found}", token.position, self._text
        )


def _literal_kind(value: Scalar) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    return "string"


def parse_filter(text: str) -> FilterExpression:
    """Parse a portable filter string.

    Args:
        text: Filter in the portable grammar, e.g.
            ``"country in ['UK', 'NL'] && year >= 2020"``.

    Returns:
        The parsed expression tree.

    Raises:
        FilterSyntaxError: If the text is malformed.
    """
    return FilterParser(text).parse()
