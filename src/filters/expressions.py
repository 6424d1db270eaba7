"""Portable metadata filter expressions.

A filter is an immutable tree of pydantic nodes. Trees are built either with
``FilterBuilder`` or by parsing the portable text grammar, and ``render``
turns a tree back into that grammar.
"""

import re
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Scalar = Union[bool, int, float, str]


class Operator(str, Enum):
    """Comparison operators."""

    EQ = "=="
    NE = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="

    @property
    def is_ordering(self) -> bool:
        """Whether the operator needs ordered values."""
        return self not in (Operator.EQ, Operator.NE)


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class Comparison(_Node):
    """``field OP value``."""

    kind: Literal["comparison"] = "comparison"
    field: str = Field(min_length=1)
    operator: Operator
    value: Scalar


class In(_Node):
    """``field in [v1, v2, ...]``."""

    kind: Literal["in"] = "in"
    field: str = Field(min_length=1)
    values: tuple[Scalar, ...] = ()


class And(_Node):
    """Both sides must match."""

    kind: Literal["and"] = "and"
    left: "FilterExpression"
    right: "FilterExpression"


class Or(_Node):
    """Either side must match."""

    kind: Literal["or"] = "or"
    left: "FilterExpression"
    right: "FilterExpression"


class Not(_Node):
    """Negation of the child expression."""

    kind: Literal["not"] = "not"
    child: "FilterExpression"


class Group(_Node):
    """Explicit parentheses around the child expression."""

    kind: Literal["group"] = "group"
    child: "FilterExpression"


FilterExpression = Union[Comparison, In, And, Or, Not, Group]

for _model in (And, Or, Not, Group):
    _model.model_rebuild()


class FilterBuilder:
    """Fluent construction of filter expressions.

    Example:
        >>> b = FilterBuilder()
        >>> b.and_(b.in_("country", ["UK", "NL"]), b.gte("year", 2020))
    """

    def eq(self, field: str, value: Scalar) -> Comparison:
        return Comparison(field=field, operator=Operator.EQ, value=value)

    def ne(self, field: str, value: Scalar) -> Comparison:
        return Comparison(field=field, operator=Operator.NE, value=value)

    def gt(self, field: str, value: Scalar) -> Comparison:
        return Comparison(field=field, operator=Operator.GT, value=value)

    def gte(self, field: str, value: Scalar) -> Comparison:
        return Comparison(field=field, operator=Operator.GTE, value=value)

    def lt(self, field: str, value: Scalar) -> Comparison:
        return Comparison(field=field, operator=Operator.LT, value=value)

    def lte(self, field: str, value: Scalar) -> Comparison:
        return Comparison(field=field, operator=Operator.LTE, value=value)

    def in_(self, field: str, values: list[Scalar] | tuple[Scalar, ...]) -> In:
        return In(field=field, values=tuple(values))

    def and_(self, left: FilterExpression, right: FilterExpression) -> And:
        return And(left=left, right=right)

    def or_(self, left: FilterExpression, right: FilterExpression) -> Or:
        return Or(left=left, right=right)

    def not_(self, child: FilterExpression) -> Not:
        return Not(child=child)

    def group(self, child: FilterExpression) -> Group:
        return Group(child=child)


# Binding strength of each node type; atoms bind tightest.
_PRECEDENCE: dict[str, int] = {
    "or": 1,
    "and": 2,
    "not": 3,
    "comparison": 4,
    "in": 4,
    "group": 4,
}

_PLAIN_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")


def precedence(expr: FilterExpression) -> int:
    """Binding strength of the expression's top-level node."""
    return _PRECEDENCE[expr.kind]


def format_literal(value: Scalar) -> str:
    """Render a scalar in the portable grammar.

    Raises:
        ValueError: If a string holds both quote characters, which the
            grammar has no way to escape.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        if "'" in value:
            if '"' in value:
                raise ValueError(f"cannot render a string with both quote kinds: {value!r}")
            return '"' + value + '"'
        return "'" + value + "'"
    return repr(value)


def render(expr: FilterExpression) -> str:
    """Render an expression in the portable text grammar.

    Parentheses are emitted for ``Group`` nodes and wherever a child binds
    looser than its parent, so that parsing the output yields the same tree
    (with those implicit parentheses appearing as ``Group`` nodes).
    """
    if isinstance(expr, Comparison):
        return f"{expr.field} {expr.operator.value} {format_literal(expr.value)}"
    if isinstance(expr, In):
        values = ", ".join(format_literal(v) for v in expr.values)
        return f"{expr.field} in [{values}]"
    if isinstance(expr, Group):
        return f"({render(expr.child)})"
    if isinstance(expr, Not):
        return "!" + _render_operand(expr.child, precedence(expr))
    symbol = "&&" if isinstance(expr, And) else "||"
    level = precedence(expr)
    left = _render_operand(expr.left, level)
    # Binary operators are left-associative, so an equal-precedence right
    # operand needs parentheses to keep its position in the tree.
    right = _render_operand(expr.right, level + 1)
    return f"{left} {symbol} {right}"


def _render_operand(expr: FilterExpression, parent_level: int) -> str:
    text = render(expr)
    if precedence(expr) < parent_level:
        return f"({text})"
    return text


def iter_fields(expr: FilterExpression) -> list[str]:
    """Field names referenced by an expression, in order of appearance."""
    if isinstance(expr, (Comparison, In)):
        return [expr.field]
    if isinstance(expr, (Not, Group)):
        return iter_fields(expr.child)
    return iter_fields(expr.left) + iter_fields(expr.right)


def is_identifier(name: str) -> bool:
    """Whether ``name`` is a plain (optionally dotted) field identifier."""
    return _PLAIN_IDENTIFIER.fullmatch(name) is not None
