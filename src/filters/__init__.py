"""Portable metadata filter module."""

from src.filters.expressions import (
    And,
    Comparison,
    FilterBuilder,
    FilterExpression,
    Group,
    In,
    Not,
    Operator,
    Or,
    render,
)
from src.filters.parser import parse_filter
from src.filters.translator import (
    MATCH_NOTHING_FILTER,
    FilterTranslator,
    TypesenseFilterTranslator,
)

__all__ = [
    "MATCH_NOTHING_FILTER",
    "And",
    "Comparison",
    "FilterBuilder",
    "FilterExpression",
    "FilterTranslator",
    "Group",
    "In",
    "Not",
    "Operator",
    "Or",
    "TypesenseFilterTranslator",
    "parse_filter",
    "render",
]
