"""Translation of portable filter expressions into Typesense ``filter_by``."""

from abc import ABC, abstractmethod

from src.exceptions import FilterValueError, UnknownFieldError
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
    is_identifier,
    iter_fields,
    precedence,
)
from src.schema import CollectionSchema

# Selects no document: ids are never assigned this value by the mapper.
MATCH_NOTHING_FILTER = "id:=__match_nothing__"

OPERATOR_SYMBOLS: dict[Operator, str] = {
    Operator.EQ: "",
    Operator.NE: "!=",
    Operator.GT: ">",
    Operator.GTE: ">=",
    Operator.LT: "<",
    Operator.LTE: "<=",
}

# Sequences that would end a quoted value or a list, or start a new clause.
_FORBIDDEN_SEQUENCES = ("'", "`", "[", "]", "&&", "||")


class FilterTranslator(ABC):
    """Converts expression trees into a backend's native filter syntax."""

    def translate(self, expr: FilterExpression, schema: CollectionSchema) -> str:
        """Translate ``expr`` for the collection described by ``schema``.

        Every referenced field is checked before any output is produced.

        Raises:
            UnknownFieldError: If a field is not declared in the schema.
            FilterValueError: If a value cannot be embedded safely.
        """
        for field in iter_fields(expr):
            if not is_identifier(field) or not schema.is_filterable(field):
                raise UnknownFieldError(field, schema.name)
        return self._emit(expr)

    @abstractmethod
    def _emit(self, expr: FilterExpression) -> str:
        ...


class TypesenseFilterTranslator(FilterTranslator):
    """Emits Typesense ``filter_by`` strings.

    ``country in ['UK','NL'] && year >= 2020`` becomes
    ``country:['UK','NL'] && year:>=2020``.
    """

    def _emit(self, expr: FilterExpression) -> str:
        if isinstance(expr, Comparison):
            symbol = OPERATOR_SYMBOLS[expr.operator]
            return f"{expr.field}:{symbol}{self._value(expr.field, expr.value)}"
        if isinstance(expr, In):
            if not expr.values:
                return MATCH_NOTHING_FILTER
            values = ",".join(self._value(expr.field, v) for v in expr.values)
            return f"{expr.field}:[{values}]"
        if isinstance(expr, Group):
            return f"({self._emit(expr.child)})"
        if isinstance(expr, Not):
            return f"!({self._emit(expr.child)})"
        if isinstance(expr, And):
            return self._binary(expr, expr.left, expr.right, "&&")
        if isinstance(expr, Or):
            return self._binary(expr, expr.left, expr.right, "||")
        raise TypeError(f"Unsupported filter node: {type(expr).__name__}")

    def _binary(
        self,
        parent: FilterExpression,
        left: FilterExpression,
        right: FilterExpression,
        symbol: str,
    ) -> str:
        level = precedence(parent)
        return f"{self._operand(left, level)} {symbol} {self._operand(right, level)}"

    def _operand(self, expr: FilterExpression, parent_level: int) -> str:
        text = self._emit(expr)
        if precedence(expr) < parent_level:
            return f"({text})"
        return text

    def _value(self, field: str, value: Scalar) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, str):
            for sequence in _FORBIDDEN_SEQUENCES:
                if sequence in value:
                    raise FilterValueError(
                        f"Filter value for {field!r} contains {sequence!r}",
                        field,
                        value,
                    )
            return f"'{value}'"
        return repr(value)
