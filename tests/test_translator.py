"""Tests for the Typesense filter_by translator."""

from typing import Any

import pytest

from src.exceptions import ErrorCode, FilterValueError, UnknownFieldError, ValidationError
from src.filters import parse_filter
from src.filters.expressions import FilterBuilder, FilterExpression
from src.filters.translator import MATCH_NOTHING_FILTER, TypesenseFilterTranslator
from src.schema import CollectionSchema, FieldSpec, FieldType, build_schema
from tests.fakes import TypesenseFilter, evaluate

b = FilterBuilder()


@pytest.fixture
def translator() -> TypesenseFilterTranslator:
    return TypesenseFilterTranslator()


@pytest.fixture
def schema() -> CollectionSchema:
    """Strict schema without dynamic fields."""
    return build_schema(
        "docs",
        8,
        [
            FieldSpec(name="country", type=FieldType.STRING, facet=True),
            FieldSpec(name="year", type=FieldType.INT32),
            FieldSpec(name="price", type=FieldType.FLOAT),
            FieldSpec(name="published", type=FieldType.BOOL),
        ],
        allow_dynamic_fields=False,
    )


class TestTranslation:
    """Tests for the emitted filter_by text."""

    def test_contract_example(
        self, translator: TypesenseFilterTranslator, schema: CollectionSchema
    ) -> None:
        """The documented example is emitted byte-for-byte."""
        expr = b.and_(b.in_("country", ["UK", "NL"]), b.gte("year", 2020))
        assert translator.translate(expr, schema) == "country:['UK','NL'] && year:>=2020"

    def test_parsed_contract_example(
        self, translator: TypesenseFilterTranslator, schema: CollectionSchema
    ) -> None:
        """Parsing then translating gives the same output as building."""
        expr = parse_filter("country in ['UK','NL'] && year >= 2020")
        assert translator.translate(expr, schema) == "country:['UK','NL'] && year:>=2020"

    @pytest.mark.parametrize(
        ("expr", "expected"),
        [
            (b.eq("country", "UK"), "country:'UK'"),
            (b.ne("country", "UK"), "country:!='UK'"),
            (b.gt("year", 2020), "year:>2020"),
            (b.gte("year", 2020), "year:>=2020"),
            (b.lt("price", 9.5), "price:<9.5"),
            (b.lte("price", 10), "price:<=10"),
            (b.eq("published", True), "published:true"),
            (b.eq("published", False), "published:false"),
            (b.in_("year", [2020, 2021]), "year:[2020,2021]"),
        ],
    )
    def test_predicates(
        self,
        translator: TypesenseFilterTranslator,
        schema: CollectionSchema,
        expr: FilterExpression,
        expected: str,
    ) -> None:
        """Each predicate maps to its Typesense clause."""
        assert translator.translate(expr, schema) == expected

    @pytest.mark.parametrize(
        ("expr", "expected"),
        [
            (
                b.or_(b.eq("country", "UK"), b.gt("year", 2000)),
                "country:'UK' || year:>2000",
            ),
            (
                b.and_(b.or_(b.eq("country", "UK"), b.eq("country", "NL")), b.gt("year", 2000)),
                "(country:'UK' || country:'NL') && year:>2000",
            ),
            (
                b.and_(b.gt("year", 2000), b.or_(b.eq("country", "UK"), b.eq("country", "NL"))),
                "year:>2000 && (country:'UK' || country:'NL')",
            ),
            (
                b.or_(b.and_(b.eq("country", "UK"), b.gt("year", 2000)), b.eq("published", True)),
                "country:'UK' && year:>2000 || published:true",
            ),
            (
                b.not_(b.eq("country", "UK")),
                "!(country:'UK')",
            ),
            (
                b.not_(b.and_(b.eq("country", "UK"), b.gt("year", 2000))),
                "!(country:'UK' && year:>2000)",
            ),
            (
                b.group(b.eq("country", "UK")),
                "(country:'UK')",
            ),
        ],
    )
    def test_composites(
        self,
        translator: TypesenseFilterTranslator,
        schema: CollectionSchema,
        expr: FilterExpression,
        expected: str,
    ) -> None:
        """Boolean structure is kept with minimal parentheses."""
        assert translator.translate(expr, schema) == expected

    def test_empty_in_matches_nothing(
        self, translator: TypesenseFilterTranslator, schema: CollectionSchema
    ) -> None:
        """An empty In becomes a clause no record satisfies."""
        result = translator.translate(b.in_("country", []), schema)
        assert result == MATCH_NOTHING_FILTER
        flt = TypesenseFilter(result)
        assert not flt.matches({"id": "doc-1", "country": "UK"})

    def test_empty_in_inside_or(
        self, translator: TypesenseFilterTranslator, schema: CollectionSchema
    ) -> None:
        """The sentinel composes with other clauses."""
        expr = b.or_(b.in_("country", []), b.eq("country", "UK"))
        result = translator.translate(expr, schema)
        assert result == f"{MATCH_NOTHING_FILTER} || country:'UK'"
        assert TypesenseFilter(result).matches({"id": "doc-1", "country": "UK"})


class TestFieldValidation:
    """Tests for schema checks on referenced fields."""

    def test_unknown_field(
        self, translator: TypesenseFilterTranslator, schema: CollectionSchema
    ) -> None:
        """Undeclared fields are rejected with the field name."""
        expr = b.and_(b.eq("country", "UK"), b.eq("author", "x"))
        with pytest.raises(UnknownFieldError) as exc_info:
            translator.translate(expr, schema)
        assert exc_info.value.field == "author"
        assert exc_info.value.code == ErrorCode.FILTER_UNKNOWN_FIELD
        assert exc_info.value.details["collection"] == "docs"

    def test_unknown_field_is_validation_error(
        self, translator: TypesenseFilterTranslator, schema: CollectionSchema
    ) -> None:
        """Callers can catch all input problems as ValidationError."""
        with pytest.raises(ValidationError):
            translator.translate(b.eq("author", "x"), schema)

    def test_embedding_not_filterable(
        self, translator: TypesenseFilterTranslator, schema: CollectionSchema
    ) -> None:
        """The vector field cannot be used in filters."""
        with pytest.raises(UnknownFieldError):
            translator.translate(b.eq("embedding", 1), schema)

    def test_reserved_text_fields_filterable(
        self, translator: TypesenseFilterTranslator, schema: CollectionSchema
    ) -> None:
        """id and content are regular string fields."""
        assert translator.translate(b.in_("id", ["doc-1"]), schema) == "id:['doc-1']"

    def test_dynamic_fields_accept_any_identifier(
        self, translator: TypesenseFilterTranslator
    ) -> None:
        """A catch-all declaration covers undeclared metadata keys."""
        schema = build_schema("docs", 8, allow_dynamic_fields=True)
        assert translator.translate(b.eq("author", "x"), schema) == "author:'x'"

    def test_dynamic_fields_still_reject_bad_names(
        self, translator: TypesenseFilterTranslator
    ) -> None:
        """Names that are not identifiers never reach the output."""
        schema = build_schema("docs", 8, allow_dynamic_fields=True)
        with pytest.raises(UnknownFieldError):
            translator.translate(b.eq("a:b", "x"), schema)

    def test_validation_happens_before_output(
        self, translator: TypesenseFilterTranslator, schema: CollectionSchema
    ) -> None:
        """Field errors take precedence over value errors later in the tree."""
        expr = b.and_(b.eq("country", "it's"), b.eq("author", "x"))
        with pytest.raises(UnknownFieldError):
            translator.translate(expr, schema)


class TestValueSafety:
    """Tests for values that could alter the filter structure."""

    @pytest.mark.parametrize(
        "value",
        [
            "UK' || country:'NL",
            "back`tick",
            "[UK]",
            "a && b",
            "a || b",
        ],
    )
    def test_rejects_injection(
        self,
        translator: TypesenseFilterTranslator,
        schema: CollectionSchema,
        value: str,
    ) -> None:
        """Quote, backtick, bracket and boolean operator sequences are rejected."""
        with pytest.raises(FilterValueError) as exc_info:
            translator.translate(b.eq("country", value), schema)
        assert exc_info.value.code == ErrorCode.FILTER_INVALID_VALUE
        assert exc_info.value.details["field"] == "country"

    def test_rejects_injection_in_list(
        self, translator: TypesenseFilterTranslator, schema: CollectionSchema
    ) -> None:
        """List members are checked too."""
        with pytest.raises(FilterValueError):
            translator.translate(b.in_("country", ["UK", "NL']"]), schema)

    def test_allows_plain_punctuation(
        self, translator: TypesenseFilterTranslator, schema: CollectionSchema
    ) -> None:
        """Ordinary punctuation stays inside the quoted value."""
        result = translator.translate(b.eq("country", "St. Kitts & Nevis"), schema)
        assert result == "country:'St. Kitts & Nevis'"


_RECORDS: list[dict[str, Any]] = [
    {"id": "doc-1", "country": "UK", "year": 2019, "price": 5.0, "published": True},
    {"id": "doc-2", "country": "NL", "year": 2021, "price": 12.5, "published": False},
    {"id": "doc-3", "country": "DE", "year": 2020, "price": 9.5, "published": True},
    {"id": "doc-4", "country": "UK", "year": 2023},
    {"id": "doc-5", "year": 2018, "published": False},
]

_EXPRESSIONS = [
    "country == 'UK'",
    "country != 'UK'",
    "year > 2019 && year <= 2021",
    "country in ['UK', 'NL'] && year >= 2020",
    "country in []",
    "!(country == 'UK')",
    "!country == 'UK' || published == true",
    "(country == 'DE' || country == 'NL') && price < 10",
    "country == 'UK' && year < 2020 || published == false",
    "!(year in [2019, 2020] || price >= 12)",
    "published == true && !(price > 6.0)",
]


class TestSemanticEquivalence:
    """The emitted filter selects exactly the records the tree describes."""

    @pytest.mark.parametrize("text", _EXPRESSIONS)
    def test_same_selection(
        self,
        translator: TypesenseFilterTranslator,
        schema: CollectionSchema,
        text: str,
    ) -> None:
        """Typesense-side evaluation agrees with in-memory evaluation."""
        expr = parse_filter(text)
        flt = TypesenseFilter(translator.translate(expr, schema))
        for record in _RECORDS:
            assert flt.matches(record) == evaluate(expr, record), record["id"]
