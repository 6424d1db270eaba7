"""In-memory stand-ins for the backend and embedding collaborators."""

import hashlib
import math
import re
from typing import Any

from src.embeddings.models import EmbeddingResult
from src.embeddings.service import EmbeddingService
from src.exceptions import ErrorCode, TransportError
from src.filters.expressions import (
    And,
    Comparison,
    FilterExpression,
    Group,
    In,
    Not,
    Operator,
    Or,
)
from src.vectorstore.client import BackendClient

DIMENSION = 8


def text_vector(text: str, dimension: int = DIMENSION) -> list[float]:
    """Deterministic unit vector derived from the text's hash."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = [digest[i] - 127.5 for i in range(dimension)]
    norm = math.sqrt(sum(v * v for v in raw)) or 1.0
    return [v / norm for v in raw]


class FakeEmbeddingService(EmbeddingService):
    """Embeds text into deterministic hash vectors."""

    def __init__(self, dimension: int = DIMENSION) -> None:
        self._dimension = dimension
        self.calls: list[list[str]] = []

    async def embed(self, text: str) -> EmbeddingResult:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        self.calls.append(list(texts))
        return [
            EmbeddingResult(
                text=text,
                embedding=text_vector(text, self._dimension),
                model="fake",
                dimensions=self._dimension,
            )
            for text in texts
        ]

    @property
    def model_name(self) -> str:
        return "fake"

    @property
    def dimensions(self) -> int:
        return self._dimension


# --- Typesense filter_by evaluation -------------------------------------------

_FILTER_TOKEN = re.compile(
    r"\s*(?:"
    r"(?P<and>&&)|(?P<or>\|\|)|(?P<not>!\()|(?P<lparen>\()|(?P<rparen>\))|"
    r"(?P<field>[A-Za-z_][A-Za-z0-9_.]*):(?P<op>!=|>=|<=|>|<|=)?"
    r"(?P<value>\[(?:`[^`]*`|[^\]`])*\]|`[^`]*`|'[^']*'|[^\s()&|]+)"
    r")"
)


def _parse_value(raw: str) -> Any:
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "'`":
        return raw[1:-1]
    if raw in ("true", "false"):
        return raw == "true"
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return raw


def _compare(actual: Any, op: str, expected: Any) -> bool:
    if op in ("", "="):
        return actual == expected
    if op == "!=":
        return actual != expected
    if isinstance(actual, bool) or not isinstance(actual, (int, float)):
        return False
    if op == ">":
        return actual > expected
    if op == ">=":
        return actual >= expected
    if op == "<":
        return actual < expected
    return actual <= expected


class TypesenseFilter:
    """Evaluates the subset of ``filter_by`` syntax the translator emits."""

    def __init__(self, text: str) -> None:
        self._tokens: list[tuple[str, Any]] = []
        position = 0
        text = text.strip()
        while position < len(text):
            match = _FILTER_TOKEN.match(text, position)
            if match is None or match.end() == position:
                raise ValueError(f"cannot parse filter_by at {position}: {text!r}")
            kind = match.lastgroup
            if match.group("field"):
                self._tokens.append(
                    ("clause", (match.group("field"), match.group("op") or "", match.group("value")))
                )
            else:
                self._tokens.append((kind or "", None))
            position = match.end()
        self._index = 0

    def matches(self, record: dict[str, Any]) -> bool:
        self._index = 0
        self._record = record
        result = self._or()
        if self._index != len(self._tokens):
            raise ValueError("trailing tokens in filter_by")
        return result

    def _peek(self) -> str | None:
        return self._tokens[self._index][0] if self._index < len(self._tokens) else None

    def _or(self) -> bool:
        result = self._and()
        while self._peek() == "or":
            self._index += 1
            right = self._and()
            result = result or right
        return result

    def _and(self) -> bool:
        result = self._unary()
        while self._peek() == "and":
            self._index += 1
            right = self._unary()
            result = result and right
        return result

    def _unary(self) -> bool:
        kind = self._peek()
        if kind in ("not", "lparen"):
            self._index += 1
            inner = self._or()
            if self._peek() != "rparen":
                raise ValueError("unbalanced parentheses in filter_by")
            self._index += 1
            return not inner if kind == "not" else inner
        if kind != "clause":
            raise ValueError(f"unexpected token {kind}")
        field, op, raw = self._tokens[self._index][1]
        self._index += 1
        if field not in self._record:
            return False
        actual = self._record[field]
        if raw.startswith("["):
            items = re.findall(r"`[^`]*`|'[^']*'|[^,]+", raw[1:-1])
            values = [_parse_value(item.strip()) for item in items]
            found = actual in values
            return not found if op == "!=" else found
        return _compare(actual, op, _parse_value(raw))


def evaluate(expr: FilterExpression, metadata: dict[str, Any]) -> bool:
    """Reference in-memory semantics of a filter expression."""
    if isinstance(expr, Comparison):
        if expr.field not in metadata:
            return False
        actual = metadata[expr.field]
        symbols = {
            Operator.EQ: "=",
            Operator.NE: "!=",
            Operator.GT: ">",
            Operator.GTE: ">=",
            Operator.LT: "<",
            Operator.LTE: "<=",
        }
        return _compare(actual, symbols[expr.operator], expr.value)
    if isinstance(expr, In):
        return expr.field in metadata and metadata[expr.field] in expr.values
    if isinstance(expr, And):
        return evaluate(expr.left, metadata) and evaluate(expr.right, metadata)
    if isinstance(expr, Or):
        return evaluate(expr.left, metadata) or evaluate(expr.right, metadata)
    if isinstance(expr, Not):
        return not evaluate(expr.child, metadata)
    if isinstance(expr, Group):
        return evaluate(expr.child, metadata)
    raise TypeError(type(expr).__name__)


# --- Backend ------------------------------------------------------------------

_VECTOR_QUERY = re.compile(
    r"^(?P<field>\w+):\(\[(?P<values>[^\]]*)\],\s*k:(?P<k>\d+)"
    r"(?:,\s*distance_threshold:(?P<threshold>[0-9.eE+-]+))?\)$"
)


def cosine_distance(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 1.0
    return 1.0 - dot / norm


class FakeTypesenseBackend(BackendClient):
    """Stores collections and records in memory.

    Attributes:
        reject_ids: Record ids the import endpoint reports as failed.
        fail_imports: Number of upcoming import calls to fail with a transport error.
        stale_reads: Number of upcoming get_collection calls that report the
            collection missing even if it exists (simulates a creation race).
    """

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, Any]] = {}
        self.records: dict[str, dict[str, dict[str, Any]]] = {}
        self.reject_ids: set[str] = set()
        self.fail_imports = 0
        self.stale_reads = 0
        self.calls: list[str] = []
        self.import_batches: list[list[str]] = []
        self.search_params: list[dict[str, Any]] = []
        self.closed = False

    async def get_collection(self, name: str) -> dict[str, Any] | None:
        self.calls.append("get_collection")
        if self.stale_reads:
            self.stale_reads -= 1
            return None
        return self.collections.get(name)

    async def create_collection(self, schema: dict[str, Any]) -> dict[str, Any]:
        self.calls.append("create_collection")
        name = schema["name"]
        if name in self.collections:
            raise TransportError(
                f"A collection with name `{name}` already exists.",
                status_code=409,
                code=ErrorCode.COLLECTION_EXISTS,
            )
        self.collections[name] = schema
        self.records[name] = {}
        return schema

    async def import_documents(
        self,
        collection: str,
        records: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        self.calls.append("import_documents")
        self.import_batches.append([r["id"] for r in records])
        if self.fail_imports:
            self.fail_imports -= 1
            raise TransportError("Typesense returned 503: unavailable", status_code=503)
        if collection not in self.records:
            raise TransportError("Typesense returned 404: Not Found", status_code=404)

        outcomes: list[dict[str, Any]] = []
        for record in records:
            if record["id"] in self.reject_ids:
                outcomes.append(
                    {"success": False, "error": f"Rejected document {record['id']}"}
                )
                continue
            self.records[collection][record["id"]] = dict(record)
            outcomes.append({"success": True})
        return outcomes

    async def search(
        self,
        collection: str,
        params: dict[str, Any],
    ) -> list[dict[str, Any]]:
        self.calls.append("search")
        self.search_params.append(dict(params))
        match = _VECTOR_QUERY.match(params["vector_query"])
        if match is None:
            raise TransportError("Typesense rejected search: bad vector_query", status_code=400)
        vector = [float(v) for v in match.group("values").split(",")]
        k = int(match.group("k"))
        threshold = match.group("threshold")

        candidates = list(self.records.get(collection, {}).values())
        if "filter_by" in params:
            flt = TypesenseFilter(params["filter_by"])
            candidates = [r for r in candidates if flt.matches(r)]

        scored = sorted(
            ((cosine_distance(vector, r["embedding"]), r) for r in candidates),
            key=lambda pair: pair[0],
        )
        if threshold is not None:
            scored = [(d, r) for d, r in scored if d <= float(threshold)]

        limit = min(k, int(params.get("per_page", k)))
        excluded = set(str(params.get("exclude_fields", "")).split(","))
        return [
            {
                "document": {key: v for key, v in r.items() if key not in excluded},
                "vector_distance": d,
            }
            for d, r in scored[:limit]
        ]

    async def delete_documents(self, collection: str, filter_by: str) -> int:
        self.calls.append("delete_documents")
        flt = TypesenseFilter(filter_by)
        stored = self.records.get(collection, {})
        doomed = [doc_id for doc_id, record in stored.items() if flt.matches(record)]
        for doc_id in doomed:
            del stored[doc_id]
        return len(doomed)

    async def close(self) -> None:
        self.closed = True
