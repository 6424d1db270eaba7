"""Tests for the Typesense REST client."""

import json
from collections.abc import Callable

import httpx
import pytest
from pydantic import SecretStr

from src.config import TypesenseSettings
from src.exceptions import ErrorCode, TransportError
from src.vectorstore.client import API_KEY_HEADER, TypesenseClient


def make_client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> tuple[TypesenseClient, list[httpx.Request]]:
    """Build a client whose requests are answered by ``handler``."""
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(record))
    settings = TypesenseSettings(url="http://typesense:8108/", api_key=SecretStr("secret"))
    return TypesenseClient(settings=settings, client=http), seen


class TestCollections:
    """Tests for collection endpoints."""

    @pytest.mark.asyncio
    async def test_get_collection(self) -> None:
        """Existing collections are returned as payloads."""
        client, seen = make_client(
            lambda r: httpx.Response(200, json={"name": "docs", "fields": []})
        )

        payload = await client.get_collection("docs")

        assert payload == {"name": "docs", "fields": []}
        assert seen[0].method == "GET"
        assert str(seen[0].url) == "http://typesense:8108/collections/docs"
        assert seen[0].headers[API_KEY_HEADER] == "secret"

    @pytest.mark.asyncio
    async def test_get_missing_collection(self) -> None:
        """A 404 means the collection does not exist."""
        client, _ = make_client(lambda r: httpx.Response(404, json={"message": "Not Found"}))
        assert await client.get_collection("docs") is None

    @pytest.mark.asyncio
    async def test_create_collection(self) -> None:
        """The schema payload is posted as JSON."""
        schema = {"name": "docs", "fields": [{"name": "content", "type": "string"}]}
        client, seen = make_client(lambda r: httpx.Response(201, json=schema))

        await client.create_collection(schema)

        assert seen[0].url.path == "/collections"
        assert json.loads(seen[0].content) == schema

    @pytest.mark.asyncio
    async def test_create_existing_collection(self) -> None:
        """A 409 is reported as COLLECTION_EXISTS."""
        client, _ = make_client(
            lambda r: httpx.Response(409, json={"message": "already exists"})
        )

        with pytest.raises(TransportError) as exc_info:
            await client.create_collection({"name": "docs", "fields": []})

        assert exc_info.value.code == ErrorCode.COLLECTION_EXISTS
        assert exc_info.value.status_code == 409
        assert "already exists" in exc_info.value.message


class TestImport:
    """Tests for the JSONL import endpoint."""

    @pytest.mark.asyncio
    async def test_import_documents(self) -> None:
        """Records are sent as JSONL and outcomes parsed per line."""
        body = '{"success":true}\n{"success":false,"error":"Bad field"}'
        client, seen = make_client(lambda r: httpx.Response(200, text=body))
        records = [{"id": "doc-1", "content": "a"}, {"id": "doc-2", "content": "b"}]

        outcomes = await client.import_documents("docs", records)

        assert outcomes == [{"success": True}, {"success": False, "error": "Bad field"}]
        request = seen[0]
        assert request.url.path == "/collections/docs/documents/import"
        assert request.url.params["action"] == "upsert"
        lines = request.content.decode("utf-8").split("\n")
        assert [json.loads(line) for line in lines] == records

    @pytest.mark.asyncio
    async def test_import_nothing(self) -> None:
        """An empty batch is not sent."""
        client, seen = make_client(lambda r: httpx.Response(200, text=""))
        assert await client.import_documents("docs", []) == []
        assert seen == []

    @pytest.mark.asyncio
    async def test_import_count_mismatch(self) -> None:
        """A response with the wrong number of lines is a transport error."""
        client, _ = make_client(lambda r: httpx.Response(200, text='{"success":true}'))

        with pytest.raises(TransportError):
            await client.import_documents("docs", [{"id": "a"}, {"id": "b"}])

    @pytest.mark.asyncio
    async def test_import_server_error(self) -> None:
        """Non-2xx responses fail the whole batch."""
        client, _ = make_client(lambda r: httpx.Response(503, text="unavailable"))

        with pytest.raises(TransportError) as exc_info:
            await client.import_documents("docs", [{"id": "a"}])

        assert exc_info.value.status_code == 503
        assert exc_info.value.code == ErrorCode.TRANSPORT_ERROR

    @pytest.mark.asyncio
    async def test_import_missing_collection(self) -> None:
        """Importing into a missing collection is a transport error."""
        client, _ = make_client(lambda r: httpx.Response(404, json={"message": "Not Found"}))

        with pytest.raises(TransportError) as exc_info:
            await client.import_documents("docs", [{"id": "a"}])

        assert exc_info.value.status_code == 404


class TestSearch:
    """Tests for multi-search."""

    @pytest.mark.asyncio
    async def test_search(self) -> None:
        """Search params are sent in the multi-search body."""
        hits = [{"document": {"id": "doc-1"}, "vector_distance": 0.1}]
        client, seen = make_client(
            lambda r: httpx.Response(200, json={"results": [{"hits": hits, "found": 1}]})
        )

        result = await client.search("docs", {"q": "*", "vector_query": "embedding:([1.0], k:1)"})

        assert result == hits
        body = json.loads(seen[0].content)
        assert body == {
            "searches": [
                {"collection": "docs", "q": "*", "vector_query": "embedding:([1.0], k:1)"}
            ]
        }

    @pytest.mark.asyncio
    async def test_search_rejected(self) -> None:
        """Per-search errors are raised as BACKEND_REJECTED."""
        client, _ = make_client(
            lambda r: httpx.Response(
                200,
                json={"results": [{"code": 400, "error": "Could not find a field named `x`"}]},
            )
        )

        with pytest.raises(TransportError) as exc_info:
            await client.search("docs", {"q": "*"})

        assert exc_info.value.code == ErrorCode.BACKEND_REJECTED
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_search_without_results(self) -> None:
        client, _ = make_client(lambda r: httpx.Response(200, json={"results": []}))
        assert await client.search("docs", {"q": "*"}) == []


class TestDelete:
    """Tests for delete by filter."""

    @pytest.mark.asyncio
    async def test_delete_documents(self) -> None:
        """The filter is passed as a query parameter."""
        client, seen = make_client(lambda r: httpx.Response(200, json={"num_deleted": 2}))

        deleted = await client.delete_documents("docs", "id:[doc-1,doc-2]")

        assert deleted == 2
        assert seen[0].method == "DELETE"
        assert seen[0].url.params["filter_by"] == "id:[doc-1,doc-2]"


class TestTransport:
    """Tests for connection failures and client ownership."""

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        """Unreachable backends raise TransportError without a status."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = make_client(refuse)

        with pytest.raises(TransportError) as exc_info:
            await client.get_collection("docs")

        assert exc_info.value.status_code is None
        assert exc_info.value.code == ErrorCode.TRANSPORT_ERROR

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self) -> None:
        """Injected HTTP clients are owned by the caller."""
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        client = TypesenseClient(settings=TypesenseSettings(), client=http)

        await client.close()

        assert not http.is_closed
        await http.aclose()

    @pytest.mark.asyncio
    async def test_close_owned_client(self) -> None:
        """A client created internally is closed."""
        client = TypesenseClient(settings=TypesenseSettings())
        http = await client._get_client()

        await client.close()

        assert http.is_closed
