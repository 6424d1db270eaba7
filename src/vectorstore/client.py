"""Backend client interface and Typesense implementation."""

import json
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx

from src.config import TypesenseSettings, get_settings
from src.exceptions import ErrorCode, TransportError
from src.logging_config import get_logger

logger = get_logger(__name__)

API_KEY_HEADER = "X-TYPESENSE-API-KEY"


class BackendClient(ABC):
    """Narrow interface to the search backend.

    The store only talks to the backend through these calls, so any backend
    SDK can be substituted behind it.
    """

    @abstractmethod
    async def get_collection(self, name: str) -> dict[str, Any] | None:
        """Fetch a collection definition.

        Returns:
            The collection payload, or None if it does not exist.

        Raises:
            TransportError: If the backend cannot be reached.
        """
        ...

    @abstractmethod
    async def create_collection(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Create a collection.

        Raises:
            TransportError: With code COLLECTION_EXISTS if it already exists.
        """
        ...

    @abstractmethod
    async def import_documents(
        self,
        collection: str,
        records: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Upsert records in one request.

        Returns:
            One ``{"success": bool, "error"?: str}`` entry per record, in order.

        Raises:
            TransportError: If the request as a whole fails.
        """
        ...

    @abstractmethod
    async def search(
        self,
        collection: str,
        params: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Run one search and return its hits in backend order.

        Raises:
            TransportError: If the backend rejects or cannot serve the query.
        """
        ...

    @abstractmethod
    async def delete_documents(self, collection: str, filter_by: str) -> int:
        """Delete all records matching ``filter_by``.

        Returns:
            Number of records deleted.
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        return None


class TypesenseClient(BackendClient):
    """Typesense REST client built on httpx."""

    def __init__(
        self,
        settings: TypesenseSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Typesense client.

        Args:
            settings: Typesense configuration.
            client: Existing HTTP client (for testing or connection sharing).
        """
        self._settings = settings or get_settings().typesense
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the pooled HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _url(self, path: str) -> str:
        return f"{self._settings.url.rstrip('/')}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and map failures to TransportError."""
        client = await self._get_client()
        url = self._url(path)
        headers = {API_KEY_HEADER: self._settings.api_key.get_secret_value()}
        headers.update(kwargs.pop("headers", {}))

        try:
            response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as e:
            logger.error(
                f"Typesense request error: {e}",
                extra={"url": url, "method": method},
            )
            raise TransportError(
                f"Failed to reach Typesense: {e}",
                details={"url": url, "method": method},
            ) from e

        if response.status_code == 404 or response.is_success:
            return response

        message = _error_message(response)
        code = (
            ErrorCode.COLLECTION_EXISTS
            if response.status_code == 409
            else ErrorCode.TRANSPORT_ERROR
        )
        logger.error(
            f"Typesense returned {response.status_code}: {message}",
            extra={"url": url, "method": method, "status": response.status_code},
        )
        raise TransportError(
            f"Typesense returned {response.status_code}: {message}",
            status_code=response.status_code,
            code=code,
            details={"url": url, "method": method},
        )

    async def get_collection(self, name: str) -> dict[str, Any] | None:
        """Fetch a collection definition, or None if absent."""
        response = await self._request("GET", f"/collections/{quote(name, safe='')}")
        if response.status_code == 404:
            return None
        return response.json()

    async def create_collection(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Create a collection from a schema payload."""
        response = await self._request("POST", "/collections", json=schema)
        self._raise_for_not_found(response, "/collections")
        logger.debug(f"Created collection: {schema.get('name')}")
        return response.json()

    async def import_documents(
        self,
        collection: str,
        records: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Upsert records through the JSONL import endpoint."""
        if not records:
            return []

        path = f"/collections/{quote(collection, safe='')}/documents/import"
        body = "\n".join(json.dumps(record, ensure_ascii=False) for record in records)
        response = await self._request(
            "POST",
            path,
            params={"action": "upsert"},
            content=body.encode("utf-8"),
            headers={"Content-Type": "text/plain"},
        )
        self._raise_for_not_found(response, path)

        outcomes: list[dict[str, Any]] = []
        for line in response.text.splitlines():
            if not line.strip():
                continue
            try:
                outcomes.append(json.loads(line))
            except ValueError as e:
                raise TransportError(
                    f"Invalid import response line: {line[:200]}",
                    status_code=response.status_code,
                    details={"collection": collection},
                ) from e

        if len(outcomes) != len(records):
            raise TransportError(
                f"Import returned {len(outcomes)} results for {len(records)} records",
                status_code=response.status_code,
                details={"collection": collection},
            )
        return outcomes

    async def search(
        self,
        collection: str,
        params: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Run a single search through the multi-search endpoint.

        Vector queries go in the request body because they exceed URL limits.
        """
        payload = {"searches": [{"collection": collection, **params}]}
        response = await self._request("POST", "/multi_search", json=payload)
        self._raise_for_not_found(response, "/multi_search")

        results = response.json().get("results", [])
        if not results:
            return []
        result = results[0]
        if "error" in result:
            raise TransportError(
                f"Typesense rejected search: {result['error']}",
                status_code=result.get("code"),
                code=ErrorCode.BACKEND_REJECTED,
                details={"collection": collection},
            )
        return list(result.get("hits", []))

    async def delete_documents(self, collection: str, filter_by: str) -> int:
        """Delete records matching a filter."""
        path = f"/collections/{quote(collection, safe='')}/documents"
        response = await self._request("DELETE", path, params={"filter_by": filter_by})
        self._raise_for_not_found(response, path)
        return int(response.json().get("num_deleted", 0))

    def _raise_for_not_found(self, response: httpx.Response, path: str) -> None:
        if response.status_code == 404:
            raise TransportError(
                f"Typesense returned 404: {_error_message(response)}",
                status_code=404,
                details={"url": self._url(path)},
            )


def _error_message(response: httpx.Response) -> str:
    try:
        return str(response.json().get("message", response.text))
    except (ValueError, AttributeError):
        return response.text
