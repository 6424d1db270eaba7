"""Embedding providers.

The vector store only needs two things from a provider: vectors for a
list of texts, in order, and the length those vectors will have.
"""

import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from src.config import EmbeddingSettings, get_settings
from src.embeddings.models import EmbeddingResult
from src.exceptions import EmbeddingError, ErrorCode
from src.logging_config import get_logger
from src.observability.metrics import track_embedding_request

logger = get_logger(__name__)


class EmbeddingService(ABC):
    """Computes embeddings for documents and search queries."""

    async def embed(self, text: str) -> EmbeddingResult:
        """Embed a single text, usually a search query."""
        return (await self.embed_batch([text]))[0]

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Embed ``texts``, returning one result per text in input order.

        Raises:
            EmbeddingError: If the provider fails or answers with a
                malformed response.
        """
        ...

    @property
    @abstractmethod
    def model_name(self) -> str: ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Length of the vectors this provider produces."""
        ...


def parse_embeddings(
    payload: Any,
    texts: list[str],
    model: str,
) -> list[EmbeddingResult]:
    """Pair an OpenAI-style ``{"data": [...]}`` response with its inputs.

    Items are matched to texts by their ``index`` when present.

    Raises:
        ValueError: If the payload is malformed or the counts differ.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        raise ValueError("response has no 'data' list")

    items = sorted(payload["data"], key=lambda item: item.get("index", 0))
    if len(items) != len(texts):
        raise ValueError(f"expected {len(texts)} embeddings, got {len(items)}")

    return [
        EmbeddingResult(
            text=text,
            embedding=item["embedding"],
            model=model,
            dimensions=len(item["embedding"]),
        )
        for text, item in zip(texts, items)
    ]


class HTTPEmbeddingService(EmbeddingService):
    """Client for an OpenAI-compatible ``/embeddings`` endpoint.

    Works against text-embeddings-inference (TEI) servers as well as the
    OpenAI API. Inputs larger than ``batch_size`` are sent in chunks.
    The vector length is learned from the first response and every later
    response must agree with it.
    """

    MODEL_DIMENSIONS = {
        "BAAI/bge-small-en-v1.5": 384,
        "BAAI/bge-base-en-v1.5": 768,
        "BAAI/bge-large-en-v1.5": 1024,
        "sentence-transformers/all-MiniLM-L6-v2": 384,
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
    }
    DEFAULT_DIMENSIONS = 1536

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings().embedding
        self._client = client
        self._owns_client = client is None
        self._learned_dimensions: int | None = None

    @property
    def model_name(self) -> str:
        return self._settings.model

    @property
    def dimensions(self) -> int:
        if self._learned_dimensions is not None:
            return self._learned_dimensions
        return self.MODEL_DIMENSIONS.get(self._settings.model, self.DEFAULT_DIMENSIONS)

    @property
    def endpoint(self) -> str:
        return f"{self._settings.base_url.rstrip('/')}/embeddings"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        results: list[EmbeddingResult] = []
        size = self._settings.batch_size

        for offset in range(0, len(texts), size):
            chunk = texts[offset : offset + size]
            start = time.perf_counter()
            success = False
            try:
                results.extend(await self._request(chunk))
                success = True
            finally:
                track_embedding_request(
                    model=self._settings.model,
                    duration=time.perf_counter() - start,
                    batch_size=len(chunk),
                    success=success,
                )

        return results

    async def _request(self, texts: list[str]) -> list[EmbeddingResult]:
        url = self.endpoint
        try:
            response = await self._get_client().post(
                url,
                json={"input": texts, "model": self._settings.model},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(
                f"Embedding service returned {status}",
                extra={"url": url, "status": status, "texts": len(texts)},
            )
            raise EmbeddingError(
                f"Embedding service returned {status}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"status_code": status},
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Embedding service unreachable: {e}", extra={"url": url})
            raise EmbeddingError(
                f"Failed to connect to embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"url": url},
            ) from e

        try:
            results = parse_embeddings(response.json(), texts, self._settings.model)
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Invalid response from embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"error": str(e)},
            ) from e

        self._check_dimensions(results)
        return results

    def _check_dimensions(self, results: list[EmbeddingResult]) -> None:
        for result in results:
            if self._learned_dimensions is None:
                self._learned_dimensions = result.dimensions
            elif result.dimensions != self._learned_dimensions:
                raise EmbeddingError(
                    f"Embedding service returned a {result.dimensions}-dimensional "
                    f"vector, expected {self._learned_dimensions}",
                    code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                    details={
                        "expected": self._learned_dimensions,
                        "actual": result.dimensions,
                    },
                )
