"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator, Iterator

import pytest
from httpx import ASGITransport, AsyncClient

from src.api.app import app
from src.config import VectorStoreSettings
from src.schema import FieldSpec, FieldType
from src.vectorstore.service import TypesenseVectorStore
from tests.fakes import DIMENSION, FakeEmbeddingService, FakeTypesenseBackend


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create async test client for FastAPI app.

    Yields:
        AsyncClient configured for testing.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def store_settings() -> VectorStoreSettings:
    """Settings for a small collection that is created on first use."""
    return VectorStoreSettings(
        initialize_schema=True,
        collection_name="test_docs",
        embedding_dimension=DIMENSION,
        batch_size=2,
        metadata_fields=[
            FieldSpec(name="country", type=FieldType.STRING, facet=True),
            FieldSpec(name="year", type=FieldType.INT32),
        ],
    )


@pytest.fixture
def backend() -> FakeTypesenseBackend:
    return FakeTypesenseBackend()


@pytest.fixture
def embeddings() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def store(
    store_settings: VectorStoreSettings,
    backend: FakeTypesenseBackend,
    embeddings: FakeEmbeddingService,
) -> TypesenseVectorStore:
    """Store wired to the in-memory backend."""
    return TypesenseVectorStore(
        embedding_service=embeddings,
        settings=store_settings,
        client=backend,
    )


@pytest.fixture
def installed_store(store: TypesenseVectorStore) -> Iterator[TypesenseVectorStore]:
    """Install the test store on the application for one test."""
    app.state.store = store
    yield store
    del app.state.store
