"""Batched document ingestion with per-record failure reporting."""

from collections.abc import Iterator, Sequence
from typing import Any

from src.documents.models import Document
from src.exceptions import (
    DocumentMappingError,
    EmbeddingError,
    PartialIngestionError,
    TransportError,
)
from src.logging_config import get_logger
from src.observability.metrics import track_import_batch, track_ingestion
from src.vectorstore.client import BackendClient
from src.vectorstore.mapper import DocumentMapper
from src.vectorstore.models import IngestionResult, RecordFailure

logger = get_logger(__name__)


def partition(documents: Sequence[Document], size: int) -> Iterator[Sequence[Document]]:
    """Yield consecutive slices of at most ``size`` documents."""
    for start in range(0, len(documents), size):
        yield documents[start : start + size]


class IngestionBatcher:
    """Submits documents in fixed-size import batches.

    A failing record or batch never stops later batches. Failures are
    collected and reported together once every batch has been submitted.
    Nothing is retried here.
    """

    def __init__(
        self,
        client: BackendClient,
        mapper: DocumentMapper,
        collection: str,
        batch_size: int,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._client = client
        self._mapper = mapper
        self._collection = collection
        self._batch_size = batch_size

    async def add(self, documents: Sequence[Document]) -> IngestionResult:
        """Ingest documents batch by batch, in input order.

        Returns:
            The aggregate result when every document was stored.

        Raises:
            PartialIngestionError: If any document failed, including one whose
                precomputed embedding has the wrong length; lists all of them.
            EmbeddingError: If the embedding service fails for a batch.
                Earlier batches stay stored.
        """
        result = IngestionResult(total=len(documents))

        for batch_index, batch in enumerate(partition(documents, self._batch_size)):
            await self._submit(batch_index, batch, result)

        track_ingestion(succeeded=len(result.succeeded), failed=len(result.failures))

        if result.failures:
            logger.warning(
                f"Ingestion finished with {len(result.failures)} failed documents",
                extra=result.summary(),
            )
            raise PartialIngestionError(
                failures=[failure.model_dump() for failure in result.failures],
                succeeded=result.succeeded,
                total=result.total,
            )

        logger.info(
            f"Ingested {len(result.succeeded)} documents",
            extra={"collection": self._collection, **result.summary()},
        )
        return result

    async def _submit(
        self,
        batch_index: int,
        batch: Sequence[Document],
        result: IngestionResult,
    ) -> None:
        embeddings = await self._mapper.embed_missing(list(batch))

        errors: dict[int, str] = {}
        records: list[dict[str, Any]] = []
        positions: list[int] = []
        ids: list[str] = [doc.id for doc in batch]

        for position, (document, embedding) in enumerate(zip(batch, embeddings)):
            try:
                self._mapper.check_dimension(document.id, embedding)
                record = self._mapper.build_record(document, embedding)
            except (DocumentMappingError, EmbeddingError) as e:
                errors[position] = e.message
                continue
            ids[position] = record["id"]
            records.append(record)
            positions.append(position)

        if records:
            result.batches += 1
            track_import_batch(len(records))
            logger.debug(
                f"Submitting batch {batch_index} with {len(records)} records",
                extra={"collection": self._collection},
            )
            try:
                outcomes = await self._client.import_documents(self._collection, records)
            except TransportError as e:
                logger.warning(
                    f"Batch {batch_index} failed: {e.message}",
                    extra={"collection": self._collection, "status": e.status_code},
                )
                for position in positions:
                    errors[position] = e.message
            else:
                for position, outcome in zip(positions, outcomes):
                    if not outcome.get("success", False):
                        errors[position] = str(outcome.get("error") or "rejected by backend")

        for position, doc_id in enumerate(ids):
            if position in errors:
                result.failures.append(
                    RecordFailure(
                        document_id=doc_id,
                        error=errors[position],
                        batch_index=batch_index,
                    )
                )
            else:
                result.succeeded.append(doc_id)
