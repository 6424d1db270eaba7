#!/usr/bin/env python
"""Ingest documents from a JSONL file and optionally run a search.

Usage:
    python -m scripts.ingest --file data/docs.jsonl
    python -m scripts.ingest --query "solar panels" --filter "country == 'NL'" --top-k 5

Each JSONL line is a document: ``{"id": ..., "content": ..., "metadata": {...}}``.
Exits non-zero when any document fails to ingest.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from src.config import get_settings
from src.documents.models import Document
from src.embeddings.service import HTTPEmbeddingService
from src.exceptions import PartialIngestionError, StoreError
from src.logging_config import get_logger, setup_logging
from src.vectorstore.models import SearchRequest
from src.vectorstore.service import create_store

logger = get_logger(__name__)


def load_documents(path: Path) -> list[Document]:
    """Read one document per non-empty JSONL line."""
    documents: list[Document] = []
    with path.open(encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                documents.append(Document.model_validate(json.loads(line)))
            except ValueError as e:
                raise ValueError(f"{path}:{line_number}: {e}") from e
    return documents


async def run(
    file: Path | None,
    query: str | None,
    filter_text: str | None,
    top_k: int | None,
    threshold: float,
) -> bool:
    """Ingest and/or search; return whether everything succeeded."""
    settings = get_settings()
    setup_logging(level=settings.log_level)

    embedding_service = HTTPEmbeddingService(settings=settings.embedding)
    store = create_store(embedding_service)
    ok = True

    try:
        if file is not None:
            documents = load_documents(file)
            logger.info(f"Ingesting {len(documents)} documents from {file}")
            try:
                result = await store.add(documents)
                print(f"Ingested {len(result.succeeded)} documents in {result.batches} batches")
            except PartialIngestionError as e:
                ok = False
                print(f"{len(e.failures)} of {e.total} documents failed:")
                for failure in e.failures:
                    print(f"  {failure['document_id']}: {failure['error']}")

        if query:
            results = await store.similarity_search(
                SearchRequest(
                    query=query,
                    top_k=top_k,
                    similarity_threshold=threshold,
                    filter=filter_text,
                )
            )
            for rank, scored in enumerate(results, start=1):
                snippet = scored.document.content[:80].replace("\n", " ")
                print(f"{rank:>3}. {scored.score:.4f}  {scored.document.id}  {snippet}")
    except StoreError as e:
        ok = False
        logger.error(f"{e.code.value}: {e.message}", extra={"details": e.details})
    finally:
        await store.close()
        await embedding_service.close()

    return ok


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Ingest documents into the vector store and query it",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--file", type=Path, default=None, help="JSONL file of documents")
    parser.add_argument("--query", default=None, help="Query text to search for")
    parser.add_argument(
        "--filter",
        dest="filter_text",
        default=None,
        help="Metadata filter in the portable grammar",
    )
    parser.add_argument(
        "--top-k",
        type=int,
        default=None,
        help="Maximum results (default: VECTOR_STORE_DEFAULT_TOP_K)",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=0.0,
        help="Minimum similarity score (0-1)",
    )

    args = parser.parse_args()
    if args.file is None and not args.query:
        parser.error("nothing to do: pass --file and/or --query")

    ok = asyncio.run(
        run(
            file=args.file,
            query=args.query,
            filter_text=args.filter_text,
            top_k=args.top_k,
            threshold=args.threshold,
        )
    )
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
