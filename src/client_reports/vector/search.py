"""Similarity search over message embeddings."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from client_reports.exceptions import ClientReportsError
from client_reports.models import DateRange, Message
from client_reports.results import Result
from client_reports.vector.embedder import Embedder
from client_reports.vector.store import EmbeddingStore, VectorQueryFilters

logger = structlog.get_logger()


@dataclass(frozen=True)
class SimilarityOptions:
    date_range: DateRange
    allowed_domains: Sequence[str] = field(default_factory=tuple)
    allowed_addresses: Sequence[str] = field(default_factory=tuple)
    limit: int = 50
    user_id: str | None = None


class SimilaritySearchEngine:
    """Query text -> embedding -> nearest stored messages.

    Always best-effort: failures come back as an empty ``Result`` with the
    error recorded, never as an exception.
    """

    def __init__(self, embedder: Embedder, store: EmbeddingStore) -> None:
        self._embedder = embedder
        self._store = store

    async def find_similar(self, query_text: str, options: SimilarityOptions) -> Result[list[Message]]:
        query_text = (query_text or "").strip()
        if not query_text:
            return Result.success([])

        if not await asyncio.to_thread(self._store.is_vector_search_available):
            logger.info("similarity_search_skipped", reason="vector_search_unavailable")
            return Result.failure([], "vector search unavailable")

        try:
            vector = await self._embedder.embed(query_text)
            messages = await asyncio.to_thread(
                self._store.query,
                vector,
                VectorQueryFilters(
                    date_range=options.date_range,
                    allowed_domains=tuple(options.allowed_domains),
                    allowed_addresses=tuple(options.allowed_addresses),
                    user_id=options.user_id,
                ),
                options.limit,
            )
        except ClientReportsError as exc:
            result: Result[list[Message]] = Result.failure([], exc)
            logger.warning("similarity_search_failed", error=result.error)
            return result

        logger.info("similarity_search_completed", results=len(messages))
        return Result.success(messages)
