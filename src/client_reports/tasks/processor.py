"""Job bodies executed by the background queue: summaries and embeddings."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import structlog

from client_reports.llm.summarizer import Summarizer
from client_reports.models import Message
from client_reports.repository import EmailRepository
from client_reports.tasks.queue import BackgroundTask, TaskType
from client_reports.utils import chunked, truncate_error
from client_reports.vector.embedder import Embedder, build_embedding_text
from client_reports.vector.store import EmbeddingStore

logger = structlog.get_logger()


class EmailProcessor:
    """Generates summaries and embeddings for stored messages.

    Item-level failures are logged and counted; only a failure to select work
    from storage propagates (and fails the task).
    """

    def __init__(
        self,
        repository: EmailRepository,
        store: EmbeddingStore,
        embedder: Embedder | None,
        summarizer: Summarizer | None = None,
        *,
        embedding_batch_size: int = 20,
        embedding_batch_delay_seconds: float = 1.0,
        summary_delay_seconds: float = 0.5,
        default_embedding_limit: int = 200,
        default_processing_limit: int = 200,
    ) -> None:
        self._repository = repository
        self._store = store
        self._embedder = embedder
        self._summarizer = summarizer
        self._batch_size = embedding_batch_size
        self._batch_delay = embedding_batch_delay_seconds
        self._summary_delay = summary_delay_seconds
        self._default_embedding_limit = default_embedding_limit
        self._default_processing_limit = default_processing_limit
        # Vector writes are serialized; only the embedding requests run concurrently.
        self._write_lock = asyncio.Lock()

    async def handle(self, task: BackgroundTask) -> dict[str, Any]:
        """Dispatch a queued task to its job body."""

        params = task.params
        if task.type is TaskType.GENERATE_EMBEDDINGS:
            return await self.generate_embeddings(params.get("limit"), params.get("batch_size"))
        if task.type is TaskType.SUMMARIZE_EMAILS:
            return await self.summarize_emails(params.get("limit"), params.get("user_id"))
        if task.type is TaskType.PROCESS_NEW_EMAILS:
            return await self.process_new_emails(params.get("email_ids"), params.get("limit"))
        raise ValueError(f"Unknown task type: {task.type}")

    async def generate_embeddings(
        self, limit: int | None = None, batch_size: int | None = None
    ) -> dict[str, Any]:
        """Embed up to ``limit`` messages that have no stored vector yet."""

        messages = await asyncio.to_thread(
            self._repository.select_unprocessed, limit or self._default_embedding_limit
        )
        logger.info("embedding_candidates_selected", count=len(messages))
        return await self.embed_messages(messages, batch_size)

    async def embed_messages(
        self, messages: Sequence[Message], batch_size: int | None = None
    ) -> dict[str, Any]:
        """Embed messages in batches: concurrent within a batch, paused between batches."""

        if self._embedder is None:
            return {"processed": 0, "failed": 0, "skipped": len(messages)}

        size = batch_size or self._batch_size
        processed = 0
        failed = 0
        batches = list(chunked(list(messages), size))
        for index, batch in enumerate(batches):
            outcomes = await asyncio.gather(*(self._embed_one(self._embedder, m) for m in batch))
            processed += sum(1 for ok in outcomes if ok)
            failed += sum(1 for ok in outcomes if not ok)
            logger.info(
                "embedding_batch_completed",
                batch=index + 1,
                batches=len(batches),
                processed=processed,
                failed=failed,
            )
            if index < len(batches) - 1 and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)
        return {"processed": processed, "failed": failed}

    async def _embed_one(self, embedder: Embedder, message: Message) -> bool:
        try:
            vector = await embedder.embed(build_embedding_text(message))
            async with self._write_lock:
                await asyncio.to_thread(self._store.store, message.id, vector)
        except Exception as exc:  # noqa: BLE001 - one bad message must not abort the batch
            logger.warning("embedding_failed", message_id=message.id, error=truncate_error(exc))
            return False
        return True

    async def summarize_emails(
        self, limit: int | None = None, user_id: str | None = None
    ) -> dict[str, Any]:
        """Summarize up to ``limit`` messages with an empty summary, one at a time.

        With ``user_id`` only that user's messages and shared ones are selected.
        """

        messages = await asyncio.to_thread(
            self._repository.select_unsummarized,
            limit or self._default_processing_limit,
            user_id,
        )
        logger.info("summary_candidates_selected", count=len(messages))
        return await self.summarize_messages(messages)

    async def summarize_messages(self, messages: Sequence[Message]) -> dict[str, Any]:
        if self._summarizer is None:
            return {"processed": 0, "failed": 0, "skipped": len(messages)}

        processed = 0
        failed = 0
        for index, message in enumerate(messages):
            try:
                summary = await self._summarizer.summarize(message)
                if await asyncio.to_thread(self._repository.update_summary, message.id, summary):
                    processed += 1
                else:
                    failed += 1
                    logger.warning("summary_target_missing", message_id=message.id)
            except Exception as exc:  # noqa: BLE001 - one bad message must not abort the run
                failed += 1
                logger.warning("summary_failed", message_id=message.id, error=truncate_error(exc))
            if index < len(messages) - 1 and self._summary_delay > 0:
                await asyncio.sleep(self._summary_delay)

        logger.info("summaries_completed", processed=processed, failed=failed)
        return {"processed": processed, "failed": failed}

    async def process_new_emails(
        self, email_ids: Sequence[str] | None = None, limit: int | None = None
    ) -> dict[str, Any]:
        """Summarize then embed.

        With ``email_ids`` exactly those messages are handled; otherwise the
        next ``limit`` messages needing work are.
        """

        if email_ids:
            ids = list(dict.fromkeys(str(i) for i in email_ids))
            messages = await asyncio.to_thread(self._repository.get_many, ids)
            summaries = await self.summarize_messages([m for m in messages if not m.summary])

            # Reload so embeddings include the fresh summaries.
            reloaded = await asyncio.to_thread(self._repository.get_many, ids)
            pending = [m for m in reloaded if not m.processed_for_vector]
            embeddings = await self.embed_messages(pending)
            return {
                "email_ids": ids,
                "missing": len(ids) - len(messages),
                "summaries": summaries,
                "embeddings": embeddings,
            }

        resolved = limit or self._default_processing_limit
        summaries = await self.summarize_emails(resolved)
        embeddings = await self.generate_embeddings(resolved)
        return {"summaries": summaries, "embeddings": embeddings}
