"""Process-wide service wiring.

Everything is built once from ``Settings`` and passed by reference; nothing
below this module reaches for globals.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta

import structlog
from qdrant_client import QdrantClient
from sqlalchemy.engine import Engine

from client_reports.agent import EmailFetchOrchestrator
from client_reports.auth import AdminPolicy
from client_reports.config import Settings
from client_reports.db import build_engine
from client_reports.exceptions import ConfigurationError
from client_reports.graph import GraphClient, MailProvider, StaticTokenProvider
from client_reports.llm import Summarizer, build_summarizer
from client_reports.repository import ClientRepository, EmailRepository, FeedbackRepository
from client_reports.tasks import BackgroundTaskQueue, EmailProcessor
from client_reports.vector import (
    EmbeddingStore,
    Embedder,
    SimilaritySearchEngine,
    build_embedder,
    build_qdrant_client,
)

logger = structlog.get_logger()


@dataclass
class Services:
    settings: Settings
    engine: Engine
    repository: EmailRepository
    clients: ClientRepository
    feedback: FeedbackRepository
    qdrant: QdrantClient
    store: EmbeddingStore
    embedder: Embedder | None
    summarizer: Summarizer | None
    search: SimilaritySearchEngine | None
    processor: EmailProcessor
    queue: BackgroundTaskQueue
    provider: MailProvider
    orchestrator: EmailFetchOrchestrator
    admin: AdminPolicy

    def _provider_for(self, token: str) -> MailProvider:
        client = GraphClient(
            StaticTokenProvider(token),
            base_url=self.settings.graph_base_url,
            timeout_seconds=self.settings.graph_timeout_seconds,
        )
        return MailProvider(client, self.repository)

    @asynccontextmanager
    async def orchestrator_for(self, access_token: str | None) -> AsyncIterator[EmailFetchOrchestrator]:
        """Orchestrator bound to a caller-supplied Graph token, or the shared one."""

        if not access_token:
            yield self.orchestrator
            return

        provider = self._provider_for(access_token)
        try:
            yield EmailFetchOrchestrator(
                self.repository,
                provider,
                self.search,
                self.queue,
                default_user_email=self.settings.default_user_email,
            )
        finally:
            await provider.aclose()

    async def aclose(self) -> None:
        await self.queue.shutdown()
        await self.provider.aclose()
        self.qdrant.close()
        self.engine.dispose()


def build_services(
    settings: Settings,
    *,
    engine: Engine | None = None,
    qdrant: QdrantClient | None = None,
    embedder: Embedder | None = None,
    summarizer: Summarizer | None = None,
    provider: MailProvider | None = None,
) -> Services:
    """Build every component from settings; explicit arguments override the defaults."""

    engine = engine or build_engine(settings)
    repository = EmailRepository(engine)
    qdrant = qdrant or build_qdrant_client(settings)
    store = EmbeddingStore(
        qdrant,
        repository,
        collection=settings.qdrant_collection,
        dimension=settings.embedding_dimension,
    )

    if embedder is None:
        try:
            embedder = build_embedder(settings)
        except ConfigurationError as exc:
            logger.warning("embeddings_disabled", reason=str(exc))
    if summarizer is None:
        summarizer = build_summarizer(settings)

    search = SimilaritySearchEngine(embedder, store) if embedder is not None else None
    processor = EmailProcessor(
        repository,
        store,
        embedder,
        summarizer,
        embedding_batch_size=settings.embedding_batch_size,
        embedding_batch_delay_seconds=settings.embedding_batch_delay_seconds,
        summary_delay_seconds=settings.summary_delay_seconds,
        default_embedding_limit=settings.email_embedding_batch_size,
        default_processing_limit=settings.email_processing_batch_size,
    )
    queue = BackgroundTaskQueue(
        processor.handle,
        retention=timedelta(minutes=settings.task_retention_minutes),
        poll_interval_seconds=settings.background_poll_seconds,
        poll_params={"limit": settings.email_processing_batch_size},
    )

    if provider is None:
        provider = MailProvider(
            GraphClient(
                StaticTokenProvider(settings.graph_access_token),
                base_url=settings.graph_base_url,
                timeout_seconds=settings.graph_timeout_seconds,
            ),
            repository,
        )

    orchestrator = EmailFetchOrchestrator(
        repository,
        provider,
        search,
        queue,
        default_user_email=settings.default_user_email,
    )

    logger.info(
        "services_built",
        embeddings=embedder is not None,
        summaries=summarizer is not None,
        collection=settings.qdrant_collection,
    )
    return Services(
        settings=settings,
        engine=engine,
        repository=repository,
        clients=ClientRepository(engine),
        feedback=FeedbackRepository(engine),
        qdrant=qdrant,
        store=store,
        embedder=embedder,
        summarizer=summarizer,
        search=search,
        processor=processor,
        queue=queue,
        provider=provider,
        orchestrator=orchestrator,
        admin=AdminPolicy(settings.admin_emails),
    )
