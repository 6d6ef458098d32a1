"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest
from qdrant_client import QdrantClient
from sqlalchemy.engine import Engine

from client_reports.config import Settings
from client_reports.db import build_engine, ensure_schema
from client_reports.models import Message
from client_reports.repository import EmailRepository
from client_reports.vector import DeterministicEmbedder, EmbeddingStore

DIMENSION = 8


@pytest.fixture
def mock_settings(tmp_path) -> Settings:
    """Provide settings backed by a throwaway SQLite file and in-memory Qdrant."""

    return Settings(
        database_url=f"sqlite:///{tmp_path}/test.db",
        qdrant_location=":memory:",
        qdrant_collection="test_messages",
        embedding_dimension=DIMENSION,
        allow_deterministic_vectors=True,
        openai_api_key=None,
        graph_access_token=None,
        embedding_batch_delay_seconds=0.0,
        summary_delay_seconds=0.0,
        admin_emails=["boss@example.com"],
        webhook_secret="s3cret",
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def engine(mock_settings: Settings) -> Iterator[Engine]:
    """Provide a migrated database."""

    engine = build_engine(mock_settings)
    ensure_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repository(engine: Engine) -> EmailRepository:
    return EmailRepository(engine)


@pytest.fixture
def qdrant() -> Iterator[QdrantClient]:
    client = QdrantClient(":memory:")
    yield client
    client.close()


@pytest.fixture
def store(qdrant: QdrantClient, repository: EmailRepository) -> EmbeddingStore:
    return EmbeddingStore(qdrant, repository, collection="test_messages", dimension=DIMENSION)


@pytest.fixture
def embedder() -> DeterministicEmbedder:
    return DeterministicEmbedder(DIMENSION)


@pytest.fixture
def make_message() -> Callable[..., Message]:
    """Build messages with sensible defaults for a January 2024 client thread."""

    def _make(message_id: str, **overrides: object) -> Message:
        fields: dict[str, object] = {
            "id": message_id,
            "subject": f"Project sync {message_id}",
            "from_address": "jane@acme.com",
            "to": "me@firm.com",
            "date": "2024-01-10T09:00:00Z",
            "body": f"Notes for {message_id}: the rollout plan is approved.",
        }
        fields.update(overrides)
        return Message(**fields)

    return _make
