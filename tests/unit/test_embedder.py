"""Unit tests for embedders."""

from __future__ import annotations

import math
from types import SimpleNamespace
from typing import Any

import pytest
from openai import OpenAIError

from client_reports.config import Settings
from client_reports.exceptions import ConfigurationError, EmbeddingApiError
from client_reports.models import Message
from client_reports.vector import DeterministicEmbedder, OpenAIEmbedder, build_embedder, build_embedding_text
from client_reports.vector.embedder import MAX_EMBEDDING_TEXT_CHARS, vectorize_text_deterministic


class FakeEmbeddings:
    def __init__(self, vector: list[float] | None = None, error: Exception | None = None) -> None:
        self.vector = vector
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        data = [SimpleNamespace(embedding=self.vector)] if self.vector is not None else []
        return SimpleNamespace(data=data)


def _embedder(embeddings: FakeEmbeddings, dimension: int = 3) -> OpenAIEmbedder:
    client = SimpleNamespace(embeddings=embeddings)
    return OpenAIEmbedder("sk-test", model="text-embedding-3-small", dimension=dimension, client=client)


def test_deterministic_vectors_are_stable_unit_vectors() -> None:
    first = vectorize_text_deterministic("hello", 16)

    assert first == vectorize_text_deterministic("hello", 16)
    assert first != vectorize_text_deterministic("hello!", 16)
    assert len(first) == 16
    assert math.isclose(math.sqrt(sum(v * v for v in first)), 1.0, rel_tol=1e-9)


def test_embedding_text_layout() -> None:
    message = Message(id="m1", subject="Kickoff", body="Agenda attached.")

    assert build_embedding_text(message) == "Subject: Kickoff\nBody: Agenda attached."
    with_summary = message.model_copy(update={"summary": "Kickoff agreed."})
    assert "Summary: Kickoff agreed." in build_embedding_text(with_summary)
    long = message.model_copy(update={"body": "x" * 10000})
    assert len(build_embedding_text(long)) == MAX_EMBEDDING_TEXT_CHARS


class TestOpenAIEmbedder:
    @pytest.mark.asyncio
    async def test_embed(self) -> None:
        embeddings = FakeEmbeddings(vector=[0.1, 0.2, 0.3])

        vector = await _embedder(embeddings).embed("Budget approved")

        assert vector == [0.1, 0.2, 0.3]
        assert embeddings.calls[0]["model"] == "text-embedding-3-small"
        assert embeddings.calls[0]["dimensions"] == 3

    @pytest.mark.asyncio
    async def test_size_mismatch(self) -> None:
        with pytest.raises(EmbeddingApiError):
            await _embedder(FakeEmbeddings(vector=[0.1, 0.2])).embed("Budget approved")

    @pytest.mark.asyncio
    async def test_api_error_and_empty_response(self) -> None:
        with pytest.raises(EmbeddingApiError):
            await _embedder(FakeEmbeddings(error=OpenAIError("boom"))).embed("Budget approved")
        with pytest.raises(EmbeddingApiError):
            await _embedder(FakeEmbeddings()).embed("Budget approved")

    @pytest.mark.asyncio
    async def test_empty_text_is_not_sent(self) -> None:
        embeddings = FakeEmbeddings(vector=[0.1, 0.2, 0.3])

        with pytest.raises(EmbeddingApiError):
            await _embedder(embeddings).embed("   ")
        assert embeddings.calls == []


class TestBuildEmbedder:
    def test_openai_when_key_is_set(self) -> None:
        assert isinstance(build_embedder(Settings(openai_api_key="sk-test")), OpenAIEmbedder)

    def test_deterministic_only_when_allowed(self) -> None:
        embedder = build_embedder(
            Settings(openai_api_key=None, allow_deterministic_vectors=True, embedding_dimension=8)
        )
        assert isinstance(embedder, DeterministicEmbedder)
        assert embedder.dimension == 8

        with pytest.raises(ConfigurationError):
            build_embedder(Settings(openai_api_key=None, allow_deterministic_vectors=False))
