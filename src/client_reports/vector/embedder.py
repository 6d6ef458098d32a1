"""Vectorization / embeddings.

Real embeddings come from the OpenAI embeddings API. A deterministic,
hash-seeded implementation is kept as an explicit opt-in fallback for
development; its vectors are NOT semantically meaningful.
"""

from __future__ import annotations

import hashlib
import math
import random
from typing import Protocol

import structlog
from openai import AsyncOpenAI, OpenAIError

from client_reports.config import Settings
from client_reports.exceptions import ConfigurationError, EmbeddingApiError
from client_reports.models import Message

logger = structlog.get_logger()

MAX_EMBEDDING_TEXT_CHARS = 6000


def build_embedding_text(message: Message) -> str:
    """Return the stable embedding input for a message."""

    parts = [f"Subject: {message.subject or ''}"]
    if message.summary:
        parts.append(f"Summary: {message.summary}")
    parts.append(f"Body: {message.body or ''}")
    return "\n".join(parts)[:MAX_EMBEDDING_TEXT_CHARS]


def _normalize(vec: list[float]) -> list[float]:
    norm = math.sqrt(sum(v * v for v in vec))
    if norm == 0.0:
        return vec
    return [v / norm for v in vec]


def vectorize_text_deterministic(text: str, size: int) -> list[float]:
    """Generate a deterministic unit-length vector from text.

    This is a non-semantic fallback. Only use when explicitly enabled via settings.

    Args:
        text: Input text.
        size: Vector dimensionality.

    Returns:
        Unit-length vector of floats.
    """

    digest = hashlib.sha256(text.encode("utf-8")).digest()
    seed = int.from_bytes(digest[:8], "big", signed=False)

    rng = random.Random(seed)
    vec = [rng.random() - 0.5 for _ in range(size)]
    return _normalize(vec)


class Embedder(Protocol):
    """Turns text into a fixed-dimension vector."""

    dimension: int

    async def embed(self, text: str) -> list[float]: ...


class DeterministicEmbedder:
    """Hash-seeded embedder for development and tests."""

    def __init__(self, dimension: int) -> None:
        self.dimension = dimension

    async def embed(self, text: str) -> list[float]:
        return vectorize_text_deterministic(text, self.dimension)


class OpenAIEmbedder:
    """Embedder backed by the OpenAI embeddings API."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        dimension: int,
        timeout_seconds: float = 30.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.dimension = dimension
        self._model = model
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout_seconds)

    async def embed(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            EmbeddingApiError: On API failure or a vector of the wrong size.
        """

        text = (text or "").strip()[:MAX_EMBEDDING_TEXT_CHARS]
        if not text:
            raise EmbeddingApiError("Cannot embed empty text")

        try:
            response = await self._client.embeddings.create(
                model=self._model,
                input=text,
                dimensions=self.dimension,
            )
        except OpenAIError as exc:
            raise EmbeddingApiError(f"Embedding request failed: {exc}") from exc

        if not response.data:
            raise EmbeddingApiError("Embedding response contained no data")
        vector = [float(x) for x in response.data[0].embedding]
        if len(vector) != self.dimension:
            raise EmbeddingApiError(
                f"Embedding size mismatch: got {len(vector)}, expected {self.dimension}"
            )
        return vector


def build_embedder(settings: Settings) -> Embedder:
    """Pick the embedder for this process.

    Raises:
        ConfigurationError: If no API key is set and the fallback is not allowed.
    """

    if settings.openai_api_key:
        return OpenAIEmbedder(
            settings.openai_api_key,
            model=settings.openai_embedding_model,
            dimension=settings.embedding_dimension,
            timeout_seconds=settings.openai_timeout_seconds,
        )

    if settings.allow_deterministic_vectors:
        logger.warning("deterministic_vectors_enabled", dimension=settings.embedding_dimension)
        return DeterministicEmbedder(settings.embedding_dimension)

    raise ConfigurationError(
        "Embeddings are not configured. Set CLIENT_REPORTS_OPENAI_API_KEY. To allow "
        "non-semantic fallback vectors, set CLIENT_REPORTS_ALLOW_DETERMINISTIC_VECTORS=true."
    )
