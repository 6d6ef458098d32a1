"""Embeddings, vector storage and similarity search."""

from client_reports.vector.embedder import (
    DeterministicEmbedder,
    Embedder,
    OpenAIEmbedder,
    build_embedder,
    build_embedding_text,
)
from client_reports.vector.search import SimilarityOptions, SimilaritySearchEngine
from client_reports.vector.store import (
    EmbeddingStore,
    VectorQueryFilters,
    build_qdrant_client,
    point_id_for_message_id,
)

__all__ = [
    "DeterministicEmbedder",
    "Embedder",
    "EmbeddingStore",
    "OpenAIEmbedder",
    "SimilarityOptions",
    "SimilaritySearchEngine",
    "VectorQueryFilters",
    "build_embedder",
    "build_embedding_text",
    "build_qdrant_client",
    "point_id_for_message_id",
]
