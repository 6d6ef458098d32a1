"""Qdrant-backed storage of message embeddings.

One point per message. The point id is derived from the message id, so
re-storing a message overwrites its previous vector. Payloads carry just
enough metadata (date, participants) to filter similarity queries.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog
from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    IsEmptyCondition,
    MatchAny,
    MatchValue,
    PayloadField,
    PointStruct,
    Range,
    VectorParams,
)

from client_reports.config import Settings
from client_reports.exceptions import StorageError
from client_reports.models import DateRange, Message
from client_reports.relevance import domain_of, expand_domains, parent_domains
from client_reports.repository import EmailRepository
from client_reports.utils import parse_datetime, truncate_error

logger = structlog.get_logger()


def build_qdrant_client(settings: Settings) -> QdrantClient:
    if settings.qdrant_location:
        return QdrantClient(location=settings.qdrant_location)
    return QdrantClient(host=settings.qdrant_host, port=settings.qdrant_port)


def point_id_for_message_id(message_id: str) -> str:
    """Return the deterministic Qdrant point id for a message id."""

    return str(uuid.uuid5(uuid.NAMESPACE_URL, message_id))


def _timestamp(iso_date: str) -> float:
    try:
        return parse_datetime(iso_date).timestamp()
    except (TypeError, ValueError):
        return 0.0


def _owner(user_id: str | None) -> str | None:
    if not user_id:
        return None
    return user_id.strip().lower() or None


def build_payload(message: Message) -> dict:
    participants = sorted({a for a in [message.sender, *message.recipients()] if a})
    domains: set[str] = set()
    for address in participants:
        domain = domain_of(address)
        if domain:
            domains.update(parent_domains(domain))
    payload = {
        "message_id": message.id,
        "date": message.date,
        "date_ts": _timestamp(message.date),
        "participants": participants,
        "participant_domains": sorted(domains),
    }
    owner = _owner(message.user_id)
    if owner:
        payload["user_id"] = owner
    return payload


@dataclass(frozen=True)
class VectorQueryFilters:
    """Metadata filters applied to a nearest-neighbour query."""

    date_range: DateRange
    allowed_domains: Sequence[str] = field(default_factory=tuple)
    allowed_addresses: Sequence[str] = field(default_factory=tuple)
    # Mailbox owner; points owned by someone else are excluded, shared ones are kept.
    user_id: str | None = None


class EmbeddingStore:
    """Stores and queries one embedding per message."""

    def __init__(
        self,
        client: QdrantClient,
        repository: EmailRepository,
        *,
        collection: str,
        dimension: int,
    ) -> None:
        self._client = client
        self._repository = repository
        self._collection = collection
        self.dimension = dimension

    def _collection_size(self) -> int | None:
        info = self._client.get_collection(self._collection)
        vectors = info.config.params.vectors
        # Single unnamed vector -> VectorParams; named vectors -> dict.
        if isinstance(vectors, dict):
            if not vectors:
                return None
            vectors = next(iter(vectors.values()))
        size = getattr(vectors, "size", None)
        return int(size) if size is not None else None

    def ensure_collection(self) -> None:
        """Create the collection if missing.

        Raises:
            StorageError: If the collection exists with a different vector size
                or Qdrant is unreachable.
        """

        try:
            if not self._client.collection_exists(self._collection):
                self._client.create_collection(
                    collection_name=self._collection,
                    vectors_config=VectorParams(size=self.dimension, distance=Distance.COSINE),
                )
                logger.info("vector_collection_created", collection=self._collection, size=self.dimension)
                return
            size = self._collection_size()
        except Exception as exc:  # noqa: BLE001 - qdrant raises transport-specific errors
            raise StorageError(f"Qdrant is not usable: {truncate_error(exc)}") from exc

        if size is not None and size != self.dimension:
            raise StorageError(
                f"Qdrant collection '{self._collection}' has vector size {size}, but embeddings "
                f"have {self.dimension} dimensions. Recreate the collection or change the model."
            )

    def is_vector_search_available(self) -> bool:
        """Whether the collection exists with the configured vector size.

        Probed on every call; the collection can be dropped or recreated at any time.
        """

        try:
            if not self._client.collection_exists(self._collection):
                return False
            return self._collection_size() == self.dimension
        except Exception as exc:  # noqa: BLE001 - any failure here means unavailable
            logger.warning("vector_search_check_failed", error=truncate_error(exc))
            return False

    def store(self, message_id: str, vector: Sequence[float]) -> None:
        """Write the embedding for a stored message, then mark it processed.

        Raises:
            StorageError: If the message does not exist, the vector has the wrong
                size, or either write fails.
        """

        if len(vector) != self.dimension:
            raise StorageError(
                f"Vector for {message_id} has {len(vector)} dimensions, expected {self.dimension}"
            )
        message = self._repository.get(message_id)
        if message is None:
            raise StorageError(f"Message {message_id} does not exist")

        self.ensure_collection()
        try:
            self._client.upsert(
                collection_name=self._collection,
                points=[
                    PointStruct(
                        id=point_id_for_message_id(message_id),
                        vector=[float(x) for x in vector],
                        payload=build_payload(message),
                    )
                ],
                wait=True,
            )
        except Exception as exc:  # noqa: BLE001 - qdrant raises transport-specific errors
            raise StorageError(f"Vector write failed for {message_id}: {truncate_error(exc)}") from exc

        self._repository.mark_processed_for_vector(message_id)

    def query(
        self,
        query_vector: Sequence[float],
        filters: VectorQueryFilters,
        limit: int,
    ) -> list[Message]:
        """Nearest stored messages, most similar first; ties go to the newest.

        Returns ``[]`` when vector search is unavailable or no client filter is given.

        Raises:
            StorageError: If the query itself fails.
        """

        if not self.is_vector_search_available():
            logger.info("vector_search_unavailable", collection=self._collection)
            return []

        addresses = [a.strip().lower() for a in filters.allowed_addresses if a.strip()]
        domains = expand_domains(filters.allowed_domains, addresses)
        if not addresses and not domains:
            return []

        should = [FieldCondition(key="participant_domains", match=MatchAny(any=domains))] if domains else []
        if addresses:
            should.append(FieldCondition(key="participants", match=MatchAny(any=addresses)))
        must: list = [
            FieldCondition(
                key="date_ts",
                range=Range(
                    gte=filters.date_range.start.timestamp(),
                    lte=filters.date_range.end.timestamp(),
                ),
            )
        ]
        owner = _owner(filters.user_id)
        if owner:
            must.append(
                Filter(
                    should=[
                        FieldCondition(key="user_id", match=MatchValue(value=owner)),
                        IsEmptyCondition(is_empty=PayloadField(key="user_id")),
                    ]
                )
            )
        query_filter = Filter(must=must, should=should)

        try:
            response = self._client.query_points(
                collection_name=self._collection,
                query=[float(x) for x in query_vector],
                query_filter=query_filter,
                limit=limit,
                with_payload=True,
                with_vectors=True,
            )
        except Exception as exc:  # noqa: BLE001 - qdrant raises transport-specific errors
            raise StorageError(f"Vector query failed: {truncate_error(exc)}") from exc

        points = sorted(
            response.points,
            key=lambda p: (1.0 - float(p.score), -float((p.payload or {}).get("date_ts", 0.0))),
        )
        ids = [str((p.payload or {}).get("message_id")) for p in points]
        stored = {m.id: m for m in self._repository.get_many(ids)}

        results: list[Message] = []
        for point, message_id in zip(points, ids):
            message = stored.get(message_id)
            if message is None:
                continue
            # The row is authoritative for ownership; payloads may predate a reassignment.
            if owner and _owner(message.user_id) not in (None, owner):
                continue
            vector = point.vector
            if isinstance(vector, dict):
                vector = next(iter(vector.values()), None)
            results.append(
                message.model_copy(
                    update={
                        "embedding": [float(x) for x in vector] if vector else None,
                        "processed_for_vector": True,
                    }
                )
            )
        logger.debug("vector_query", hits=len(points), returned=len(results))
        return results
