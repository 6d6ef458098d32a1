"""Relational storage for messages.

All SQL goes through SQLAlchemy ``text()`` so the same statements run on
Postgres in production and SQLite in tests. Rows are mapped to ``Message`` at
this boundary; nothing above it sees raw rows.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

import structlog
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from client_reports.exceptions import StorageError
from client_reports.models import DateRange, Message
from client_reports.relevance import ClientMatcher, expand_domains

logger = structlog.get_logger()

_BASE_COLUMNS = (
    "id",
    "subject",
    "from_address",
    "to_addresses",
    "date",
    "body",
    "summary",
    "labels",
)
_OPTIONAL_COLUMNS = ("cc", "bcc", "processed_for_vector", "user_id")


def _decode_labels(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        return [part.strip() for part in str(value).split(",") if part.strip()]
    return [str(v) for v in decoded] if isinstance(decoded, list) else []


def row_to_message(row: Mapping[str, Any]) -> Message:
    """Map a ``messages`` row to a ``Message``."""

    return Message(
        id=str(row["id"]),
        subject=row.get("subject") or "",
        from_address=row.get("from_address") or "",
        to=row.get("to_addresses") or "",
        cc=row.get("cc"),
        bcc=row.get("bcc"),
        date=row.get("date") or "",
        body=row.get("body") or "",
        summary=row.get("summary") or "",
        labels=_decode_labels(row.get("labels")),
        processed_for_vector=bool(row.get("processed_for_vector") or False),
        user_id=row.get("user_id"),
    )


class EmailRepository:
    """Repository for storing and querying messages."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def available_columns(self) -> set[str]:
        """Columns of ``messages`` that exist right now.

        Not cached: the schema may be migrated while the process is running.
        """

        try:
            return {col["name"] for col in inspect(self._engine).get_columns("messages")}
        except SQLAlchemyError as exc:
            raise StorageError(f"Cannot inspect messages table: {exc}") from exc

    def _select_list(self, columns: set[str]) -> str:
        selected = list(_BASE_COLUMNS) + [c for c in _OPTIONAL_COLUMNS if c in columns]
        return ", ".join(selected)

    def _fetch(self, sql: str, params: dict[str, Any]) -> list[Message]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(text(sql), params).mappings().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Message query failed: {exc}") from exc
        return [row_to_message(row) for row in rows]

    def query_by_filters(
        self,
        date_range: DateRange,
        client_domains: Sequence[str],
        client_emails: Sequence[str],
        current_user_address: str | None = None,
        limit: int = 1000,
    ) -> list[Message]:
        """Return stored messages in range that involve the client, newest first.

        The SQL filter matches domains on an ``@`` or ``.`` boundary but is still
        a substring test, so the relevance rule is re-applied in Python and each
        message gets a ``source``. Pages are read until ``limit`` relevant
        messages are collected or the candidates run out.

        Args:
            date_range: Inclusive date window.
            client_domains: Client domains (normalized here).
            client_emails: Specific client addresses.
            current_user_address: Mailbox owner, for source annotation and scoping.
            limit: Maximum messages returned.

        Returns:
            Relevant messages; empty when no client criteria are given.

        Raises:
            StorageError: If the query fails.
        """

        domains = expand_domains(client_domains, client_emails)
        emails = [e.strip().lower() for e in client_emails if e.strip()]
        if not domains and not emails:
            return []

        columns = self.available_columns()
        match_columns = ["from_address", "to_addresses"] + [c for c in ("cc", "bcc") if c in columns]

        limit = int(limit)
        params: dict[str, Any] = {
            "start": date_range.start_iso,
            "end": date_range.end_iso,
            "limit": limit,
        }
        patterns = [f"%{email}%" for email in emails]
        for domain in domains:
            patterns += [f"%@{domain}%", f"%.{domain}%"]
        clauses: list[str] = []
        for index, pattern in enumerate(patterns):
            key = f"p{index}"
            params[key] = pattern
            clauses.extend(f"LOWER(COALESCE({col}, '')) LIKE :{key}" for col in match_columns)

        scope = ""
        if current_user_address and "user_id" in columns:
            scope = " AND (user_id = :user_id OR user_id IS NULL)"
            params["user_id"] = current_user_address.strip().lower()

        sql = (
            f"SELECT {self._select_list(columns)} FROM messages "
            "WHERE date >= :start AND date <= :end "
            f"AND ({' OR '.join(clauses)}){scope} "
            "ORDER BY date DESC, id LIMIT :limit OFFSET :offset"
        )

        matcher = ClientMatcher.build(domains, emails, current_user_address)
        relevant: list[Message] = []
        scanned = 0
        while len(relevant) < limit:
            page = self._fetch(sql, {**params, "offset": scanned})
            scanned += len(page)
            relevant += matcher.filter(page)
            if len(page) < limit:
                break

        logger.debug(
            "repository_query",
            candidates=scanned,
            relevant=len(relevant),
            has_cc="cc" in columns,
        )
        return relevant[:limit]

    def get(self, message_id: str) -> Message | None:
        found = self.get_many([message_id])
        return found[0] if found else None

    def get_many(self, message_ids: Sequence[str]) -> list[Message]:
        """Load messages by id; missing ids are skipped. Order follows ``message_ids``."""

        if not message_ids:
            return []
        columns = self.available_columns()
        params = {f"id{i}": mid for i, mid in enumerate(message_ids)}
        placeholders = ", ".join(f":{key}" for key in params)
        found = self._fetch(
            f"SELECT {self._select_list(columns)} FROM messages WHERE id IN ({placeholders})",
            params,
        )
        by_id = {m.id: m for m in found}
        return [by_id[mid] for mid in message_ids if mid in by_id]

    def exists(self, message_id: str) -> bool:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text("SELECT 1 FROM messages WHERE id = :id"), {"id": message_id}
                ).first()
        except SQLAlchemyError as exc:
            raise StorageError(f"Message lookup failed: {exc}") from exc
        return row is not None

    def insert_if_absent(self, messages: Sequence[Message], user_id: str | None = None) -> list[str]:
        """Insert messages whose id is not stored yet.

        Existing ids are left untouched. Each row is written in its own
        transaction; a failing row is logged and skipped.

        Returns:
            Ids that were newly inserted, in input order.
        """

        if not messages:
            return []

        columns = self.available_columns()
        insert_columns = [
            "id",
            "subject",
            "from_address",
            "to_addresses",
            "date",
            "body",
            "attachments",
            "summary",
            "labels",
        ]
        insert_columns += [c for c in _OPTIONAL_COLUMNS if c in columns]
        sql = text(
            f"INSERT INTO messages ({', '.join(insert_columns)}) "
            f"VALUES ({', '.join(':' + c for c in insert_columns)}) "
            "ON CONFLICT (id) DO NOTHING"
        )

        inserted: list[str] = []
        for message in messages:
            row = {
                "id": message.id,
                "subject": message.subject,
                "from_address": message.from_address,
                "to_addresses": message.to,
                "date": message.date,
                "body": message.body,
                "attachments": "[]",
                "summary": "",
                "labels": "[]",
                "cc": message.cc or "",
                "bcc": message.bcc or "",
                "processed_for_vector": False,
                "user_id": (user_id or message.user_id or "").strip().lower() or None,
            }
            params = {key: row[key] for key in insert_columns}
            try:
                with self._engine.begin() as conn:
                    result = conn.execute(sql, params)
            except SQLAlchemyError as exc:
                logger.warning("message_insert_failed", message_id=message.id, error=str(exc)[:150])
                continue
            if result.rowcount == 1:
                inserted.append(message.id)

        logger.info("messages_persisted", received=len(messages), inserted=len(inserted))
        return inserted

    def select_unprocessed(self, limit: int) -> list[Message]:
        """Messages without a stored embedding, newest first.

        Raises:
            StorageError: If the query fails or the schema predates embeddings.
        """

        columns = self.available_columns()
        if "processed_for_vector" not in columns:
            raise StorageError("messages.processed_for_vector is missing; run init-db")
        return self._fetch(
            f"SELECT {self._select_list(columns)} FROM messages "
            "WHERE processed_for_vector IS NULL OR processed_for_vector = :flag "
            "ORDER BY date DESC LIMIT :limit",
            {"flag": False, "limit": int(limit)},
        )

    def select_unsummarized(self, limit: int, user_id: str | None = None) -> list[Message]:
        """Messages with an empty summary, newest first, optionally scoped to one user."""

        columns = self.available_columns()
        params: dict[str, Any] = {"limit": int(limit)}
        scope = ""
        if user_id and "user_id" in columns:
            scope = " AND (user_id = :user_id OR user_id IS NULL)"
            params["user_id"] = user_id.strip().lower()
        return self._fetch(
            f"SELECT {self._select_list(columns)} FROM messages "
            f"WHERE (summary IS NULL OR summary = ''){scope} "
            "ORDER BY date DESC LIMIT :limit",
            params,
        )

    def _update(self, sql: str, params: dict[str, Any]) -> bool:
        try:
            with self._engine.begin() as conn:
                result = conn.execute(text(sql), params)
        except SQLAlchemyError as exc:
            raise StorageError(f"Message update failed: {exc}") from exc
        return result.rowcount > 0

    def update_summary(self, message_id: str, summary: str) -> bool:
        return self._update(
            "UPDATE messages SET summary = :summary, updated_at = CURRENT_TIMESTAMP WHERE id = :id",
            {"id": message_id, "summary": summary},
        )

    def mark_processed_for_vector(self, message_id: str) -> bool:
        return self._update(
            "UPDATE messages SET processed_for_vector = :flag, updated_at = CURRENT_TIMESTAMP "
            "WHERE id = :id",
            {"id": message_id, "flag": True},
        )
