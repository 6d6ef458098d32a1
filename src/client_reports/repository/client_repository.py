"""Relational storage for clients."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from client_reports.exceptions import StorageError
from client_reports.models import Client

logger = structlog.get_logger()


def _decode_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        return []
    return [str(v) for v in decoded] if isinstance(decoded, list) else []


def _row_to_client(row: Mapping[str, Any]) -> Client:
    return Client(
        id=str(row["id"]),
        name=row["name"],
        domains=_decode_list(row["domains"]),
        emails=_decode_list(row["emails"]),
        user_id=row["user_id"],
    )


class ClientRepository:
    """Repository for client records owned by a user (or shared when ``user_id`` is null)."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def save(self, client: Client) -> None:
        """Insert or replace a client."""

        params = {
            "id": client.id,
            "name": client.name,
            "domains": json.dumps(client.domains),
            "emails": json.dumps(client.emails),
            "user_id": client.user_id,
        }
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    text(
                        """
                        INSERT INTO clients (id, name, domains, emails, user_id)
                        VALUES (:id, :name, :domains, :emails, :user_id)
                        ON CONFLICT (id) DO UPDATE SET
                            name = excluded.name,
                            domains = excluded.domains,
                            emails = excluded.emails,
                            user_id = excluded.user_id,
                            updated_at = CURRENT_TIMESTAMP
                        """
                    ),
                    params,
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"Client save failed: {exc}") from exc
        logger.info("client_saved", client_id=client.id)

    def get(self, client_id: str, user_id: str | None = None) -> Client | None:
        """Load one client visible to ``user_id`` (own or shared)."""

        sql = "SELECT id, name, domains, emails, user_id FROM clients WHERE id = :id"
        params: dict[str, Any] = {"id": client_id}
        if user_id:
            sql += " AND (user_id = :user_id OR user_id IS NULL)"
            params["user_id"] = user_id
        rows = self._fetch(sql, params)
        return rows[0] if rows else None

    def list_for_user(self, user_id: str | None = None) -> list[Client]:
        sql = "SELECT id, name, domains, emails, user_id FROM clients"
        params: dict[str, Any] = {}
        if user_id:
            sql += " WHERE user_id = :user_id OR user_id IS NULL"
            params["user_id"] = user_id
        return self._fetch(sql + " ORDER BY name", params)

    def _fetch(self, sql: str, params: dict[str, Any]) -> list[Client]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(text(sql), params).mappings().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Client query failed: {exc}") from exc
        return [_row_to_client(row) for row in rows]
