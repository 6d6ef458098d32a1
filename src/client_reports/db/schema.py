"""Idempotent schema bootstrap plus a named migrations log.

Base tables are created with their original (pre-migration) columns. Every
later column addition is a named migration recorded once in ``migrations``,
so databases created by older releases upgrade in place.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import structlog
from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from client_reports.exceptions import StorageError

logger = structlog.get_logger()


_BASE_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS messages (
        id TEXT PRIMARY KEY,
        subject TEXT NOT NULL DEFAULT '',
        from_address TEXT NOT NULL DEFAULT '',
        to_addresses TEXT NOT NULL DEFAULT '',
        date TEXT NOT NULL,
        body TEXT NOT NULL DEFAULT '',
        attachments TEXT NOT NULL DEFAULT '[]',
        summary TEXT NOT NULL DEFAULT '',
        labels TEXT NOT NULL DEFAULT '[]',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_date ON messages(date)",
    """
    CREATE TABLE IF NOT EXISTS clients (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        domains TEXT NOT NULL DEFAULT '[]',
        emails TEXT NOT NULL DEFAULT '[]',
        user_id TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS report_templates (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        format TEXT NOT NULL,
        client_id TEXT REFERENCES clients(id),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS report_feedback (
        id TEXT PRIMARY KEY,
        report_id TEXT NOT NULL,
        client_id TEXT REFERENCES clients(id),
        rating INTEGER,
        feedback_text TEXT,
        actions_taken TEXT,
        start_date TEXT,
        end_date TEXT,
        vector_search_used BOOLEAN DEFAULT FALSE,
        search_query TEXT,
        email_count INTEGER,
        copied_to_clipboard BOOLEAN DEFAULT FALSE,
        generation_time_ms INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        user_agent TEXT,
        ip_address TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS migrations (
        name TEXT PRIMARY KEY,
        applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
)


def _columns(conn: Connection, table: str) -> set[str]:
    return {col["name"] for col in inspect(conn).get_columns(table)}


def _add_column(conn: Connection, table: str, column: str, ddl_type: str) -> bool:
    if column in _columns(conn, table):
        return False
    conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl_type}"))
    logger.info("schema_column_added", table=table, column=column)
    return True


def _add_cc_bcc_columns(conn: Connection) -> None:
    _add_column(conn, "messages", "cc", "TEXT DEFAULT ''")
    _add_column(conn, "messages", "bcc", "TEXT DEFAULT ''")


def _add_example_prompt_column(conn: Connection) -> None:
    _add_column(conn, "report_templates", "example_prompt", "TEXT")


def _add_processed_for_vector_column(conn: Connection) -> None:
    _add_column(conn, "messages", "processed_for_vector", "BOOLEAN DEFAULT FALSE")
    conn.execute(
        text("UPDATE messages SET processed_for_vector = FALSE WHERE processed_for_vector IS NULL")
    )


def _add_user_id_to_messages(conn: Connection) -> None:
    _add_column(conn, "messages", "user_id", "TEXT")
    conn.execute(text("CREATE INDEX IF NOT EXISTS idx_messages_user_id ON messages(user_id)"))


@dataclass(frozen=True)
class Migration:
    name: str
    apply: Callable[[Connection], None]


MIGRATIONS: tuple[Migration, ...] = (
    Migration("add_cc_bcc_columns", _add_cc_bcc_columns),
    Migration("add_example_prompt_column", _add_example_prompt_column),
    Migration("add_processed_for_vector_column", _add_processed_for_vector_column),
    Migration("add_user_id_to_messages", _add_user_id_to_messages),
)


def create_base_tables(engine: Engine) -> None:
    """Create the original tables without applying migrations."""

    with engine.begin() as conn:
        for ddl in _BASE_TABLES:
            conn.execute(text(ddl))


def applied_migrations(engine: Engine) -> list[str]:
    """Names of migrations already recorded."""

    with engine.connect() as conn:
        rows = conn.execute(text("SELECT name FROM migrations ORDER BY applied_at, name")).all()
    return [row[0] for row in rows]


def ensure_schema(engine: Engine, *, migrate: bool = True) -> list[str]:
    """Ensure required tables exist and apply pending migrations (idempotent).

    Each migration runs in its own transaction together with the insert that
    records it.

    Args:
        engine: SQLAlchemy engine.
        migrate: Apply pending migrations after creating base tables.

    Returns:
        Names of migrations applied by this call.

    Raises:
        StorageError: If DDL fails.
    """

    try:
        create_base_tables(engine)
        if not migrate:
            return []

        done = set(applied_migrations(engine))
        applied: list[str] = []
        for migration in MIGRATIONS:
            if migration.name in done:
                continue
            with engine.begin() as conn:
                migration.apply(conn)
                conn.execute(
                    text("INSERT INTO migrations (name) VALUES (:name)"),
                    {"name": migration.name},
                )
            applied.append(migration.name)
            logger.info("migration_applied", name=migration.name)
    except SQLAlchemyError as exc:
        raise StorageError(f"Schema bootstrap failed: {exc}") from exc

    if applied:
        logger.info("schema_migrated", applied=applied)
    return applied
