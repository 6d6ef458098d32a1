"""SQLAlchemy engine construction."""

from __future__ import annotations

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from client_reports.config import Settings
from client_reports.exceptions import StorageError


def build_engine(settings: Settings) -> Engine:
    """Create an engine for ``settings.database_url``. Does not connect."""

    return create_engine(settings.database_url, pool_pre_ping=True, future=True)


def check_connection(engine: Engine) -> None:
    """Verify the database is reachable.

    Raises:
        StorageError: If ``SELECT 1`` fails.
    """

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise StorageError(f"Database is not reachable: {exc}") from exc
