"""Relational storage bootstrap."""

from client_reports.db.engine import build_engine, check_connection
from client_reports.db.schema import MIGRATIONS, applied_migrations, ensure_schema

__all__ = ["MIGRATIONS", "applied_migrations", "build_engine", "ensure_schema", "check_connection"]
