"""Unit tests for schema bootstrap and migrations."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine

from client_reports.db import MIGRATIONS, applied_migrations, check_connection, ensure_schema
from client_reports.exceptions import StorageError
from client_reports.repository import EmailRepository


@pytest.fixture
def blank_engine(tmp_path) -> Iterator[Engine]:
    engine = create_engine(f"sqlite:///{tmp_path}/schema.db", future=True)
    yield engine
    engine.dispose()


def _message_columns(engine: Engine) -> set[str]:
    return {col["name"] for col in inspect(engine).get_columns("messages")}


def test_fresh_database_applies_every_migration_once(blank_engine: Engine) -> None:
    applied = ensure_schema(blank_engine)

    assert applied == [m.name for m in MIGRATIONS]
    assert ensure_schema(blank_engine) == []
    assert sorted(applied_migrations(blank_engine)) == sorted(m.name for m in MIGRATIONS)
    assert {"cc", "bcc", "processed_for_vector", "user_id"} <= _message_columns(blank_engine)


def test_legacy_database_is_upgraded_in_place(blank_engine: Engine) -> None:
    ensure_schema(blank_engine, migrate=False)
    assert "cc" not in _message_columns(blank_engine)

    with blank_engine.begin() as conn:
        conn.execute(
            text(
                "INSERT INTO messages (id, subject, from_address, to_addresses, date) "
                "VALUES ('old-1', 'Legacy', 'jane@acme.com', 'me@firm.com', '2023-06-01T08:00:00Z')"
            )
        )

    applied = ensure_schema(blank_engine)

    assert "add_processed_for_vector_column" in applied
    unprocessed = EmailRepository(blank_engine).select_unprocessed(10)
    assert [m.id for m in unprocessed] == ["old-1"]
    assert unprocessed[0].processed_for_vector is False


def test_template_migration_adds_example_prompt(blank_engine: Engine) -> None:
    ensure_schema(blank_engine)

    columns = {col["name"] for col in inspect(blank_engine).get_columns("report_templates")}
    assert "example_prompt" in columns


def test_check_connection(blank_engine: Engine, tmp_path) -> None:
    check_connection(blank_engine)

    broken = create_engine(f"sqlite:///{tmp_path}/missing/dir/x.db", future=True)
    with pytest.raises(StorageError):
        check_connection(broken)
    broken.dispose()
