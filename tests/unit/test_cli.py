"""Unit tests for the command-line interface."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from client_reports.cli import main
from client_reports.config import get_settings


@pytest.fixture
def cli_env(tmp_path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("CLIENT_REPORTS_DATABASE_URL", f"sqlite:///{tmp_path}/cli.db")
    monkeypatch.setenv("CLIENT_REPORTS_QDRANT_LOCATION", ":memory:")
    monkeypatch.setenv("CLIENT_REPORTS_EMBEDDING_DIMENSION", "8")
    monkeypatch.setenv("CLIENT_REPORTS_ALLOW_DETERMINISTIC_VECTORS", "true")
    monkeypatch.setenv("CLIENT_REPORTS_EMBEDDING_BATCH_DELAY_SECONDS", "0")
    monkeypatch.delenv("CLIENT_REPORTS_OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("CLIENT_REPORTS_GRAPH_ACCESS_TOKEN", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestCli:
    """Test suite for CLI commands."""

    def test_init_db(self, cli_env: None, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["init-db"]) == 0
        assert "Schema ready (4 migrations applied)" in capsys.readouterr().out

        assert main(["init-db"]) == 0
        assert "Schema ready (0 migrations applied)" in capsys.readouterr().out

    def test_fetch_local_only(self, cli_env: None, capsys: pytest.CaptureFixture[str]) -> None:
        main(["init-db"])

        code = main(
            ["fetch", "--start", "2024-01-01", "--end", "2024-01-31", "--domain", "acme.com", "--skip-provider"]
        )

        assert code == 0
        assert "0 emails (local)" in capsys.readouterr().out

    def test_fetch_rejects_bad_dates(self, cli_env: None, capsys: pytest.CaptureFixture[str]) -> None:
        main(["init-db"])

        code = main(["fetch", "--start", "2024-02-01", "--end", "2024-01-01", "--domain", "acme.com"])

        assert code == 1
        assert "Error: Invalid date range" in capsys.readouterr().out

    def test_process_runs_to_completion(self, cli_env: None, capsys: pytest.CaptureFixture[str]) -> None:
        main(["init-db"])

        code = main(["process", "generate_embeddings", "--limit", "5"])

        assert code == 0
        assert "generate_embeddings: completed" in capsys.readouterr().out

    def test_process_rejects_unknown_type(self, cli_env: None) -> None:
        with pytest.raises(SystemExit):
            main(["process", "reindex"])
