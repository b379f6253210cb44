"""Tests for the CLI entry point."""

import json

import pytest
from typer.testing import CliRunner

from trend_monitor.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("NEWS_DB_PATH", str(tmp_path / "news.db"))
    monkeypatch.setenv("NEWS_SOURCES_PATH", str(tmp_path / "sources.json"))
    monkeypatch.setenv("NEWS_STATE_PATH", str(tmp_path / "fetch.json"))
    monkeypatch.setenv("NEWS_DIGEST_STATE_PATH", str(tmp_path / "digest.json"))
    monkeypatch.setenv("NEWS_LOCK_PATH", str(tmp_path / "switch.lock"))
    monkeypatch.setenv("NEWS_QUEUE_DIR", str(tmp_path / "queue"))
    monkeypatch.setenv("NEWS_DIGEST_MODEL_WRITE", "0")
    monkeypatch.setenv("LOG_LEVEL", "ERROR")


def test_status_prints_json() -> None:
    """Test status exits cleanly with a JSON body."""
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["action"] == "status"
    assert payload["db_counts"]["items"] == 0


def test_free_text_command() -> None:
    """Test the free-text command path."""
    result = runner.invoke(app, ["command", "keyword", "add", "mcp"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["reply"] == "Keyword added: mcp"


def test_unknown_command_exits_nonzero() -> None:
    """Test failures map to exit code 1."""
    result = runner.invoke(app, ["command", "dance"])
    assert result.exit_code == 1
    assert json.loads(result.stdout)["error_code"] == "UNKNOWN_NEWS_COMMAND"


def test_digest_without_sources(tmp_path) -> None:
    """Test a digest run with nothing collected renders the quiet text."""
    result = runner.invoke(app, ["digest", "--skip-collect"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["digest_text"].startswith("📰 Tech Trend Column")
    assert payload["writer_execution"]["reason"] == "model_writer_disabled"
    assert (tmp_path / "digest.json").exists()
