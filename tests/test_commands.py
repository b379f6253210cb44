"""Tests for the command surface."""

import json
import sqlite3
from unittest.mock import AsyncMock, Mock

import pytest

from trend_monitor.config import PathsConfig, Settings, WriterConfig, load_news_config, save_config
from trend_monitor.core.entities import DeliveryResult, FetchState, SourceState, WriterExecution
from trend_monitor.core.errors import ErrorCode
from trend_monitor.core.fetch_state import FetchStateStore
from trend_monitor.use_cases.commands import CommandService, build_command_service
from trend_monitor.use_cases.digest import DigestRunResult, EventRunResult

RAW_CONFIG = {
    "keywords": ["mcp"],
    "sources": [
        {"id": "hn", "enabled": True, "pollMinutes": 30},
        {"id": "reddit", "enabled": False, "subreddits": ["programming"]},
    ],
}


@pytest.fixture
def service(store, tmp_path, now):
    config_path = tmp_path / "news_sources.json"
    save_config(config_path, RAW_CONFIG)
    settings = Settings(paths=PathsConfig(sources_path=config_path, state_path=tmp_path / "fetch.json"))

    fetch_state = FetchStateStore(settings.paths.state_path)
    fetch_state.write(FetchState(sources={"hn": SourceState(last_run_at=now, last_error="timeout")}))

    orchestrator = Mock()
    orchestrator.run = AsyncMock(return_value=DigestRunResult(
        success=True,
        action="digest",
        generated_at=now,
        digest_text="📰 Tech Trend Column (x)",
        writer_execution=WriterExecution(ok=False, mode="fallback", reason="lock_timeout"),
        delivery=DeliveryResult(requested=False, direct_reason="enqueue_disabled"),
        reply="📰 Tech Trend Column (x)",
    ))
    orchestrator.run_event = AsyncMock(return_value=EventRunResult(success=True, triggered=0, events=[], reply="🚨 No event"))

    return CommandService(load_news_config(config_path), store, fetch_state, orchestrator, settings)


@pytest.mark.asyncio
async def test_status_reports_sources_and_counts(service) -> None:
    """Test the status reply and its structured data."""
    result = await service.handle("status")
    data = result.to_dict()

    assert result.success
    assert data["action"] == "status"
    assert data["active_model_stage"] == "collect"
    assert data["stage_model"]["alias"] == "fast"
    assert data["db_counts"]["items"] == 0
    assert data["sources"][0] == {
        "id": "hn", "enabled": True, "last_run_at": "2026-02-14T12:00:00.000Z", "last_error": "timeout",
    }
    assert "- reddit: off" in result.reply
    assert (await service.handle("")).action == "status"


@pytest.mark.asyncio
async def test_digest_and_send_route_to_orchestrator(service) -> None:
    """Test digest, summary and send map onto orchestrator runs."""
    result = await service.handle("digest", skip_collect=True)
    service.orchestrator.run.assert_awaited_with(enqueue=False, skip_collect=True)
    assert result.active_model_stage == "write"
    assert result.stage_model["model"] == "openai-codex/gpt-5.2"
    assert result.to_dict()["digest_text"].startswith("📰")

    await service.handle("Summary")
    service.orchestrator.run.assert_awaited_with(enqueue=False)

    await service.handle("send", force=True)
    service.orchestrator.run.assert_awaited_with(enqueue=True, force=True)


@pytest.mark.asyncio
async def test_event_routes_with_enqueue_flag(service) -> None:
    """Test the event command forwards the enqueue option."""
    result = await service.handle("event", enqueue=True, window_minutes=60)
    service.orchestrator.run_event.assert_awaited_once_with(enqueue=True, window_minutes=60)
    assert result.action == "event"
    assert result.reply == "🚨 No event"


@pytest.mark.asyncio
async def test_keyword_add_and_remove(service, store) -> None:
    """Test keyword commands upsert the enabled flag."""
    added = await service.handle("keyword add Vibe Coding")
    assert added.action == "keyword-add"
    assert added.reply == "Keyword added: vibe coding"

    removed = await service.handle("KEYWORD remove vibe coding")
    assert removed.action == "keyword-disable"
    assert store.list_enabled_keywords() == []


@pytest.mark.asyncio
async def test_source_toggle_rewrites_config(service, tmp_path) -> None:
    """Test source on/off persists and unknown ids fail softly."""
    result = await service.handle("source on reddit")
    assert result.success
    assert result.reply == "Source enabled: reddit"

    saved = json.loads((tmp_path / "news_sources.json").read_text())
    assert saved["sources"][1]["enabled"] is True
    assert saved["sources"][1]["subreddits"] == ["programming"]
    assert service.config.sources[1].enabled

    missing = await service.handle("source off nope")
    assert not missing.success
    assert missing.reply == "Source id not found: nope"


@pytest.mark.asyncio
async def test_help_and_unknown(service) -> None:
    """Test help text and the unknown-command error code."""
    help_result = await service.handle("help")
    assert "keyword add <kw>" in help_result.reply

    unknown = await service.handle("dance")
    assert not unknown.success
    assert unknown.error_code == ErrorCode.UNKNOWN_COMMAND
    assert unknown.to_dict()["error_code"] == "UNKNOWN_NEWS_COMMAND"


@pytest.mark.asyncio
async def test_failed_send_result_has_one_error_code_key(service, now) -> None:
    """Test run data merges under the envelope with snake_case keys only."""
    service.orchestrator.run.return_value = DigestRunResult(
        success=False,
        action="send",
        generated_at=now,
        digest_text="📰 Tech Trend Column (x)",
        writer_execution=WriterExecution(ok=True, mode="external"),
        delivery=DeliveryResult(requested=True, direct_reason="http_500"),
        error_code=ErrorCode.DELIVERY_FAILED,
        reply="Tech trend report delivery failed: http_500",
    )

    data = (await service.handle("send")).to_dict()

    assert data["error_code"] == "NEWS_TELEGRAM_DELIVERY_FAILED"
    assert data["reply"] == "Tech trend report delivery failed: http_500"
    assert data["active_model_stage"] == "write"
    assert not [key for key in data if any(c.isupper() for c in key)]
    json.dumps(data)


@pytest.mark.asyncio
async def test_expected_failures_become_command_errors(service) -> None:
    """Test storage errors are reported instead of raised."""
    service.orchestrator.run.side_effect = sqlite3.OperationalError("database is locked")

    result = await service.handle("digest")

    assert not result.success
    assert result.error_code == ErrorCode.COMMAND_FAILED
    assert result.data == {"error": "database is locked"}


@pytest.mark.asyncio
async def test_build_command_service_wires_everything(tmp_path, now) -> None:
    """Test the factory builds a working service from settings alone."""
    config_path = tmp_path / "config" / "news_sources.json"
    save_config(config_path, RAW_CONFIG)
    settings = Settings(paths=PathsConfig(
        db_path=tmp_path / "data" / "news.db",
        sources_path=config_path,
        state_path=tmp_path / "data" / "fetch.json",
        digest_state_path=tmp_path / "data" / "digest.json",
        lock_path=tmp_path / "data" / "switch.lock",
        queue_dir=tmp_path / "data" / "queue",
    ), writer=WriterConfig(enabled=False))

    with build_command_service(settings) as service:
        result = await service.handle("digest", skip_collect=True, now=now, enqueue=False)
        assert service.orchestrator.delivery.target == "research"

    assert result.success
    assert result.to_dict()["delivery"]["direct_reason"] == "enqueue_disabled"
    assert (tmp_path / "data" / "digest.json").exists()
