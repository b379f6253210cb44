"""Tests for Telegram delivery, the file queue and the delivery chain."""

import json
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from trend_monitor.adapters.notifications import (
    DeliveryChain,
    FileQueue,
    TelegramNotifier,
    build_delivery_chain,
    resolve_profile,
)
from trend_monitor.config import DeliveryConfig, PathsConfig, Settings
from trend_monitor.core.interfaces import SendResult


@pytest.mark.asyncio
async def test_send_success() -> None:
    """Test a successful Telegram send."""
    notifier = TelegramNotifier("123:abc", "42")

    with patch("httpx.AsyncClient") as mock_client:
        mock_response = Mock(status_code=200)
        mock_response.raise_for_status = Mock()

        mock_post = AsyncMock(return_value=mock_response)
        mock_client.return_value.__aenter__.return_value.post = mock_post

        result = await notifier.send("📰 Tech Trend Column")

        assert result.sent
        assert result.status_code == 200
        call_args = mock_post.call_args
        assert call_args.args[0] == "https://api.telegram.org/bot123:abc/sendMessage"
        payload = call_args.kwargs["json"]
        assert payload["chat_id"] == "42"
        assert payload["text"] == "📰 Tech Trend Column"
        assert payload["disable_web_page_preview"] is True


@pytest.mark.asyncio
async def test_send_http_error_is_reported() -> None:
    """Test an API error status is returned, not raised."""
    notifier = TelegramNotifier("123:abc", "42")
    request = httpx.Request("POST", "https://api.telegram.org")
    error_response = httpx.Response(403, request=request)

    with patch("httpx.AsyncClient") as mock_client:
        mock_response = Mock()
        mock_response.raise_for_status = Mock(
            side_effect=httpx.HTTPStatusError("Forbidden", request=request, response=error_response)
        )
        mock_client.return_value.__aenter__.return_value.post = AsyncMock(return_value=mock_response)

        result = await notifier.send("x")

    assert not result.sent
    assert result.status_code == 403
    assert result.reason == "http_error"


@pytest.mark.asyncio
async def test_send_transport_error_is_reported() -> None:
    """Test network failures are returned, not raised."""
    notifier = TelegramNotifier("123:abc", "42")

    with patch("httpx.AsyncClient") as mock_client:
        mock_client.return_value.__aenter__.return_value.post = AsyncMock(
            side_effect=httpx.ConnectError("no route")
        )
        result = await notifier.send("x")

    assert not result.sent
    assert result.status_code is None
    assert result.reason == "no route"


def test_resolve_profile_aliases_and_fallback_keys() -> None:
    """Test target aliases and shared chat id fallback."""
    env = {"TELEGRAM_BOT_TOKEN_TREND": "t1", "TELEGRAM_USER_ID": "u1"}
    profile = resolve_profile("trend", env)
    assert profile.target == "research"
    assert profile.complete
    assert (profile.token_key, profile.chat_key) == ("TELEGRAM_BOT_TOKEN_TREND", "TELEGRAM_USER_ID")

    dev = resolve_profile("main", {})
    assert dev.target == "dev"
    assert not dev.complete
    assert dev.missing_reason == "missing_credentials:TELEGRAM_BOT_TOKEN_DEV:TELEGRAM_USER_ID_DEV"

    assert resolve_profile("nonsense", env).target == "research"
    assert TelegramNotifier.from_profile(dev) is None


def test_file_queue_appends_and_replaces_latest(tmp_path) -> None:
    """Test the jsonl log grows and inbox.json holds the newest payload."""
    queue = FileQueue(tmp_path / "queue")
    first = queue.enqueue("one")
    second = queue.enqueue("two", task_id="news-fixed")

    lines = (tmp_path / "queue" / "inbox.jsonl").read_text().splitlines()
    assert [json.loads(line)["taskId"] for line in lines] == [first["taskId"], "news-fixed"]
    assert first["taskId"].startswith("news-")
    assert second["command"] == "[NOTIFY] two"
    assert second["status"] == "pending"
    assert len(second["ackId"]) <= 10

    latest = json.loads((tmp_path / "queue" / "inbox.json").read_text())
    assert latest == second


def _notifier(result):
    notifier = Mock()
    notifier.send = AsyncMock(return_value=result)
    return notifier


@pytest.mark.asyncio
async def test_chain_direct_success_skips_queue(tmp_path) -> None:
    """Test a direct send stops the chain."""
    queue = FileQueue(tmp_path)
    chain = DeliveryChain(_notifier(SendResult(True, 200, "sent")), queue, target="research", queue_fallback=True)

    result = await chain.deliver("hi")

    assert result.delivered
    assert result.direct_sent
    assert result.direct_status_code == 200
    assert not result.queued
    assert not (tmp_path / "inbox.jsonl").exists()


@pytest.mark.asyncio
async def test_chain_falls_back_to_queue(tmp_path) -> None:
    """Test a failed direct send is enqueued when fallback is on."""
    chain = DeliveryChain(
        _notifier(SendResult(False, 500, "http_error")), FileQueue(tmp_path), target="research", queue_fallback=True
    )

    result = await chain.deliver("hi")

    assert result.delivered
    assert not result.direct_sent
    assert result.direct_reason == "http_error"
    assert result.queued
    assert result.queue_reason == "queued"
    assert result.task_id


@pytest.mark.asyncio
async def test_chain_fails_without_fallback() -> None:
    """Test the result when both steps decline."""
    chain = DeliveryChain(None, None, target="dev", unavailable_reason="missing_credentials:A:B")

    result = await chain.deliver("hi")

    assert not result.delivered
    assert result.requested
    assert result.direct_reason == "missing_credentials:A:B"
    assert result.queue_reason == "queue_fallback_disabled"


@pytest.mark.asyncio
async def test_chain_with_direct_disabled(tmp_path) -> None:
    """Test the direct switch sends everything to the queue."""
    notifier = _notifier(SendResult(True, 200))
    chain = DeliveryChain(notifier, FileQueue(tmp_path), target="research", direct_enabled=False, queue_fallback=True)

    result = await chain.deliver("hi")

    assert result.direct_reason == "disabled"
    assert result.queued
    notifier.send.assert_not_awaited()


def test_build_delivery_chain_from_settings(tmp_path) -> None:
    """Test settings and env select the profile and switches."""
    settings = Settings(
        paths=PathsConfig(queue_dir=tmp_path / "queue"),
        delivery=DeliveryConfig(direct_enabled=True, queue_fallback=True, target="daily"),
    )
    chain = build_delivery_chain(settings, {"TELEGRAM_BOT_TOKEN_DAILY": "t", "TELEGRAM_USER_ID": "u"})

    assert chain.target == "daily"
    assert isinstance(chain.notifier, TelegramNotifier)
    assert chain.queue_fallback
