"""Tests for the SQLite news store."""

from dataclasses import replace
from datetime import timedelta

from trend_monitor.adapters.storage.sqlite_store import NewsStore
from trend_monitor.core.entities import Alert, Trend, TrendLevel, TrendRef


def _trend(now, keyword="mcp", mentions=3) -> Trend:
    return Trend(
        keyword=keyword,
        window_start=now - timedelta(minutes=60),
        window_end=now,
        mention_count=mentions,
        velocity=1.5,
        top_refs=[TrendRef("hn", "hackernews", "MCP servers", "https://x.test/1", 10, 2, now)],
        trend_score=2.4,
        level=TrendLevel.LOW,
        reason_text="Top communities: hackernews(3)",
        created_at=now,
    )


def test_insert_item_dedups_by_post_url_and_title(store, make_item) -> None:
    """Test the three duplicate keys each block a second insert."""
    item = make_item("Rust 2.0 released")
    assert store.insert_item(item)

    assert not store.insert_item(item)
    assert not store.insert_item(replace(item, source="reddit", post_id="other", title="Different"))
    assert not store.insert_item(
        replace(item, source="reddit", post_id="other", canonical_url="https://y.test/", title=item.title.upper())
    )
    assert store.counts()["items"] == 1


def test_items_between_and_recent_items(store, make_item, now) -> None:
    """Test windowed reads are ordered newest first."""
    old = make_item("old", minutes_ago=120)
    new = make_item("new", minutes_ago=5)
    store.insert_item(old)
    store.insert_item(new)

    window = store.items_between(now - timedelta(minutes=60), now)
    assert [i.post_id for i in window] == [new.post_id]
    assert window[0].id is not None
    assert window[0].created_at == new.created_at

    recent = store.recent_items(limit=5)
    assert [i.post_id for i in recent] == [new.post_id, old.post_id]
    assert store.recent_items(limit=5, since=now - timedelta(minutes=30)) == recent[:1]


def test_recent_fingerprints(store, make_item, now) -> None:
    """Test fingerprints of recently fetched items."""
    item = make_item("fp")
    store.insert_item(item)
    assert store.recent_fingerprints(now - timedelta(hours=1)) == {f"url:{item.canonical_url}"}


def test_insert_trend_is_idempotent_per_window(store, now) -> None:
    """Test a second insert for the same keyword and window is ignored."""
    trend = _trend(now)
    assert store.insert_trend(trend) is not None
    assert store.insert_trend(_trend(now, mentions=9)) is None

    stored = store.recent_trends(10)
    assert len(stored) == 1
    assert stored[0].mention_count == 3
    assert stored[0].level is TrendLevel.LOW
    assert stored[0].top_refs[0].title == "MCP servers"
    assert store.latest_trend_id("mcp") == trend.id


def test_keyword_upsert(store, now) -> None:
    """Test seeding keeps existing rows and toggling upserts."""
    store.ensure_keywords(["MCP", "Rust", "mcp", " "], now)
    assert store.list_enabled_keywords() == ["mcp", "rust"]

    store.set_keyword_enabled("rust", False, now)
    store.ensure_keywords(["rust"], now)
    assert store.list_enabled_keywords() == ["mcp"]

    assert store.set_keyword_enabled("  Vibe  Coding ", True, now) == "vibe coding"
    assert store.list_enabled_keywords() == ["mcp", "vibe coding"]


def test_alert_round_trip(store, now) -> None:
    """Test the latest alert is returned per keyword."""
    store.insert_alert(Alert(None, "mcp", TrendLevel.HIGH, now - timedelta(hours=2), {"a": 1}))
    newest = Alert(None, "mcp", TrendLevel.MEDIUM, now, {"b": 2})
    store.insert_alert(newest)

    latest = store.latest_alert("mcp")
    assert latest.id == newest.id
    assert latest.payload_snapshot == {"b": 2}
    assert store.latest_alert("rust") is None


def test_file_store_creates_parent(tmp_path) -> None:
    """Test a path-backed store creates its directory."""
    path = tmp_path / "data" / "news.db"
    with NewsStore(path) as db:
        assert db.counts() == {"items": 0, "trends": 0, "alerts": 0, "keywords": 0}
    assert path.exists()
