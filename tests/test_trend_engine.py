"""Tests for the trend engine."""

from trend_monitor.config import ThresholdsConfig
from trend_monitor.core.entities import TrendLevel
from trend_monitor.use_cases.trends import TrendEngine, compute_velocity, level_for, score_trend


def _seed(store, make_item, current=4, previous=1, title="Vibe coding is everywhere"):
    store.ensure_keywords(["vibe coding", "rust"])
    for n in range(current):
        store.insert_item(make_item(title, minutes_ago=10 + n * 10))
    for n in range(previous):
        store.insert_item(make_item(title, minutes_ago=150 + n * 10))


def test_scoring_helpers() -> None:
    """Test velocity, score caps and level buckets."""
    assert compute_velocity(4, 0) == 4.0
    assert compute_velocity(3, 2) == 1.5
    assert score_trend(30, 10, 500, 10) == 13.0
    assert level_for(3.8) is TrendLevel.HIGH
    assert level_for(2.3) is TrendLevel.MEDIUM
    assert level_for(2.29) is TrendLevel.LOW


def test_scan_detects_rising_keyword(store, make_item, now) -> None:
    """Test four current mentions against one previous gives velocity 4."""
    _seed(store, make_item)
    engine = TrendEngine(store, ThresholdsConfig())

    result = engine.scan(120, now=now)

    assert result.items_scanned == 5
    assert result.created_count == 1
    trend = result.trends[0]
    assert trend.keyword == "vibe coding"
    assert trend.mention_count == 4
    assert trend.velocity == 4.0
    assert trend.trend_score == 5.5833
    assert trend.level is TrendLevel.HIGH
    assert len(trend.top_refs) == 4
    assert trend.reason_text.endswith("Top communities: hackernews 4")


def test_scan_matches_aliases(store, make_item, now) -> None:
    """Test alias spellings count as mentions of the keyword."""
    store.ensure_keywords(["vibe coding"])
    for n in range(4):
        store.insert_item(make_item("Trying vibecoding today", minutes_ago=5 + n))

    result = TrendEngine(store, ThresholdsConfig()).scan(120, now=now)
    assert result.trends[0].mention_count == 4


def test_scan_matches_from_an_alias_spelling(store, make_item, now) -> None:
    """Test a keyword stored as an alias counts the canonical spelling too."""
    store.ensure_keywords(["vibecoding"])
    for n in range(3):
        store.insert_item(make_item("Vibe coding is eating the world", minutes_ago=5 + n))
    store.insert_item(make_item("vibecoding weekend project", minutes_ago=20))

    result = TrendEngine(store, ThresholdsConfig()).scan(120, now=now)
    assert result.trends[0].keyword == "vibecoding"
    assert result.trends[0].mention_count == 4


def test_rerun_in_same_window_is_idempotent(store, make_item, now) -> None:
    """Test a second scan at the same instant creates no rows."""
    _seed(store, make_item)
    engine = TrendEngine(store, ThresholdsConfig())

    engine.scan(120, now=now)
    again = engine.scan(120, now=now)

    assert again.created_count == 0
    assert store.counts()["trends"] == 1


def test_scan_without_mentions_or_below_threshold(store, make_item, now) -> None:
    """Test nothing is produced when mentions or velocity fall short."""
    store.ensure_keywords(["rust"])
    engine = TrendEngine(store, ThresholdsConfig())
    assert engine.scan(120, now=now).trends == []

    _seed(store, make_item, current=4, previous=4, title="Rust async story")
    result = engine.scan(120, now=now)
    assert result.trends == []
    assert store.counts()["trends"] == 0
