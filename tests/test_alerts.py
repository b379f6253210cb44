"""Tests for the alert evaluator."""

from datetime import timedelta

from trend_monitor.config import EventThresholdsConfig
from trend_monitor.core.entities import Trend, TrendLevel
from trend_monitor.use_cases.alerts import AlertEvaluator, is_candidate


def _store_trend(store, now, keyword, mentions=8, velocity=3.0, score=4.5, minutes_ago=5):
    created = now - timedelta(minutes=minutes_ago)
    trend = Trend(
        keyword=keyword,
        window_start=created - timedelta(minutes=120),
        window_end=created,
        mention_count=mentions,
        velocity=velocity,
        top_refs=[],
        trend_score=score,
        level=TrendLevel.HIGH,
        reason_text="",
        created_at=created,
    )
    store.insert_trend(trend)
    return trend


def test_is_candidate_uses_all_three_thresholds(now) -> None:
    """Test mentions, velocity and score must all clear the bar."""
    thresholds = EventThresholdsConfig()
    base = dict(window_start=now, window_end=now, top_refs=[], level=TrendLevel.HIGH, reason_text="", created_at=now)
    assert is_candidate(Trend("a", mention_count=6, velocity=2.0, trend_score=2.3, **base), thresholds)
    assert not is_candidate(Trend("a", mention_count=5, velocity=9.0, trend_score=9.0, **base), thresholds)
    assert not is_candidate(Trend("a", mention_count=9, velocity=1.9, trend_score=9.0, **base), thresholds)
    assert not is_candidate(Trend("a", mention_count=9, velocity=9.0, trend_score=2.2, **base), thresholds)


def test_evaluate_persists_alerts_by_score(store, now) -> None:
    """Test candidates are alerted strongest first with a trend snapshot."""
    _store_trend(store, now, "mcp", score=4.0)
    _store_trend(store, now, "rust", score=6.0)
    _store_trend(store, now, "weak", mentions=2)

    alerts = AlertEvaluator(store, EventThresholdsConfig(), 2).evaluate(timedelta(hours=3), now=now)

    assert [a.keyword for a in alerts] == ["rust", "mcp"]
    assert all(a.id is not None for a in alerts)
    assert alerts[0].trend.keyword == "rust"
    assert alerts[0].payload_snapshot["trend_score"] == 6.0
    assert store.counts()["alerts"] == 2


def test_cooldown_suppresses_repeat_alerts(store, now) -> None:
    """Test a keyword alerts at most once per cooldown, even within one run."""
    _store_trend(store, now, "mcp", minutes_ago=30)
    _store_trend(store, now, "mcp", minutes_ago=5)
    evaluator = AlertEvaluator(store, EventThresholdsConfig(), 2)

    first = evaluator.evaluate(timedelta(hours=3), now=now)
    assert len(first) == 1

    assert evaluator.evaluate(timedelta(hours=3), now=now + timedelta(hours=1)) == []
    later = evaluator.evaluate(timedelta(hours=3), now=now + timedelta(hours=2, minutes=1))
    assert [a.keyword for a in later] == ["mcp"]


def test_trends_outside_lookback_are_ignored(store, now) -> None:
    """Test old trend rows are not considered."""
    _store_trend(store, now, "mcp", minutes_ago=300)
    assert AlertEvaluator(store, EventThresholdsConfig(), 2).evaluate(timedelta(hours=3), now=now) == []
