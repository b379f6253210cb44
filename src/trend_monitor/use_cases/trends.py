"""Sliding-window keyword trend detection."""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger

from trend_monitor.adapters.storage.sqlite_store import NewsStore
from trend_monitor.config import ThresholdsConfig
from trend_monitor.core.entities import NewsItem, Trend, TrendLevel, TrendRef, TrendScanResult
from trend_monitor.core.text import KEYWORD_ALIASES, contains_any, keyword_variants, normalize_text
from trend_monitor.core.timeutils import utc_now

TOP_REFS = 5
HIGH_SCORE = 3.8
MEDIUM_SCORE = 2.3


def compute_velocity(current: int, previous: int) -> float:
    return round(current / max(previous, 1), 4)


def score_trend(mention_count: int, velocity: float, avg_engagement: float, distinct_sources: int) -> float:
    score = (
        min(4.0, mention_count / 3)
        + min(4.0, max(0.0, velocity - 1))
        + min(3.0, avg_engagement / 20)
        + min(2.0, distinct_sources / 2)
    )
    return round(score, 4)


def level_for(score: float) -> TrendLevel:
    if score >= HIGH_SCORE:
        return TrendLevel.HIGH
    if score >= MEDIUM_SCORE:
        return TrendLevel.MEDIUM
    return TrendLevel.LOW


def build_reason_text(keyword: str, matched: list[NewsItem], velocity: float) -> str:
    """e.g. ``vibe coding mentions 4, velocity 4.0x, avg comments 3. Top communities: hackernews 2``."""
    avg_comments = sum(i.comment_count for i in matched) / len(matched) if matched else 0
    communities = Counter(i.community or i.source for i in matched).most_common(2)
    top = ", ".join(f"{name} {count}" for name, count in communities) or "-"
    return (
        f"{keyword} mentions {len(matched)}, velocity {velocity:.1f}x, "
        f"avg comments {avg_comments:.0f}. Top communities: {top}"
    )


@dataclass
class _PreparedItem:
    item: NewsItem
    content: str


class TrendEngine:
    """Count keyword mentions in two adjacent windows and persist qualifying trends."""

    def __init__(
        self,
        store: NewsStore,
        thresholds: ThresholdsConfig,
        aliases: Optional[dict[str, list[str]]] = None,
    ) -> None:
        self.store = store
        self.thresholds = thresholds
        self.aliases = KEYWORD_ALIASES if aliases is None else aliases

    def scan(self, window_minutes: Optional[int] = None, now: Optional[datetime] = None) -> TrendScanResult:
        now = now or utc_now()
        window = timedelta(minutes=window_minutes or self.thresholds.window_minutes)
        current_start = now - window
        previous_start = now - 2 * window

        prepared = [
            _PreparedItem(item, normalize_text(f"{item.title} {item.body_snippet} {item.comment_snippet}"))
            for item in self.store.items_between(previous_start, now)
        ]
        current = [p for p in prepared if p.item.created_at >= current_start]
        previous = [p for p in prepared if p.item.created_at < current_start]

        result = TrendScanResult(
            window_minutes=int(window.total_seconds() // 60),
            window_start=current_start,
            window_end=now,
            items_scanned=len(prepared),
        )

        for keyword in self.store.list_enabled_keywords():
            variants = keyword_variants(keyword, self.aliases)
            matched = [p.item for p in current if contains_any(p.content, variants)]
            if not matched:
                continue
            previous_count = sum(1 for p in previous if contains_any(p.content, variants))

            mention_count = len(matched)
            velocity = compute_velocity(mention_count, previous_count)
            if mention_count < self.thresholds.min_mentions or velocity < self.thresholds.velocity_threshold:
                continue

            avg_engagement = sum(i.engagement for i in matched) / mention_count
            distinct_sources = len({i.source for i in matched})
            score = score_trend(mention_count, velocity, avg_engagement, distinct_sources)
            refs = sorted(matched, key=lambda i: i.engagement, reverse=True)[:TOP_REFS]

            trend = Trend(
                keyword=keyword,
                window_start=current_start,
                window_end=now,
                mention_count=mention_count,
                velocity=velocity,
                top_refs=[TrendRef.from_item(i) for i in refs],
                trend_score=score,
                level=level_for(score),
                reason_text=build_reason_text(keyword, matched, velocity),
                created_at=now,
            )
            if self.store.insert_trend(trend) is not None:
                result.trends.append(trend)

        result.created_count = len(result.trends)
        logger.info(f"Trend scan: {result.items_scanned} items, {result.created_count} new trends")
        return result
