"""Cooldown-gated hot-event alerts."""

from datetime import datetime, timedelta
from typing import Optional

from loguru import logger

from trend_monitor.adapters.storage.sqlite_store import NewsStore
from trend_monitor.config import EventThresholdsConfig
from trend_monitor.core.entities import Alert, Trend, to_jsonable
from trend_monitor.core.timeutils import utc_now

DEFAULT_CANDIDATE_LIMIT = 20


def is_candidate(trend: Trend, thresholds: EventThresholdsConfig) -> bool:
    return (
        trend.mention_count >= thresholds.min_mentions
        and trend.velocity >= thresholds.min_velocity
        and trend.trend_score >= thresholds.score_threshold
    )


class AlertEvaluator:
    """Select strong trends and persist at most one alert per keyword per cooldown."""

    def __init__(self, store: NewsStore, thresholds: EventThresholdsConfig, cooldown_hours: float) -> None:
        self.store = store
        self.thresholds = thresholds
        self.cooldown = timedelta(hours=cooldown_hours)

    def in_cooldown(self, keyword: str, now: datetime) -> bool:
        prior = self.store.latest_alert(keyword)
        return prior is not None and now - prior.sent_at < self.cooldown

    def evaluate(
        self,
        lookback: timedelta,
        now: Optional[datetime] = None,
        limit: int = DEFAULT_CANDIDATE_LIMIT,
    ) -> list[Alert]:
        now = now or utc_now()
        trends = self.store.recent_trends(limit=limit, since=now - lookback)
        candidates = sorted(
            (t for t in trends if is_candidate(t, self.thresholds)),
            key=lambda t: t.trend_score,
            reverse=True,
        )

        alerts: list[Alert] = []
        for trend in candidates:
            # Persisting immediately makes a second row for the same keyword hit the cooldown
            if self.in_cooldown(trend.keyword, now):
                logger.debug(f"Alert suppressed by cooldown: {trend.keyword}")
                continue

            alert = Alert(
                trend_id=self.store.latest_trend_id(trend.keyword),
                keyword=trend.keyword,
                level=trend.level,
                sent_at=now,
                payload_snapshot=to_jsonable(trend),
                trend=trend,
            )
            self.store.insert_alert(alert)
            alerts.append(alert)

        logger.info(f"Alert evaluation: {len(candidates)} candidates, {len(alerts)} alerts")
        return alerts
