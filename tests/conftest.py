"""Shared fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from trend_monitor.adapters.storage.sqlite_store import NewsStore
from trend_monitor.core.entities import NewsItem

NOW = datetime(2026, 2, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store():
    news_store = NewsStore(":memory:")
    yield news_store
    news_store.close()


@pytest.fixture
def make_item() -> Callable[..., NewsItem]:
    """Build stored-shape items; every call gets a unique post id, url and title."""
    counter = {"n": 0}

    def factory(
        title: str = "",
        minutes_ago: float = 10,
        source: str = "hn",
        community: str = "hackernews",
        score: int = 10,
        comments: int = 5,
        body: str = "",
    ) -> NewsItem:
        counter["n"] += 1
        n = counter["n"]
        return NewsItem(
            source=source,
            community=community,
            post_id=f"p{n}",
            title=f"{title} #{n}" if title else f"Item number {n}",
            body_snippet=body,
            comment_snippet="",
            author="alice",
            created_at=NOW - timedelta(minutes=minutes_ago),
            score=score,
            comment_count=comments,
            canonical_url=f"https://example.com/{source}/{n}",
            fetched_at=NOW - timedelta(minutes=minutes_ago),
        )

    return factory
