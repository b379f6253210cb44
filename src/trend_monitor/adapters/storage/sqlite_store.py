"""SQLite storage for items, keywords, trends and alerts."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

from loguru import logger

from trend_monitor.core.entities import Alert, NewsItem, Trend, TrendLevel, TrendRef
from trend_monitor.core.text import make_fingerprint, normalize_keyword, normalize_text
from trend_monitor.core.timeutils import parse_instant, to_iso, utc_now

SCHEMA = """
CREATE TABLE IF NOT EXISTS news_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source TEXT NOT NULL,
    community TEXT NOT NULL DEFAULT '',
    post_id TEXT NOT NULL,
    title TEXT NOT NULL,
    body_snippet TEXT NOT NULL DEFAULT '',
    comment_snippet TEXT NOT NULL DEFAULT '',
    author TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    score INTEGER NOT NULL DEFAULT 0,
    comments INTEGER NOT NULL DEFAULT 0,
    url TEXT NOT NULL DEFAULT '',
    title_norm TEXT NOT NULL DEFAULT '',
    fetched_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_news_items_source_post ON news_items(source, post_id);
CREATE INDEX IF NOT EXISTS idx_news_items_created_at ON news_items(created_at);
CREATE INDEX IF NOT EXISTS idx_news_items_url ON news_items(url);
CREATE INDEX IF NOT EXISTS idx_news_items_title_norm ON news_items(title_norm);

CREATE TABLE IF NOT EXISTS news_keywords (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    keyword TEXT NOT NULL UNIQUE,
    enabled INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS news_trends (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    keyword TEXT NOT NULL,
    window_start TEXT NOT NULL,
    window_end TEXT NOT NULL,
    mention_count INTEGER NOT NULL,
    velocity REAL NOT NULL,
    top_refs TEXT NOT NULL DEFAULT '[]',
    trend_score REAL NOT NULL,
    level TEXT NOT NULL,
    reason_text TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_news_trends_keyword_window
    ON news_trends(keyword, window_start, window_end);
CREATE INDEX IF NOT EXISTS idx_news_trends_created_at ON news_trends(created_at);

CREATE TABLE IF NOT EXISTS news_alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    trend_id INTEGER,
    keyword TEXT NOT NULL,
    level TEXT NOT NULL,
    sent_at TEXT NOT NULL,
    payload_snapshot TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_news_alerts_keyword_sent ON news_alerts(keyword, sent_at);
"""


def _row_to_item(row: sqlite3.Row) -> NewsItem:
    return NewsItem(
        id=row["id"],
        source=row["source"],
        community=row["community"],
        post_id=row["post_id"],
        title=row["title"],
        body_snippet=row["body_snippet"],
        comment_snippet=row["comment_snippet"],
        author=row["author"],
        created_at=parse_instant(row["created_at"]),
        score=int(row["score"] or 0),
        comment_count=int(row["comments"] or 0),
        canonical_url=row["url"],
        fetched_at=parse_instant(row["fetched_at"]),
    )


def _row_to_trend(row: sqlite3.Row) -> Trend:
    try:
        refs = json.loads(row["top_refs"] or "[]")
    except ValueError:
        refs = []
    return Trend(
        id=row["id"],
        keyword=row["keyword"],
        window_start=parse_instant(row["window_start"]),
        window_end=parse_instant(row["window_end"]),
        mention_count=int(row["mention_count"]),
        velocity=float(row["velocity"]),
        top_refs=[TrendRef.from_dict(r) for r in refs if isinstance(r, dict)],
        trend_score=float(row["trend_score"]),
        level=TrendLevel(row["level"]),
        reason_text=row["reason_text"],
        created_at=parse_instant(row["created_at"]),
    )


def _row_to_alert(row: sqlite3.Row) -> Alert:
    try:
        payload = json.loads(row["payload_snapshot"] or "{}")
    except ValueError:
        payload = {}
    return Alert(
        id=row["id"],
        trend_id=row["trend_id"],
        keyword=row["keyword"],
        level=TrendLevel(row["level"]),
        sent_at=parse_instant(row["sent_at"]),
        payload_snapshot=payload,
    )


def _ref_to_dict(ref: TrendRef) -> dict[str, Any]:
    return {
        "source": ref.source,
        "community": ref.community,
        "title": ref.title,
        "url": ref.url,
        "score": ref.score,
        "comments": ref.comments,
        "created_at": to_iso(ref.created_at) if ref.created_at else None,
    }


class NewsStore:
    """Embedded relational store, accessed with plain SQL."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self.ensure_schema()

    def ensure_schema(self) -> None:
        with self._conn:
            self._conn.executescript(SCHEMA)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "NewsStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # Keywords

    def ensure_keywords(self, keywords: Iterable[str], now: Optional[datetime] = None) -> None:
        """Seed keywords without touching existing rows."""
        created = to_iso(now or utc_now())
        rows = [(k, created) for k in {normalize_keyword(k) for k in keywords} if k]
        with self._conn:
            self._conn.executemany(
                "INSERT OR IGNORE INTO news_keywords (keyword, enabled, created_at) VALUES (?, 1, ?)",
                rows,
            )

    def set_keyword_enabled(self, keyword: str, enabled: bool, now: Optional[datetime] = None) -> str:
        normalized = normalize_keyword(keyword)
        if not normalized:
            raise ValueError("keyword is empty")
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO news_keywords (keyword, enabled, created_at) VALUES (?, ?, ?)
                ON CONFLICT(keyword) DO UPDATE SET enabled = excluded.enabled
                """,
                (normalized, 1 if enabled else 0, to_iso(now or utc_now())),
            )
        return normalized

    def list_enabled_keywords(self) -> list[str]:
        rows = self._conn.execute(
            "SELECT keyword FROM news_keywords WHERE enabled = 1 ORDER BY keyword"
        ).fetchall()
        return [row["keyword"] for row in rows]

    # Items

    def recent_fingerprints(self, since: datetime) -> set[str]:
        rows = self._conn.execute(
            "SELECT url, title FROM news_items WHERE fetched_at >= ?",
            (to_iso(since),),
        ).fetchall()
        fingerprints = {make_fingerprint(row["url"], row["title"]) for row in rows}
        fingerprints.discard("")
        return fingerprints

    def insert_item(self, item: NewsItem) -> bool:
        """Insert unless the item matches by (source, post_id), URL or title."""
        title_norm = normalize_text(item.title)
        existing = self._conn.execute(
            """
            SELECT 1 FROM news_items
            WHERE (source = ? AND post_id = ?)
               OR (? != '' AND url = ?)
               OR (? != '' AND title_norm = ?)
            LIMIT 1
            """,
            (item.source, item.post_id, item.canonical_url, item.canonical_url, title_norm, title_norm),
        ).fetchone()
        if existing:
            return False

        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT OR IGNORE INTO news_items (
                    source, community, post_id, title, body_snippet, comment_snippet,
                    author, created_at, score, comments, url, title_norm, fetched_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item.source,
                    item.community,
                    item.post_id,
                    item.title,
                    item.body_snippet,
                    item.comment_snippet,
                    item.author,
                    to_iso(item.created_at),
                    item.score,
                    item.comment_count,
                    item.canonical_url,
                    title_norm,
                    to_iso(item.fetched_at),
                ),
            )
        return cursor.rowcount == 1

    def items_between(self, start: datetime, end: datetime) -> list[NewsItem]:
        rows = self._conn.execute(
            """
            SELECT * FROM news_items
            WHERE created_at >= ? AND created_at < ?
            ORDER BY created_at DESC
            """,
            (to_iso(start), to_iso(end)),
        ).fetchall()
        return [_row_to_item(row) for row in rows]

    def recent_items(self, limit: int = 20, since: Optional[datetime] = None) -> list[NewsItem]:
        if since is None:
            rows = self._conn.execute(
                "SELECT * FROM news_items ORDER BY fetched_at DESC, id DESC LIMIT ?", (limit,)
            ).fetchall()
        else:
            rows = self._conn.execute(
                """
                SELECT * FROM news_items WHERE fetched_at >= ?
                ORDER BY fetched_at DESC, id DESC LIMIT ?
                """,
                (to_iso(since), limit),
            ).fetchall()
        return [_row_to_item(row) for row in rows]

    # Trends

    def insert_trend(self, trend: Trend) -> Optional[int]:
        """Insert a trend; returns None if the (keyword, window) row already exists."""
        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT OR IGNORE INTO news_trends (
                    keyword, window_start, window_end, mention_count, velocity,
                    top_refs, trend_score, level, reason_text, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    trend.keyword,
                    to_iso(trend.window_start),
                    to_iso(trend.window_end),
                    trend.mention_count,
                    trend.velocity,
                    json.dumps([_ref_to_dict(r) for r in trend.top_refs], ensure_ascii=False),
                    trend.trend_score,
                    TrendLevel(trend.level).value,
                    trend.reason_text,
                    to_iso(trend.created_at),
                ),
            )
        if cursor.rowcount != 1:
            logger.debug(f"Trend already stored: {trend.keyword} {to_iso(trend.window_start)}")
            return None
        trend.id = cursor.lastrowid
        return trend.id

    def recent_trends(self, limit: int = 10, since: Optional[datetime] = None) -> list[Trend]:
        if since is None:
            rows = self._conn.execute(
                "SELECT * FROM news_trends ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM news_trends WHERE created_at >= ? ORDER BY id DESC LIMIT ?",
                (to_iso(since), limit),
            ).fetchall()
        return [_row_to_trend(row) for row in rows]

    def latest_trend_id(self, keyword: str) -> Optional[int]:
        row = self._conn.execute(
            "SELECT id FROM news_trends WHERE keyword = ? ORDER BY id DESC LIMIT 1", (keyword,)
        ).fetchone()
        return row["id"] if row else None

    # Alerts

    def latest_alert(self, keyword: str) -> Optional[Alert]:
        row = self._conn.execute(
            "SELECT * FROM news_alerts WHERE keyword = ? ORDER BY sent_at DESC, id DESC LIMIT 1",
            (keyword,),
        ).fetchone()
        return _row_to_alert(row) if row else None

    def insert_alert(self, alert: Alert) -> int:
        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT INTO news_alerts (trend_id, keyword, level, sent_at, payload_snapshot)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    alert.trend_id,
                    alert.keyword,
                    TrendLevel(alert.level).value,
                    to_iso(alert.sent_at),
                    json.dumps(alert.payload_snapshot, ensure_ascii=False),
                ),
            )
        alert.id = cursor.lastrowid
        return alert.id

    # Status

    def counts(self) -> dict[str, int]:
        result = {}
        for name, table in (
            ("items", "news_items"),
            ("trends", "news_trends"),
            ("alerts", "news_alerts"),
            ("keywords", "news_keywords"),
        ):
            result[name] = int(self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
        return result
