"""Core domain entities."""

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from trend_monitor.core.timeutils import parse_instant, to_iso


class TrendLevel(str, Enum):
    """Intensity bucket derived from the trend score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class SourceState:
    """Persisted per-source cursor."""

    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    validators: dict[str, dict[str, str]] = field(default_factory=dict)
    cursor: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.cursor)
        data["lastRunAt"] = to_iso(self.last_run_at) if self.last_run_at else None
        data["lastError"] = self.last_error
        data["validators"] = {key: dict(value) for key, value in self.validators.items()}
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceState":
        cursor = {
            key: value
            for key, value in data.items()
            if key not in {"lastRunAt", "lastError", "validators", "etagByUrl", "lastModifiedByUrl"}
        }
        validators: dict[str, dict[str, str]] = {}
        for key, value in (data.get("validators") or {}).items():
            if isinstance(value, dict):
                validators[key] = {k: str(v) for k, v in value.items() if v}
        # Older files kept two flat maps instead of one keyed map
        for key, etag in (data.get("etagByUrl") or {}).items():
            validators.setdefault(key, {})["etag"] = str(etag)
        for key, modified in (data.get("lastModifiedByUrl") or {}).items():
            validators.setdefault(key, {})["lastModified"] = str(modified)

        return cls(
            last_run_at=parse_instant(data.get("lastRunAt")),
            last_error=data.get("lastError"),
            validators=validators,
            cursor=cursor,
        )


@dataclass
class FetchState:
    """Whole fetch-state file."""

    version: int = 1
    updated_at: Optional[datetime] = None
    sources: dict[str, SourceState] = field(default_factory=dict)


@dataclass
class RawItem:
    """Item as returned by a source adapter, before normalization."""

    source: str
    post_id: str
    title: str
    community: str = ""
    body: str = ""
    comments_text: str = ""
    author: str = ""
    created_at: Any = None
    score: Any = 0
    comments: Any = 0
    url: str = ""


@dataclass(frozen=True)
class NewsItem:
    """Normalized item, immutable once stored."""

    source: str
    community: str
    post_id: str
    title: str
    body_snippet: str
    comment_snippet: str
    author: str
    created_at: datetime
    score: int
    comment_count: int
    canonical_url: str
    fetched_at: datetime
    id: Optional[int] = None

    @property
    def engagement(self) -> int:
        return self.score + self.comment_count


@dataclass
class TrendRef:
    """Reference to an item backing a trend."""

    source: str
    community: str
    title: str
    url: str
    score: int
    comments: int
    created_at: Optional[datetime] = None

    @classmethod
    def from_item(cls, item: NewsItem) -> "TrendRef":
        return cls(
            source=item.source,
            community=item.community,
            title=item.title,
            url=item.canonical_url,
            score=item.score,
            comments=item.comment_count,
            created_at=item.created_at,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrendRef":
        return cls(
            source=str(data.get("source") or ""),
            community=str(data.get("community") or ""),
            title=str(data.get("title") or ""),
            url=str(data.get("url") or ""),
            score=int(data.get("score") or 0),
            comments=int(data.get("comments") or 0),
            created_at=parse_instant(data.get("created_at")),
        )


@dataclass
class Trend:
    """Keyword trend over one window."""

    keyword: str
    window_start: datetime
    window_end: datetime
    mention_count: int
    velocity: float
    top_refs: list[TrendRef]
    trend_score: float
    level: TrendLevel
    reason_text: str
    created_at: datetime
    id: Optional[int] = None


@dataclass
class Alert:
    """Cooldown-gated alert for a trend."""

    trend_id: Optional[int]
    keyword: str
    level: TrendLevel
    sent_at: datetime
    payload_snapshot: dict[str, Any]
    id: Optional[int] = None
    # In-memory only; not persisted with the alert row
    trend: Optional["Trend"] = field(default=None, compare=False, repr=False)


@dataclass
class TrendSnapshot:
    """Compact trend copy kept in digest state."""

    keyword: str
    mention_count: int
    velocity: float
    trend_score: float
    level: str
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    created_at: Optional[datetime] = None
    top_refs: list[TrendRef] = field(default_factory=list)

    @classmethod
    def from_trend(cls, trend: Trend) -> "TrendSnapshot":
        return cls(
            keyword=trend.keyword,
            mention_count=trend.mention_count,
            velocity=trend.velocity,
            trend_score=trend.trend_score,
            level=TrendLevel(trend.level).value,
            window_start=trend.window_start,
            window_end=trend.window_end,
            created_at=trend.created_at,
            top_refs=list(trend.top_refs[:3]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyword": self.keyword,
            "mentionCount": self.mention_count,
            "velocity": self.velocity,
            "trendScore": self.trend_score,
            "level": self.level,
            "windowStart": to_iso(self.window_start) if self.window_start else None,
            "windowEnd": to_iso(self.window_end) if self.window_end else None,
            "createdAt": to_iso(self.created_at) if self.created_at else None,
            "topRefs": [to_jsonable(ref) for ref in self.top_refs],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrendSnapshot":
        return cls(
            keyword=str(data.get("keyword") or ""),
            mention_count=int(data.get("mentionCount") or 0),
            velocity=float(data.get("velocity") or 0),
            trend_score=float(data.get("trendScore") or 0),
            level=str(data.get("level") or TrendLevel.LOW.value),
            window_start=parse_instant(data.get("windowStart")),
            window_end=parse_instant(data.get("windowEnd")),
            created_at=parse_instant(data.get("createdAt")),
            top_refs=[TrendRef.from_dict(r) for r in data.get("topRefs") or [] if isinstance(r, dict)],
        )


@dataclass
class DigestState:
    """Singleton state used to bias the next digest."""

    updated_at: Optional[datetime] = None
    last_digest_at: Optional[datetime] = None
    last_digest_hash: str = ""
    last_digest_keywords: list[str] = field(default_factory=list)
    last_repeated_keywords: list[str] = field(default_factory=list)
    last_personalized_keywords: list[str] = field(default_factory=list)
    last_digest_trends: dict[str, TrendSnapshot] = field(default_factory=dict)


@dataclass
class SourceRunResult:
    """Per-source line of a collector run summary."""

    id: str
    ok: bool = False
    skipped: bool = False
    reason: Optional[str] = None
    inserted: int = 0
    duplicates: int = 0
    bytes: int = 0
    raw_fetched: int = 0
    accepted: int = 0
    error: Optional[str] = None


@dataclass
class CollectRunSummary:
    """Result of one collector run."""

    run_at: datetime
    mode: str
    enabled_sources: int
    global_byte_budget: int
    global_bytes_used: int = 0
    inserted_total: int = 0
    duplicate_total: int = 0
    skipped_by_poll: int = 0
    dry_run: bool = False
    per_source: list[SourceRunResult] = field(default_factory=list)


@dataclass
class TrendScanResult:
    """Result of one trend scan."""

    window_minutes: int
    window_start: datetime
    window_end: datetime
    items_scanned: int
    trends: list[Trend] = field(default_factory=list)
    created_count: int = 0


@dataclass
class WriterExecution:
    """How the digest text was produced."""

    ok: bool
    mode: str
    reason: Optional[str] = None
    model: str = ""
    alias: str = ""
    reasoning: str = ""
    backend: str = ""
    elapsed_ms: int = 0
    session_id: str = ""
    used_model: str = ""


@dataclass
class SourceStatus:
    """One line of the status report."""

    id: str
    enabled: bool
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None


@dataclass
class DeliveryResult:
    """Outcome of the delivery chain."""

    requested: bool
    target: str = ""
    direct_sent: bool = False
    direct_reason: Optional[str] = None
    direct_status_code: Optional[int] = None
    queued: bool = False
    queue_fallback_enabled: bool = False
    queue_reason: Optional[str] = None
    task_id: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.direct_sent or self.queued


def to_jsonable(value: Any) -> Any:
    """Convert dataclasses, enums and datetimes into JSON-ready values."""
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    return value
