"""Configuration management."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from trend_monitor.core.errors import UnknownSourceError

DEFAULT_TIMEZONE = "America/Los_Angeles"
MIN_GLOBAL_BYTES = 12000
MIN_SOURCE_BYTES = 4000
MIN_SHARED_SOURCE_BYTES = 8000
REASONING_LEVELS = ("low", "medium", "high")


@dataclass
class TokenBudgetConfig:
    """Per-run transfer budget."""
    max_fetched_bytes_per_run: int = 180000
    max_items_per_source_per_run: int = 30


@dataclass
class ThresholdsConfig:
    """Trend detection thresholds."""
    window_minutes: int = 120
    min_mentions: int = 4
    velocity_threshold: float = 1.6
    cooldown_hours: float = 2.0


@dataclass
class EventThresholdsConfig:
    """Stricter thresholds for hot-event alerts."""
    score_threshold: float = 2.3
    min_mentions: int = 6
    min_velocity: float = 2.0


@dataclass
class ModelStageConfig:
    """Preferred writer model for one pipeline stage."""
    alias: str
    model: str
    reasoning: str = "low"


@dataclass
class DigestPolicyConfig:
    """Digest phrasing, personalization and writer policy."""
    similarity_lookback_hours: float = 8
    overlap_keywords_min: int = 2
    max_repeat_focus: int = 2
    personalization_enabled: bool = True
    personalization_max_items: int = 2
    personalization_source: str = "web"
    preference_keywords: list[str] = field(default_factory=list)
    report_timezone: str = DEFAULT_TIMEZONE
    model_writer_enabled: bool = True
    model_writer_timeout_ms: int = 120000
    model_stages: dict[str, ModelStageConfig] = field(default_factory=lambda: {
        "collect": ModelStageConfig(alias="fast", model="openai-codex/gpt-5.1-codex-mini", reasoning="low"),
        "write": ModelStageConfig(alias="gpt", model="openai-codex/gpt-5.2", reasoning="high"),
    })

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.report_timezone)

    @property
    def writer_timeout_seconds(self) -> float:
        return self.model_writer_timeout_ms / 1000


@dataclass
class SourceConfig:
    """One entry of the ``sources`` list."""
    id: str
    enabled: bool = True
    poll_minutes: float = 0
    max_fetched_bytes: Optional[int] = None
    max_items: Optional[int] = None
    options: dict[str, Any] = field(default_factory=dict)

    def option(self, key: str, default: Any = None) -> Any:
        value = self.options.get(key)
        return default if value is None else value


@dataclass
class NewsConfig:
    """Parsed news config file."""

    mode: str = "api_rss_only"
    token_budget: TokenBudgetConfig = field(default_factory=TokenBudgetConfig)
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)
    event_thresholds: EventThresholdsConfig = field(default_factory=EventThresholdsConfig)
    digest_policy: DigestPolicyConfig = field(default_factory=DigestPolicyConfig)
    keywords: list[str] = field(default_factory=list)
    sources: list[SourceConfig] = field(default_factory=list)


@dataclass
class PathsConfig:
    """File locations."""
    db_path: Path = Path("data/news.db")
    sources_path: Path = Path("config/news_sources.json")
    state_path: Path = Path("data/news_fetch_state.json")
    digest_state_path: Path = Path("data/news_digest_state.json")
    lock_path: Path = Path("data/news_model_switch.lock")
    queue_dir: Path = Path("data/queue")


@dataclass
class DeliveryConfig:
    """Delivery switches."""
    direct_enabled: bool = True
    queue_fallback: bool = False
    target: str = "research"


@dataclass
class WriterConfig:
    """External writer process switches."""
    enabled: bool = True
    command: list[str] = field(default_factory=list)
    container: str = ""


@dataclass
class Settings:
    """Application settings."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    writer: WriterConfig = field(default_factory=WriterConfig)
    window_minutes: Optional[int] = None
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    env: Mapping[str, str] = field(default_factory=dict)

    @property
    def db_path(self) -> Path:
        return self.paths.db_path

    @property
    def sources_path(self) -> Path:
        return self.paths.sources_path


def _number(value: Any, default: float, minimum: Optional[float] = None) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        result = float(default)
    if minimum is not None:
        result = max(minimum, result)
    return result


def _integer(value: Any, default: int, minimum: Optional[int] = None) -> int:
    return int(_number(value, default, minimum))


def _flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in {"0", "false", "no", "off", ""}


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    return value if isinstance(value, Mapping) else {}


def _keywords(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v or "").strip()]


def _timezone_name(value: Any) -> str:
    name = str(value or "").strip()
    if not name:
        return DEFAULT_TIMEZONE
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return DEFAULT_TIMEZONE
    return name


def _model_stages(raw: Any, defaults: dict[str, ModelStageConfig]) -> dict[str, ModelStageConfig]:
    stages = dict(defaults)
    if not isinstance(raw, Mapping):
        return stages
    for name, default in defaults.items():
        entry = raw.get(name)
        if not isinstance(entry, Mapping):
            continue
        reasoning = str(entry.get("reasoning") or default.reasoning).lower()
        stages[name] = ModelStageConfig(
            alias=str(entry.get("alias") or default.alias).strip(),
            model=str(entry.get("model") or default.model).strip(),
            reasoning=reasoning if reasoning in REASONING_LEVELS else default.reasoning,
        )
    return stages


def parse_digest_policy(raw: Mapping[str, Any]) -> DigestPolicyConfig:
    """Build the digest policy, clamping values to sane ranges."""
    defaults = DigestPolicyConfig()
    source = str(raw.get("personalizationSource") or defaults.personalization_source).lower()
    return DigestPolicyConfig(
        similarity_lookback_hours=_number(raw.get("similarityLookbackHours"), defaults.similarity_lookback_hours, 1),
        overlap_keywords_min=_integer(raw.get("overlapKeywordsMin"), defaults.overlap_keywords_min, 1),
        max_repeat_focus=_integer(raw.get("maxRepeatFocus"), defaults.max_repeat_focus, 1),
        personalization_enabled=_flag(raw.get("personalizationEnabled"), defaults.personalization_enabled),
        personalization_max_items=_integer(raw.get("personalizationMaxItems"), defaults.personalization_max_items, 1),
        personalization_source=source if source in {"web", "config", "hybrid"} else defaults.personalization_source,
        preference_keywords=_keywords(raw.get("preferenceKeywords")),
        report_timezone=_timezone_name(raw.get("reportTimezone")),
        model_writer_enabled=_flag(raw.get("modelWriterEnabled"), defaults.model_writer_enabled),
        model_writer_timeout_ms=_integer(raw.get("modelWriterTimeoutMs"), defaults.model_writer_timeout_ms, 10000),
        model_stages=_model_stages(raw.get("modelStages"), defaults.model_stages),
    )


_SOURCE_KEYS = {"id", "enabled", "pollMinutes", "maxFetchedBytes", "maxItems"}


def parse_source(raw: Mapping[str, Any]) -> SourceConfig:
    max_bytes = raw.get("maxFetchedBytes")
    max_items = raw.get("maxItems")
    return SourceConfig(
        id=str(raw.get("id") or "").strip(),
        enabled=_flag(raw.get("enabled"), True),
        poll_minutes=_number(raw.get("pollMinutes"), 0, 0),
        max_fetched_bytes=_integer(max_bytes, MIN_SOURCE_BYTES, MIN_SOURCE_BYTES) if max_bytes else None,
        max_items=_integer(max_items, 1, 1) if max_items else None,
        options={k: v for k, v in raw.items() if k not in _SOURCE_KEYS},
    )


def parse_news_config(raw: Optional[Mapping[str, Any]]) -> NewsConfig:
    """Build a NewsConfig from the raw (camelCase) mapping."""
    raw = raw or {}
    budget = _section(raw, "tokenBudget")
    thresholds = _section(raw, "thresholds")
    events = _section(raw, "eventThresholds")

    budget_defaults = TokenBudgetConfig()
    threshold_defaults = ThresholdsConfig()
    event_defaults = EventThresholdsConfig()

    return NewsConfig(
        mode=str(raw.get("mode") or "api_rss_only"),
        token_budget=TokenBudgetConfig(
            max_fetched_bytes_per_run=_integer(
                budget.get("maxFetchedBytesPerRun"), budget_defaults.max_fetched_bytes_per_run, MIN_GLOBAL_BYTES
            ),
            max_items_per_source_per_run=_integer(
                budget.get("maxItemsPerSourcePerRun"), budget_defaults.max_items_per_source_per_run, 1
            ),
        ),
        thresholds=ThresholdsConfig(
            window_minutes=_integer(thresholds.get("windowMinutes"), threshold_defaults.window_minutes, 1),
            min_mentions=_integer(thresholds.get("minMentions"), threshold_defaults.min_mentions, 1),
            velocity_threshold=_number(thresholds.get("velocityThreshold"), threshold_defaults.velocity_threshold, 0),
            cooldown_hours=_number(thresholds.get("cooldownHours"), threshold_defaults.cooldown_hours, 0),
        ),
        event_thresholds=EventThresholdsConfig(
            score_threshold=_number(events.get("scoreThreshold"), event_defaults.score_threshold, 0),
            min_mentions=_integer(events.get("minMentions"), event_defaults.min_mentions, 1),
            min_velocity=_number(events.get("minVelocity"), event_defaults.min_velocity, 0),
        ),
        digest_policy=parse_digest_policy(_section(raw, "digestPolicy")),
        keywords=_keywords(raw.get("keywords")),
        sources=[parse_source(s) for s in raw.get("sources") or [] if isinstance(s, Mapping)],
    )


def load_config(config_path: Path) -> dict:
    """Load the raw config file (JSON or YAML)."""
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_news_config(config_path: Path) -> NewsConfig:
    return parse_news_config(load_config(config_path))


def save_config(config_path: Path, raw: Mapping[str, Any]) -> None:
    """Write the raw config back as JSON."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(raw, f, ensure_ascii=False, indent=2)
        f.write("\n")


def set_source_enabled(config_path: Path, source_id: str, enabled: bool) -> None:
    """Toggle one source in place; raises UnknownSourceError if absent."""
    raw = load_config(config_path)
    for source in raw.get("sources") or []:
        if isinstance(source, dict) and str(source.get("id") or "").strip() == source_id:
            source["enabled"] = enabled
            save_config(config_path, raw)
            return
    raise UnknownSourceError(source_id)


def get_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Get application settings from the environment."""
    env = os.environ if env is None else env
    defaults = PathsConfig()

    def path(key: str, default: Path) -> Path:
        value = env.get(key, "").strip()
        return Path(value) if value else default

    command = env.get("NEWS_DIGEST_WRITER_COMMAND", "").split()
    window = env.get("NEWS_WINDOW_MINUTES", "").strip()
    log_file = env.get("NEWS_LOG_FILE", "").strip()

    return Settings(
        paths=PathsConfig(
            db_path=path("NEWS_DB_PATH", defaults.db_path),
            sources_path=path("NEWS_SOURCES_PATH", defaults.sources_path),
            state_path=path("NEWS_STATE_PATH", defaults.state_path),
            digest_state_path=path("NEWS_DIGEST_STATE_PATH", defaults.digest_state_path),
            lock_path=path("NEWS_LOCK_PATH", defaults.lock_path),
            queue_dir=path("NEWS_QUEUE_DIR", defaults.queue_dir),
        ),
        delivery=DeliveryConfig(
            direct_enabled=_flag(env.get("NEWS_DIRECT_TELEGRAM"), True),
            queue_fallback=_flag(env.get("NEWS_QUEUE_FALLBACK"), False),
            target=env.get("NEWS_TELEGRAM_TARGET", "").strip() or "research",
        ),
        writer=WriterConfig(
            enabled=_flag(env.get("NEWS_DIGEST_MODEL_WRITE"), True),
            command=command,
            container=env.get("NEWS_DIGEST_WRITER_CONTAINER", "").strip(),
        ),
        window_minutes=_integer(window, 120, 1) if window.isdigit() else None,
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
        log_file=Path(log_file) if log_file else None,
        env=dict(env),
    )
