"""Deterministic digest text built from stored trends and items.

Nothing here calls out: phrasing is picked from fixed candidate lists by an
FNV-1a seed, so the same inputs always render the same digest. The same module
renders the status report, the hot-event alert and the prompt handed to the
external writer.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any, Iterable, Optional, Sequence, Union

from trend_monitor.config import DigestPolicyConfig, ModelStageConfig, NewsConfig
from trend_monitor.core.entities import DigestState, NewsItem, SourceStatus, Trend, TrendSnapshot
from trend_monitor.core.text import normalize_keyword
from trend_monitor.core.timeutils import to_iso

TrendLike = Union[Trend, TrendSnapshot]

FNV_OFFSET = 2166136261
FNV_PRIME = 16777619
TOP_TRENDS = 4
FOCUS_TRENDS = 3
MAX_INTEREST_KEYWORDS = 24
EVENT_LINES = 5

DIGEST_HEADER = "📰 Tech Trend Column"
EVENT_HEADER = "🚨 Hot Event Alert"
NO_EVENT_TEXT = "🚨 No event (thresholds or cooldown not met)"

HELP_TEXT = "\n".join([
    "News commands",
    "- status",
    "- digest",
    "- event",
    "- keyword add <kw>",
    "- keyword remove <kw>",
    "- source on|off <sourceId>",
])

PREFERRED_INTEREST_ORDER = [
    "openclaw", "codex", "agent", "automation", "ai", "llm", "open source", "python",
    "typescript", "developer tools", "claude", "chatgpt", "openai", "mcp", "docker",
    "telegram", "finance", "anki", "prompt",
]

TITLE_STOPWORDS = {
    "the", "and", "for", "with", "from", "this", "that", "into", "over", "under", "after", "before",
    "your", "our", "their", "its", "is", "are", "was", "were", "be", "been", "being",
    "how", "why", "what", "when", "where", "who", "which",
    "new", "latest", "today", "week", "daily", "live", "top", "best", "more", "most",
    "about", "using", "build", "built", "guide", "tips", "news", "update", "updates",
}

_TITLE_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9+.#-]{1,30}")
_COMMUNITY_HINT_RE = re.compile(r"Top communities:\s*(.+)$")
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def fnv1a_hash(text: str) -> int:
    """32-bit FNV-1a over UTF-16 code units."""
    value = FNV_OFFSET
    data = (text or "").encode("utf-16-le")
    for i in range(0, len(data), 2):
        value ^= data[i] | (data[i + 1] << 8)
        value = (value * FNV_PRIME) & 0xFFFFFFFF
    return value


def pick_by_seed(candidates: Sequence[str], seed: int, offset: int = 0) -> str:
    options = [c for c in candidates if c]
    if not options:
        return ""
    return options[abs(seed + offset) % len(options)]


def trim_title(value: Optional[str], max_len: int = 68) -> str:
    text = re.sub(r"\s+", " ", value or "").strip()
    if len(text) <= max_len:
        return text
    return f"{text[:max_len - 1]}…"


def format_delta(current: float, previous: float, digits: int = 0) -> str:
    delta = current - previous
    if round(delta, digits) == 0:
        return "0"
    return f"{delta:+.{digits}f}"


def format_local(value: datetime, tz: tzinfo) -> str:
    return value.astimezone(tz).strftime("%Y-%m-%d %H:%M")


def format_trend_line(trend: TrendLike) -> str:
    level = str(getattr(trend.level, "value", trend.level))
    mood = {"high": "on fire", "medium": "heating up"}.get(level, "worth a glance")
    return (
        f"- {trend.keyword}: mentions {trend.mention_count} / velocity {trend.velocity:.2f} / "
        f"score {trend.trend_score:.2f} ({level}, {mood})"
    )


def _recency(trend: TrendLike) -> datetime:
    return trend.created_at or trend.window_end or trend.window_start or _EPOCH


def trend_rank_key(trend: TrendLike) -> tuple:
    """Sort key: score, then mentions, then velocity, then newest first."""
    return (-trend.trend_score, -trend.mention_count, -trend.velocity, -_recency(trend).timestamp())


def pick_ranked_trends(trends: Iterable[TrendLike], limit: int = TOP_TRENDS) -> list:
    """Best row per normalized keyword, ranked, top ``limit``."""
    best: dict[str, TrendLike] = {}
    for trend in trends:
        key = normalize_keyword(trend.keyword)
        if not key:
            continue
        if key not in best or trend_rank_key(trend) < trend_rank_key(best[key]):
            best[key] = trend
    return sorted(best.values(), key=trend_rank_key)[:max(1, limit)]


def pick_unique_trends(trends: Iterable[TrendLike], limit: int = 5) -> list:
    """First row per keyword, preserving input order."""
    picked, seen = [], set()
    for trend in trends:
        key = normalize_keyword(trend.keyword)
        if not key or key in seen:
            continue
        seen.add(key)
        picked.append(trend)
        if len(picked) >= limit:
            break
    return picked


def community_hint(reason_text: str) -> str:
    match = _COMMUNITY_HINT_RE.search(reason_text or "")
    hint = match.group(1).strip() if match else ""
    return "" if hint == "-" else hint


def digest_narrative(keyword: str) -> str:
    k = normalize_keyword(keyword)
    if k in ("ai", "llm"):
        return "More posts show it applied straight to daily work rather than feature tours."
    if k == "agent":
        return "Chaining several steps into one automated flow keeps gaining ground."
    if k == "open source":
        return "Cost and lock-in worries are pushing people back to open source stacks."
    if "claude" in k:
        return "Attention is on running it reliably in production more than on benchmarks."
    if "gpt" in k or "openai" in k:
        return "Cases that fold the model into existing workflows get the most attention."
    if "python" in k:
        return "Steady demand for data work and automation makes small scripts a good entry point."
    if "typescript" in k:
        return "As web apps add AI features, typed code for stability is in demand too."
    return "Easy to tie to real work, so it is a good candidate for a quick small experiment."


def vibe_summary(top_trends: Sequence[TrendLike]) -> str:
    names = [t.keyword for t in top_trends[:2] if t.keyword]
    if not names:
        return "Topics are spread out today with no single strong theme."
    if len(names) == 1:
        return f"{names[0]} is the strongest theme today."
    return f"{' + '.join(names)} lead the conversation today."


def _reference_title(trend: TrendLike, seed: int, index: int) -> str:
    refs = trend.top_refs
    if not refs:
        return ""
    return trim_title(refs[abs(seed + index * 19) % len(refs)].title, 70)


def _primary_ref_title(trend: Optional[TrendLike]) -> str:
    if trend is None or not trend.top_refs:
        return ""
    return trim_title(trend.top_refs[0].title, 70)


def repeated_trend_sentence(trend: TrendLike, previous: TrendSnapshot, index: int, seed: int) -> str:
    """Short update for a keyword that was already in the previous digest."""
    keyword = trend.keyword.strip() or "this keyword"
    lead = pick_by_seed([
        f"{keyword}: same axis as the last report, so only the changes.",
        f"{keyword}: close to last time, here is what moved.",
        f"{keyword}: repeat topic, update only.",
    ], seed, index * 29 + len(keyword))

    current_ref = _primary_ref_title(trend)
    ref_line = f' New sample: "{current_ref}".' if current_ref and current_ref != _primary_ref_title(previous) else ""
    return (
        f"{lead} mentions {trend.mention_count}(Δ{format_delta(trend.mention_count, previous.mention_count, 0)})"
        f" · velocity {trend.velocity:.2f}(Δ{format_delta(trend.velocity, previous.velocity, 2)})"
        f" · score {trend.trend_score:.2f}(Δ{format_delta(trend.trend_score, previous.trend_score, 2)}).{ref_line}"
    )


def trend_column_sentence(trend: Trend, index: int, seed: int) -> str:
    keyword = trend.keyword.strip() or "this keyword"
    mentions = trend.mention_count
    velocity = trend.velocity
    score = trend.trend_score
    level = str(getattr(trend.level, "value", trend.level))
    mood = {"high": "high interest", "medium": "moderate interest"}.get(level, "low interest")

    lead = pick_by_seed([
        f"Discussion around {keyword} keeps growing.",
        f"{keyword} is a topic where real usage stories get shared often.",
        f"{keyword} is a flow worth checking right now.",
        f"{keyword} is discussed from a practical angle more than as an introduction.",
        f"Interest in {keyword} centers on whether it fits real work.",
        f"{keyword} keeps coming back, and interest holds.",
    ], seed, index * 11 + len(keyword))

    metric = pick_by_seed([
        f"Mentions {mentions}, velocity {velocity:.2f}x, score {score:.2f}: {mood}.",
        f"The data shows {mentions} mentions, {velocity:.2f}x velocity and a {score:.2f} score.",
        f"Current numbers are {mentions} mentions at {velocity:.2f}x with a trend score of {score:.2f}.",
        f"In short: mentions {mentions} / velocity {velocity:.2f} / score {score:.2f}.",
    ], seed, index * 13 + mentions)

    pivot = pick_by_seed([
        "The key point follows.",
        "What matters is practical applicability.",
        "The common thread is this.",
        "In the end, whether it can be acted on matters most.",
    ], seed, index * 7 + int(score * 100))

    reference_title = _reference_title(trend, seed, index)
    reference = pick_by_seed([
        f'"{reference_title}" is cited often as an example.',
        f'Posts like "{reference_title}" keep the discussion going.',
        f'A recent example is "{reference_title}".',
    ], seed, index * 23 + len(reference_title)) if reference_title else ""

    hint = community_hint(trend.reason_text)
    community = pick_by_seed([
        f"Reaction is strongest in {hint}.",
        f"It seems to spread from {hint} first.",
        f"{hint} currently drives the flow.",
    ], seed, index * 17 + len(hint)) if hint else ""

    return " ".join(part for part in (lead, metric, pivot, digest_narrative(keyword), reference, community) if part)


def personalized_trend_sentence(trend: TrendLike, index: int, seed: int) -> str:
    keyword = trend.keyword.strip() or "this keyword"
    lead = pick_by_seed([
        f"{keyword}: strong community reaction, worth checking first.",
        f"{keyword}: recent article and discussion signals are rising.",
        f"{keyword}: real usage mentions are up, good timing to look.",
    ], seed, index * 31 + len(keyword))
    return f"{lead} Mentions {trend.mention_count} · score {trend.trend_score:.2f}."


def recent_item_sentence(recent_items: Sequence[NewsItem], seed: int) -> str:
    if not recent_items:
        return ""
    pick = recent_items[abs(seed) % len(recent_items)]
    title = trim_title(pick.title, 72)
    if not title:
        return ""
    lead = pick_by_seed([
        "Today's flow shows up well in this post.",
        "A representative post for the current mood:",
        "A good example of the live reaction:",
        "For quick context, start with this one.",
    ], seed, 97)
    community = (pick.community or pick.source).strip()
    return f'{lead} "{title}" ({community}).' if community else f'{lead} "{title}".'


def digest_closing(top_trends: Sequence[TrendLike], seed: int) -> str:
    core = " + ".join(t.keyword.strip() for t in top_trends[:2] if t.keyword.strip()) or "the rising keywords"
    return pick_by_seed([
        f"Bottom line: for {core}, quick small experiments work best.",
        f"One-line summary: review {core} through real cases to avoid dead ends.",
        f"The point is to validate {core} ideas right away in small steps.",
        f"To wrap up, {core} rewards doing over reading.",
    ], seed, 211)


def config_interest_keywords(config: NewsConfig) -> list[str]:
    configured = [normalize_keyword(k) for k in config.keywords if normalize_keyword(k)]
    configured_set = set(configured)
    picked: list[str] = []
    for keyword in config.digest_policy.preference_keywords:
        normalized = normalize_keyword(keyword)
        if normalized and normalized not in picked:
            picked.append(normalized)
    for keyword in PREFERRED_INTEREST_ORDER:
        if keyword in configured_set and keyword not in picked:
            picked.append(keyword)
    for keyword in configured:
        if len(picked) >= MAX_INTEREST_KEYWORDS:
            break
        if keyword not in picked:
            picked.append(keyword)
    return picked


def title_signal_keywords(recent_items: Sequence[NewsItem], limit: int = 16) -> list[str]:
    """Title tokens weighted by recency (first item counts most)."""
    weighted: dict[str, int] = {}
    for i, item in enumerate(recent_items):
        weight = max(1, 8 - i)
        for raw in _TITLE_TOKEN_RE.findall((item.title or "").lower()):
            token = normalize_keyword(raw)
            if not token or token.isdigit() or token in TITLE_STOPWORDS:
                continue
            if len(token) <= 2 and token not in ("ai", "ml"):
                continue
            weighted[token] = weighted.get(token, 0) + weight
    ranked = sorted(weighted.items(), key=lambda kv: (-kv[1], kv[0]))
    return [token for token, _ in ranked[:max(1, limit)]]


def _merge(first: Iterable[str], second: Iterable[str], cap: int = MAX_INTEREST_KEYWORDS) -> list[str]:
    merged: list[str] = []
    for keyword in first:
        if keyword not in merged:
            merged.append(keyword)
    for keyword in second:
        if len(merged) >= cap:
            break
        if keyword not in merged:
            merged.append(keyword)
    return merged


def build_interest_keywords(
    config: NewsConfig, trends: Sequence[TrendLike], recent_items: Sequence[NewsItem]
) -> list[str]:
    """Interest keywords by ``personalizationSource``: web signals, config, or both."""
    source = config.digest_policy.personalization_source
    if source == "config":
        return config_interest_keywords(config)

    from_trends = [normalize_keyword(t.keyword) for t in pick_ranked_trends(trends, 12) if t.keyword]
    web = _merge(from_trends, title_signal_keywords(recent_items))
    if source == "hybrid":
        return _merge(web, config_interest_keywords(config))
    return web


def keyword_matches_interest(keyword: str, interests: Iterable[str]) -> bool:
    k = normalize_keyword(keyword)
    if not k:
        return False
    for raw in interests:
        interest = normalize_keyword(raw)
        if not interest:
            continue
        if k == interest:
            return True
        if len(interest) <= 2 or len(k) <= 2:
            continue
        if interest in k or k in interest:
            return True
    return False


def pick_personalized_trends(
    trends: Sequence[TrendLike], interests: Sequence[str], excluded: Iterable[str], limit: int = 2
) -> list:
    skip = {normalize_keyword(k) for k in excluded}
    picked = []
    for trend in pick_ranked_trends(trends, 12):
        keyword = normalize_keyword(trend.keyword)
        if not keyword or keyword in skip or not keyword_matches_interest(keyword, interests):
            continue
        picked.append(trend)
        if len(picked) >= max(1, limit):
            break
    return picked


@dataclass
class DigestPayload:
    """Rendered template digest plus the selection it was built from."""

    text: str
    digest_at: str
    seed: int
    top_trends: list = field(default_factory=list)
    repeated_keywords: list[str] = field(default_factory=list)
    personalized_keywords: list[str] = field(default_factory=list)
    compress_repeats: bool = False

    @property
    def top_keywords(self) -> list[str]:
        return [normalize_keyword(t.keyword) for t in self.top_trends if normalize_keyword(t.keyword)]

    def snapshots(self) -> dict[str, TrendSnapshot]:
        return {normalize_keyword(t.keyword): TrendSnapshot.from_trend(t) for t in self.top_trends}

    def meta(self) -> dict[str, Any]:
        return {
            "topKeywords": self.top_keywords,
            "repeatedKeywords": self.repeated_keywords,
            "personalizedKeywords": self.personalized_keywords,
            "compressRepeats": self.compress_repeats,
        }


def previous_trend_map(previous: Optional[DigestState]) -> dict[str, TrendSnapshot]:
    if previous is None:
        return {}
    return {normalize_keyword(k): v for k, v in previous.last_digest_trends.items() if normalize_keyword(k)}


def build_digest_payload(
    trends: Sequence[Trend],
    recent_items: Sequence[NewsItem],
    generated_at: datetime,
    policy: DigestPolicyConfig,
    previous: Optional[DigestState] = None,
    interest_keywords: Sequence[str] = (),
) -> DigestPayload:
    """Select the top trends, mark overlap with the previous digest, render the text."""
    digest_at = format_local(generated_at, policy.tz)
    top_trends = pick_ranked_trends(trends, TOP_TRENDS) if trends else []
    previous_map = previous_trend_map(previous)
    repeated = [
        normalize_keyword(t.keyword) for t in top_trends if normalize_keyword(t.keyword) in previous_map
    ]
    compress = len(repeated) >= max(1, policy.overlap_keywords_min)
    seed = fnv1a_hash(f"{to_iso(generated_at)}|{'|'.join(t.keyword for t in top_trends)}|{len(recent_items)}")

    lines = [f"{DIGEST_HEADER} ({digest_at})"]
    if not top_trends:
        lines.append(pick_by_seed([
            "The timeline is quiet today overall, a day to save energy rather than chase themes.",
            "Only small ripples right now, no need to force a chase.",
            "No strong theme today, tidying existing systems pays off more than chasing new issues.",
        ], seed, 3))
        lines.append(pick_by_seed([
            "A good moment to read less news and refactor an existing workflow or automation.",
            "Days like this are right for cleaning up checklists and automating repeat work.",
            "Shipping one concrete improvement beats browsing for information today.",
        ], seed, 5))
        return DigestPayload(text="\n".join(lines), digest_at=digest_at, seed=seed)

    lines.append(pick_by_seed([
        "Community mood first: far more talk about actually using things than about hype keywords.",
        "In one line, the game is shifting to who puts it into practice faster.",
        "Today the center is practical use and productivity more than buzz.",
        "Weight is moving from memes to write-ups, automation and reproducible usage reports.",
        "A common thread in the reactions: result showcases land better than abstract debates.",
    ], seed, 17))
    lines.append(f"In short, {vibe_summary(top_trends)}")
    lines.append("")
    if compress:
        lines.append(f"Overlap with the last report ({', '.join(repeated)}) is kept to the key changes.")
        lines.append("")

    focus = top_trends[:FOCUS_TRENDS]
    repeated_focus = 0
    for i, trend in enumerate(focus):
        prev = previous_map.get(normalize_keyword(trend.keyword))
        if prev is not None and (not compress or repeated_focus < max(1, policy.max_repeat_focus)):
            lines.append(repeated_trend_sentence(trend, prev, i, seed))
            repeated_focus += 1
        else:
            lines.append(trend_column_sentence(trend, i, seed))
        lines.append("")

    personalized = []
    if policy.personalization_enabled:
        personalized = pick_personalized_trends(
            trends, interest_keywords, [t.keyword for t in focus], policy.personalization_max_items
        )
    if personalized:
        lines.append("🎯 Picked for your interests (web signals)")
        lines.extend(f"- {personalized_trend_sentence(t, i, seed)}" for i, t in enumerate(personalized))
        lines.append("")

    recent_line = recent_item_sentence(recent_items, seed)
    if recent_line:
        lines.extend([recent_line, ""])

    lines.append(digest_closing(top_trends, seed))
    while lines and not lines[-1].strip():
        lines.pop()

    return DigestPayload(
        text="\n".join(lines),
        digest_at=digest_at,
        seed=seed,
        top_trends=top_trends,
        repeated_keywords=repeated,
        personalized_keywords=[normalize_keyword(t.keyword) for t in personalized],
        compress_repeats=compress,
    )


def build_writer_prompt(
    payload: DigestPayload,
    recent_items: Sequence[NewsItem],
    interest_keywords: Sequence[str] = (),
    previous: Optional[DigestState] = None,
) -> str:
    """Prompt for the external writer; it must answer with ``{"digest": "..."}`` only."""
    previous_map = previous_trend_map(previous)
    top = []
    for trend in payload.top_trends:
        prev = previous_map.get(normalize_keyword(trend.keyword))
        top.append({
            "keyword": trend.keyword,
            "mentionCount": trend.mention_count,
            "velocity": trend.velocity,
            "trendScore": trend.trend_score,
            "level": str(getattr(trend.level, "value", trend.level)),
            "mentionDelta": format_delta(trend.mention_count, prev.mention_count if prev else 0, 0),
            "velocityDelta": format_delta(trend.velocity, prev.velocity if prev else 0, 2),
            "scoreDelta": format_delta(trend.trend_score, prev.trend_score if prev else 0, 2),
        })

    context = {
        "digestAt": payload.digest_at,
        "topTrends": top,
        "repeatedKeywords": payload.repeated_keywords,
        "personalizedKeywords": payload.personalized_keywords,
        "interestKeywords": list(interest_keywords)[:10],
        "previousDigestKeywords": previous.last_digest_keywords if previous else [],
        "recentSamples": [
            {
                "source": item.source,
                "community": item.community,
                "title": trim_title(item.title, 90),
                "url": item.canonical_url,
            }
            for item in recent_items[:3]
        ],
        "templateDraft": payload.text,
    }
    return "\n".join([
        "You are the editor of a tech trend report.",
        "Write a Telegram report grounded in the input below.",
        "Output rules:",
        '- Output JSON only: {"digest":"..."}',
        f'- The first line of digest must be exactly "{DIGEST_HEADER} ({payload.digest_at})"',
        "- Do not repeat content. Keywords that overlap the previous report get a 1-2 sentence update.",
        "- Plain, easy sentences. No heavy memes, emoji spam, addressing the reader, or meta remarks.",
        "- Keep the interests section, short and clear, based on web signals.",
        "- No code blocks, tables or extra explanation, JSON only.",
        "",
        "Input data (JSON):",
        json.dumps(context, ensure_ascii=False),
    ])


def build_writer_fallback_alert(
    reason: str, backend: str, stage: ModelStageConfig, generated_at: datetime, tz: tzinfo
) -> str:
    lines = [
        f"⚠️ Report writer fallback detected ({format_local(generated_at, tz)})",
        f"- Target: {stage.model} / thinking {stage.reasoning}",
        f"- Reason: {reason or 'unknown'}",
    ]
    if backend:
        lines.append(f"- Backend: {backend}")
    lines.append("- This report was sent with the template text instead.")
    return "\n".join(lines)


def build_status_text(
    config: NewsConfig,
    counts: dict[str, int],
    sources: Sequence[SourceStatus],
    trends: Sequence[TrendLike],
) -> str:
    tz = config.digest_policy.tz
    lines = [
        "🧭 News tracker status",
        f"- Mode: {config.mode}",
        f"- Sources: {sum(1 for s in sources if s.enabled)}/{len(sources)} enabled",
        (
            f"- Data: items {counts.get('items', 0)}, trends {counts.get('trends', 0)}, "
            f"alerts {counts.get('alerts', 0)}, keywords {counts.get('keywords', 0)}"
        ),
    ]

    if sources:
        lines.extend(["", "🛰️ Sources"])
        for row in sources:
            last_run = format_local(row.last_run_at, tz) if row.last_run_at else "-"
            err = f" / err:{row.last_error}" if row.last_error else ""
            lines.append(f"- {row.id}: {'on' if row.enabled else 'off'} / lastRun {last_run}{err}")

    latest = pick_unique_trends(trends, 3)
    if latest:
        lines.extend(["", "📈 Latest trends"])
        lines.extend(format_trend_line(t) for t in latest)

    return "\n".join(lines)


def build_event_text(trends: Sequence[TrendLike]) -> str:
    if not trends:
        return NO_EVENT_TEXT
    return "\n".join([EVENT_HEADER, *(format_trend_line(t) for t in trends[:EVENT_LINES])])
