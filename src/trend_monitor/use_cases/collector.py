"""Budgeted, resumable collection across all enabled sources."""

from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx
from loguru import logger

from trend_monitor.adapters.http.budgeted_client import DEFAULT_TIMEOUT, BudgetedHttpClient, GlobalByteBudget
from trend_monitor.adapters.sources import SourceRegistry
from trend_monitor.adapters.storage.sqlite_store import NewsStore
from trend_monitor.config import MIN_SHARED_SOURCE_BYTES, MIN_SOURCE_BYTES, NewsConfig, SourceConfig
from trend_monitor.core import text
from trend_monitor.core.entities import CollectRunSummary, NewsItem, RawItem, SourceRunResult, SourceState
from trend_monitor.core.errors import BudgetExceededError, SourceSkipped
from trend_monitor.core.fetch_state import FetchStateStore, should_poll
from trend_monitor.core.interfaces import CollectContext
from trend_monitor.core.timeutils import parse_instant, utc_now

DEFAULT_DEDUP_LOOKBACK = timedelta(days=7)


def normalize_item(raw: RawItem, fetched_at: datetime) -> Optional[NewsItem]:
    """Clip fields, canonicalize the URL and coerce timestamps; None if unusable."""
    post_id = text.clip_text(raw.post_id, text.POST_ID_MAX)
    title = text.clip_text(raw.title, text.TITLE_MAX)
    if not post_id or not title:
        return None

    def count(value: object) -> int:
        try:
            return int(float(value or 0))
        except (TypeError, ValueError):
            return 0

    return NewsItem(
        source=text.clip_text(raw.source, text.SOURCE_MAX),
        community=text.clip_text(raw.community, text.COMMUNITY_MAX),
        post_id=post_id,
        title=title,
        body_snippet=text.clip_text(raw.body),
        comment_snippet=text.clip_text(raw.comments_text),
        author=text.clip_text(raw.author, text.AUTHOR_MAX),
        created_at=parse_instant(raw.created_at, fetched_at),
        score=count(raw.score),
        comment_count=count(raw.comments),
        canonical_url=text.canonicalize_url(raw.url),
        fetched_at=fetched_at,
    )


class Collector:
    """Run every enabled source once, sequentially, under one global byte budget."""

    def __init__(
        self,
        store: NewsStore,
        fetch_state: FetchStateStore,
        config: NewsConfig,
        registry: Optional[SourceRegistry] = None,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ) -> None:
        self.store = store
        self.fetch_state = fetch_state
        self.config = config
        self.registry = registry or SourceRegistry.default()
        self.client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, follow_redirects=True)
        )

    async def collect(
        self,
        sources: Optional[list[SourceConfig]] = None,
        global_byte_budget: Optional[int] = None,
        per_source_item_cap: Optional[int] = None,
        dedup_lookback: timedelta = DEFAULT_DEDUP_LOOKBACK,
        *,
        force: bool = False,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> CollectRunSummary:
        """Collect from sources in list order and return the run summary."""
        now = now or utc_now()
        enabled = [s for s in (sources if sources is not None else self.config.sources) if s.enabled and s.id]
        budget = GlobalByteBudget(global_byte_budget or self.config.token_budget.max_fetched_bytes_per_run)
        item_cap = per_source_item_cap or self.config.token_budget.max_items_per_source_per_run
        default_share = max(MIN_SHARED_SOURCE_BYTES, budget.limit // max(1, len(enabled)))

        summary = CollectRunSummary(
            run_at=now,
            mode=self.config.mode,
            enabled_sources=len(enabled),
            global_byte_budget=budget.limit,
            dry_run=dry_run,
        )
        known = self.store.recent_fingerprints(now - dedup_lookback)
        state = self.fetch_state.read()

        logger.info(f"Collecting from {len(enabled)} sources (budget {budget.limit} bytes)")

        async with self.client_factory() as client:
            for source in enabled:
                source_state = state.sources.get(source.id) or SourceState()

                if not force and not should_poll(source_state, source.poll_minutes, now):
                    summary.skipped_by_poll += 1
                    summary.per_source.append(
                        SourceRunResult(id=source.id, ok=True, skipped=True, reason="poll_interval")
                    )
                    continue

                source_limit = max(MIN_SOURCE_BYTES, source.max_fetched_bytes or default_share)
                max_items = max(1, min(item_cap, source.max_items or item_cap))

                http = BudgetedHttpClient(
                    source_id=source.id,
                    source_limit=source_limit,
                    global_budget=budget,
                    client=client,
                    validators=source_state.validators,
                )
                result = SourceRunResult(id=source.id)
                patch: dict = {}
                stop = False

                try:
                    collector = self.registry.get(source.id)
                    collected = await collector.collect(
                        CollectContext(source=source, state=source_state, http=http, max_items=max_items, now=now)
                    )
                    patch = collected.state_patch
                    self._accept(collected.items, now, known, result, dry_run)
                    result.ok = True
                except SourceSkipped as e:
                    logger.warning(f"{source.id}: skipped ({e.reason})")
                    result.ok = True
                    result.skipped = True
                    result.reason = e.reason
                    result.error = e.reason
                except BudgetExceededError as e:
                    logger.warning(f"{source.id}: {e} {e.detail}")
                    result.reason = "budget_exceeded"
                    result.error = str(e)
                    stop = e.is_global
                except Exception as e:
                    logger.warning(f"{source.id}: collect failed: {e}")
                    result.reason = "collect_failed"
                    result.error = str(e) or e.__class__.__name__

                result.bytes = http.bytes_used
                summary.per_source.append(result)
                summary.inserted_total += result.inserted
                summary.duplicate_total += result.duplicates

                if not dry_run:
                    state.sources[source.id] = self._next_state(source_state, patch, http, now, result.error)
                    self.fetch_state.write(state)

                if stop:
                    logger.warning("Global byte budget exhausted, stopping collection")
                    break

        summary.global_bytes_used = budget.used
        logger.info(
            f"Collected: inserted={summary.inserted_total} duplicates={summary.duplicate_total} "
            f"skipped_by_poll={summary.skipped_by_poll} bytes={budget.used}/{budget.limit}"
        )
        return summary

    def _accept(
        self,
        raw_items: list[RawItem],
        fetched_at: datetime,
        known: set[str],
        result: SourceRunResult,
        dry_run: bool,
    ) -> None:
        result.raw_fetched = len(raw_items)
        for raw in raw_items:
            item = normalize_item(raw, fetched_at)
            if item is None:
                continue
            result.accepted += 1

            fingerprint = text.make_fingerprint(item.canonical_url, item.title)
            if fingerprint and fingerprint in known:
                result.duplicates += 1
                continue

            inserted = True if dry_run else self.store.insert_item(item)
            if fingerprint:
                known.add(fingerprint)
            if inserted:
                result.inserted += 1
            else:
                result.duplicates += 1

    @staticmethod
    def _next_state(
        previous: SourceState,
        patch: dict,
        http: BudgetedHttpClient,
        now: datetime,
        error: Optional[str],
    ) -> SourceState:
        cursor = dict(previous.cursor)
        cursor.update(patch or {})
        validators = dict(previous.validators)
        validators.update(http.validator_patch)
        return SourceState(last_run_at=now, last_error=error, validators=validators, cursor=cursor)
