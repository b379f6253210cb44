"""Tests for the collector use case."""

from datetime import timedelta

import httpx
import pytest

from trend_monitor.adapters.sources import SourceRegistry
from trend_monitor.config import NewsConfig, SourceConfig, TokenBudgetConfig
from trend_monitor.core.entities import FetchState, RawItem, SourceState
from trend_monitor.core.errors import SourceSkipped
from trend_monitor.core.fetch_state import FetchStateStore
from trend_monitor.core.interfaces import CollectContext, CollectResult, SourceCollector
from trend_monitor.use_cases.collector import Collector, normalize_item


class FakeCollector(SourceCollector):
    """Fetches one body through the budgeted client and returns canned items."""

    def __init__(self, source_id, items=(), patch=None, error=None, path="/feed"):
        self.source_id = source_id
        self.items = list(items)
        self.patch = patch or {}
        self.error = error
        self.path = path
        self.calls = 0

    async def collect(self, ctx: CollectContext) -> CollectResult:
        self.calls += 1
        if self.error:
            raise self.error
        await ctx.http.get_text(f"https://src.test{self.path}", cache_key=f"{self.source_id}:feed")
        return CollectResult(items=self.items[: ctx.max_items], state_patch=self.patch)


def _raw(source, n, title=None, url=None):
    return RawItem(
        source=source,
        post_id=str(n),
        title=title or f"{source} story {n}",
        community=source,
        created_at="2026-02-14T11:00:00Z",
        score="12",
        comments=3,
        url=url or f"https://news.test/{source}/{n}",
    )


def _factory(sizes=None, etag=None):
    sizes = sizes or {}

    def handler(request: httpx.Request) -> httpx.Response:
        headers = {"ETag": etag} if etag else {}
        return httpx.Response(200, content=b"x" * sizes.get(request.url.path, 100), headers=headers)

    return lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _collector(store, tmp_path, fakes, sources, sizes=None, budget=180000, etag=None):
    config = NewsConfig(
        token_budget=TokenBudgetConfig(max_fetched_bytes_per_run=budget, max_items_per_source_per_run=30),
        sources=sources,
    )
    return Collector(
        store,
        FetchStateStore(tmp_path / "fetch.json"),
        config,
        registry=SourceRegistry({f.source_id: f for f in fakes}),
        client_factory=_factory(sizes, etag),
    )


def test_normalize_item_coerces_fields(now) -> None:
    """Test clipping, URL canonicalization and count coercion."""
    item = normalize_item(
        RawItem(source="hn", post_id="1", title="  A   title ", created_at=None, score="7.0",
                comments="n/a", url="https://X.test/a?utm_source=z"),
        now,
    )
    assert item.title == "A title"
    assert item.created_at == now
    assert item.score == 7
    assert item.comment_count == 0
    assert item.canonical_url == "https://x.test/a"
    assert normalize_item(RawItem(source="hn", post_id="", title="x"), now) is None


@pytest.mark.asyncio
async def test_collect_inserts_and_persists_state(store, tmp_path, now) -> None:
    """Test items are stored and the state cursor and validators are written."""
    fake = FakeCollector("hn", [_raw("hn", 1), _raw("hn", 2)], patch={"lastSeenId": 2})
    collector = _collector(store, tmp_path, [fake], [SourceConfig(id="hn")], etag='"e1"')

    summary = await collector.collect(now=now)

    assert summary.inserted_total == 2
    assert summary.per_source[0].ok
    assert summary.per_source[0].bytes == 100
    assert summary.global_bytes_used == 100
    assert store.counts()["items"] == 2

    state = FetchStateStore(tmp_path / "fetch.json").read().sources["hn"]
    assert state.last_run_at == now
    assert state.cursor == {"lastSeenId": 2}
    assert state.validators == {"hn:feed": {"etag": '"e1"'}}
    assert state.last_error is None


@pytest.mark.asyncio
async def test_duplicates_across_sources_are_counted(store, tmp_path, now) -> None:
    """Test the fingerprint set dedups the same URL from two sources."""
    shared = "https://news.test/shared"
    hn = FakeCollector("hn", [_raw("hn", 1, url=shared)])
    reddit = FakeCollector("reddit", [_raw("reddit", 9, url=shared), _raw("reddit", 10)])
    collector = _collector(store, tmp_path, [hn, reddit], [SourceConfig(id="hn"), SourceConfig(id="reddit")])

    summary = await collector.collect(now=now)

    assert summary.inserted_total == 2
    assert summary.duplicate_total == 1
    assert summary.per_source[1].duplicates == 1


@pytest.mark.asyncio
async def test_poll_interval_skips_recent_sources(store, tmp_path, now) -> None:
    """Test a source polled inside its interval is skipped unless forced."""
    FetchStateStore(tmp_path / "fetch.json").write(
        FetchState(sources={"hn": SourceState(last_run_at=now - timedelta(minutes=5))})
    )
    fake = FakeCollector("hn", [_raw("hn", 1)])
    collector = _collector(store, tmp_path, [fake], [SourceConfig(id="hn", poll_minutes=30)])

    summary = await collector.collect(now=now)
    assert summary.skipped_by_poll == 1
    assert summary.per_source[0].reason == "poll_interval"
    assert fake.calls == 0

    forced = await collector.collect(now=now, force=True)
    assert forced.inserted_total == 1
    assert fake.calls == 1


@pytest.mark.asyncio
async def test_repeated_not_modified_runs_cost_nothing(store, tmp_path, now) -> None:
    """Test stored validators are sent back and 304 replies use no budget."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("If-None-Match"))
        if request.headers.get("If-None-Match") == '"e1"':
            return httpx.Response(304)
        return httpx.Response(200, content=b"x" * 100, headers={"ETag": '"e1"'})

    collector = _collector(store, tmp_path, [FakeCollector("hn")], [SourceConfig(id="hn")])
    collector.client_factory = lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))

    first = await collector.collect(now=now, force=True)
    second = await collector.collect(now=now + timedelta(minutes=1), force=True)
    third = await collector.collect(now=now + timedelta(minutes=2), force=True)

    assert seen == [None, '"e1"', '"e1"']
    assert [first.global_bytes_used, second.global_bytes_used, third.global_bytes_used] == [100, 0, 0]
    assert third.per_source[0].ok
    state = FetchStateStore(tmp_path / "fetch.json").read().sources["hn"]
    assert state.validators == {"hn:feed": {"etag": '"e1"'}}


@pytest.mark.asyncio
async def test_soft_skip_and_failure_are_isolated(store, tmp_path, now) -> None:
    """Test a skipped or failing source does not stop the next one."""
    skipped = FakeCollector("producthunt", error=SourceSkipped("collector_skipped_missing_api_token"))
    broken = FakeCollector("qiita", error=RuntimeError("boom"))
    healthy = FakeCollector("hn", [_raw("hn", 1)])
    collector = _collector(
        store, tmp_path, [skipped, broken, healthy],
        [SourceConfig(id="producthunt"), SourceConfig(id="qiita"), SourceConfig(id="hn")],
    )

    summary = await collector.collect(now=now)
    by_id = {r.id: r for r in summary.per_source}

    assert by_id["producthunt"].ok and by_id["producthunt"].skipped
    assert by_id["producthunt"].reason == "collector_skipped_missing_api_token"
    assert not by_id["qiita"].ok
    assert by_id["qiita"].error == "boom"
    assert by_id["hn"].inserted == 1

    state = FetchStateStore(tmp_path / "fetch.json").read()
    assert state.sources["qiita"].last_error == "boom"
    assert state.sources["qiita"].last_run_at == now


@pytest.mark.asyncio
async def test_global_budget_overflow_stops_the_run(store, tmp_path, now) -> None:
    """Test the run stops at the first source that would cross the global ceiling."""
    first = FakeCollector("hn", [_raw("hn", 1)], path="/a")
    second = FakeCollector("reddit", [_raw("reddit", 1)], path="/b")
    third = FakeCollector("zenn", [_raw("zenn", 1)], path="/c")
    collector = _collector(
        store, tmp_path, [first, second, third],
        [SourceConfig(id="hn"), SourceConfig(id="reddit"), SourceConfig(id="zenn")],
        sizes={"/a": 8000, "/b": 7000, "/c": 10},
        budget=12000,
    )

    summary = await collector.collect(now=now)

    assert [r.id for r in summary.per_source] == ["hn", "reddit"]
    assert summary.per_source[1].reason == "budget_exceeded"
    assert summary.global_bytes_used == 8000
    assert third.calls == 0
    assert store.counts()["items"] == 1


@pytest.mark.asyncio
async def test_dry_run_writes_nothing(store, tmp_path, now) -> None:
    """Test dry runs count inserts without touching the db or state file."""
    fake = FakeCollector("hn", [_raw("hn", 1), _raw("hn", 2)])
    collector = _collector(store, tmp_path, [fake], [SourceConfig(id="hn")])

    summary = await collector.collect(now=now, dry_run=True)

    assert summary.dry_run
    assert summary.inserted_total == 2
    assert store.counts()["items"] == 0
    assert not (tmp_path / "fetch.json").exists()


@pytest.mark.asyncio
async def test_item_cap_and_disabled_sources(store, tmp_path, now) -> None:
    """Test maxItems caps each source and disabled sources are not run."""
    capped = FakeCollector("hn", [_raw("hn", n) for n in range(5)])
    disabled = FakeCollector("reddit", [_raw("reddit", 1)])
    collector = _collector(
        store, tmp_path, [capped, disabled],
        [SourceConfig(id="hn", max_items=2), SourceConfig(id="reddit", enabled=False)],
    )

    summary = await collector.collect(now=now)

    assert summary.enabled_sources == 1
    assert summary.inserted_total == 2
    assert disabled.calls == 0
