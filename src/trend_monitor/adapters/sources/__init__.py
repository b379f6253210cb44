"""Source adapters for collecting raw items, registered by source id."""

from typing import Optional

from trend_monitor.adapters.sources.forem_source import ForemCollector
from trend_monitor.adapters.sources.github_source import GitHubTrendingCollector
from trend_monitor.adapters.sources.hn_source import HackerNewsCollector
from trend_monitor.adapters.sources.mastodon_source import MastodonCollector
from trend_monitor.adapters.sources.producthunt_source import ProductHuntCollector
from trend_monitor.adapters.sources.qiita_source import QiitaCollector
from trend_monitor.adapters.sources.reddit_source import RedditCollector
from trend_monitor.adapters.sources.stackexchange_source import StackExchangeCollector
from trend_monitor.adapters.sources.zenn_source import ZennCollector
from trend_monitor.core.errors import UnknownSourceError
from trend_monitor.core.interfaces import SourceCollector

SOURCE_COLLECTORS: dict[str, type[SourceCollector]] = {
    cls.source_id: cls
    for cls in (
        HackerNewsCollector,
        RedditCollector,
        GitHubTrendingCollector,
        ForemCollector,
        QiitaCollector,
        ZennCollector,
        MastodonCollector,
        StackExchangeCollector,
        ProductHuntCollector,
    )
}


class SourceRegistry:
    """Lookup table from source id to a collector instance."""

    def __init__(self, collectors: Optional[dict[str, SourceCollector]] = None) -> None:
        self._collectors: dict[str, SourceCollector] = dict(collectors or {})

    @classmethod
    def default(cls) -> "SourceRegistry":
        return cls({source_id: collector_cls() for source_id, collector_cls in SOURCE_COLLECTORS.items()})

    def get(self, source_id: str) -> SourceCollector:
        try:
            return self._collectors[source_id]
        except KeyError:
            raise UnknownSourceError(source_id) from None

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._collectors


__all__ = [
    "SOURCE_COLLECTORS",
    "SourceRegistry",
    "ForemCollector",
    "GitHubTrendingCollector",
    "HackerNewsCollector",
    "MastodonCollector",
    "ProductHuntCollector",
    "QiitaCollector",
    "RedditCollector",
    "StackExchangeCollector",
    "ZennCollector",
]
