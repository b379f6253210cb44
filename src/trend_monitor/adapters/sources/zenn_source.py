"""Zenn topic RSS feeds."""

from urllib.parse import quote

from trend_monitor.adapters.sources.feeds import hash_like, parse_rss_items, per_bucket, to_snippet
from trend_monitor.core.entities import RawItem
from trend_monitor.core.interfaces import CollectContext, CollectResult, SourceCollector

DEFAULT_TOPICS = ["ai", "llm", "openai", "claude"]


class ZennCollector(SourceCollector):
    source_id = "zenn"

    async def collect(self, ctx: CollectContext) -> CollectResult:
        topics = ctx.source.option("topics") or DEFAULT_TOPICS
        target = max(1, ctx.max_items)
        per_topic = per_bucket(ctx.source.option("perTopic"), target, len(topics), 4)

        items: list[RawItem] = []
        seen: set[str] = set()
        for topic in topics:
            if len(items) >= target:
                break
            response = await ctx.http.get_text(
                f"https://zenn.dev/topics/{quote(topic)}/feed",
                cache_key=f"zenn:topic:{topic}",
            )
            if response.not_modified:
                continue

            for entry in parse_rss_items(response.data, per_topic):
                if len(items) >= target:
                    break
                post_id = hash_like(entry["link"] or f"{topic}:{entry['title']}")
                if post_id in seen:
                    continue
                seen.add(post_id)
                items.append(RawItem(
                    source="zenn",
                    community=f"zenn:{topic}",
                    post_id=post_id,
                    title=entry["title"],
                    body=to_snippet(entry["description"]),
                    author=entry["author"],
                    created_at=entry["pub_date"],
                    url=entry["link"],
                ))

        return CollectResult(items=items)
