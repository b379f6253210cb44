"""Product Hunt launches from the public Atom feed."""

from trend_monitor.adapters.sources.feeds import hash_like, parse_atom_entries, to_snippet
from trend_monitor.core.entities import RawItem
from trend_monitor.core.interfaces import CollectContext, CollectResult, SourceCollector

FEED_URL = "https://www.producthunt.com/feed"


class ProductHuntCollector(SourceCollector):
    source_id = "producthunt"

    async def collect(self, ctx: CollectContext) -> CollectResult:
        target = max(1, min(ctx.max_items, 20))
        response = await ctx.http.get_text(FEED_URL, cache_key=f"producthunt:feed:{target}")
        if response.not_modified:
            return CollectResult()

        items: list[RawItem] = []
        seen: set[str] = set()
        for entry in parse_atom_entries(response.data, target):
            title = entry["title"].strip()
            post_id = entry["id"].strip() or hash_like(f"{entry['link']}:{title}")
            if not title or post_id in seen:
                continue
            seen.add(post_id)
            items.append(RawItem(
                source="producthunt",
                community="producthunt:feed",
                post_id=post_id,
                title=title,
                body=to_snippet(entry["content"]),
                author=entry["author"],
                created_at=entry["published"],
                url=entry["link"],
            ))

        return CollectResult(items=items)
