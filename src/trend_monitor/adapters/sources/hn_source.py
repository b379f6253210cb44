"""Hacker News source (Firebase API)."""

from trend_monitor.adapters.sources.feeds import to_int, to_snippet
from trend_monitor.core.entities import RawItem
from trend_monitor.core.interfaces import CollectContext, CollectResult, SourceCollector

API_BASE = "https://hacker-news.firebaseio.com/v0"


def _item_url(url: str, item_id: int) -> str:
    if url and url.lower().startswith(("http://", "https://")):
        return url
    return f"https://news.ycombinator.com/item?id={item_id}"


class HackerNewsCollector(SourceCollector):
    """Fetch new stories, skipping ids at or below the stored ``lastSeenId``."""

    source_id = "hn"

    async def collect(self, ctx: CollectContext) -> CollectResult:
        feeds = ctx.source.option("feeds") or ["topstories", "newstories"]
        target = max(1, ctx.max_items)
        last_seen_id = to_int(ctx.state.cursor.get("lastSeenId"))
        max_seen_id = last_seen_id

        items: list[RawItem] = []
        seen_ids: set[int] = set()

        for feed in feeds:
            if len(items) >= target:
                break
            listing = await ctx.http.get_json(f"{API_BASE}/{feed}.json", cache_key=f"hn:{feed}")
            if listing.not_modified or not isinstance(listing.data, list):
                continue

            for story_id in listing.data:
                if len(items) >= target:
                    break
                story_id = to_int(story_id)
                if not story_id or story_id in seen_ids:
                    continue
                seen_ids.add(story_id)
                if last_seen_id and story_id <= last_seen_id:
                    continue

                response = await ctx.http.get_json(f"{API_BASE}/item/{story_id}.json", cache_key=f"hn:item:{story_id}")
                story = response.data
                if response.not_modified or not isinstance(story, dict):
                    continue
                if story.get("deleted") or story.get("dead") or not story.get("title"):
                    continue
                if story.get("type") and story["type"] != "story":
                    continue

                max_seen_id = max(max_seen_id, to_int(story.get("id")))
                items.append(RawItem(
                    source="hn",
                    community="hackernews",
                    post_id=str(story["id"]),
                    title=str(story["title"]).strip(),
                    body=to_snippet(story.get("text")),
                    author=str(story.get("by") or ""),
                    created_at=story.get("time"),
                    score=to_int(story.get("score")),
                    comments=to_int(story.get("descendants")),
                    url=_item_url(str(story.get("url") or ""), story["id"]),
                ))

        return CollectResult(items=items, state_patch={"lastSeenId": max_seen_id or None})
