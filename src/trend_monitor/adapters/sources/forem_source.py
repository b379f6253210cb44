"""dev.to (Forem) articles by tag."""

from trend_monitor.adapters.sources.feeds import per_bucket, to_int, to_snippet
from trend_monitor.core.entities import RawItem
from trend_monitor.core.interfaces import CollectContext, CollectResult, SourceCollector

DEFAULT_TAGS = ["ai", "vibecoding", "cursor", "windsurf", "lovable"]


class ForemCollector(SourceCollector):
    source_id = "forem"

    async def collect(self, ctx: CollectContext) -> CollectResult:
        tags = ctx.source.option("tags") or DEFAULT_TAGS
        target = max(1, ctx.max_items)
        per_tag = per_bucket(ctx.source.option("perTag"), target, len(tags), 6)

        items: list[RawItem] = []
        seen: set[str] = set()
        for tag in tags:
            if len(items) >= target:
                break
            response = await ctx.http.get_json(
                "https://dev.to/api/articles",
                params={"tag": tag, "per_page": per_tag, "top": 7},
                cache_key=f"forem:tag:{tag}",
            )
            if response.not_modified or not isinstance(response.data, list):
                continue

            for article in response.data:
                if len(items) >= target:
                    break
                post_id = str(article.get("id") or "")
                if not post_id or post_id in seen:
                    continue
                seen.add(post_id)
                tag_list = article.get("tag_list")
                items.append(RawItem(
                    source="forem",
                    community=f"dev.to/{tag}",
                    post_id=post_id,
                    title=str(article.get("title") or "").strip(),
                    body=to_snippet(article.get("description")),
                    comments_text=", ".join(tag_list) if isinstance(tag_list, list) else "",
                    author=str((article.get("user") or {}).get("name") or ""),
                    created_at=article.get("published_at") or article.get("created_at"),
                    score=to_int(article.get("positive_reactions_count") or article.get("public_reactions_count")),
                    comments=to_int(article.get("comments_count")),
                    url=str(article.get("canonical_url") or article.get("url") or "").strip(),
                ))

        return CollectResult(items=items)
