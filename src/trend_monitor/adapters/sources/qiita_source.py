"""Qiita items by tag."""

from trend_monitor.adapters.sources.feeds import per_bucket, to_int, to_snippet
from trend_monitor.core.entities import RawItem
from trend_monitor.core.interfaces import CollectContext, CollectResult, SourceCollector

DEFAULT_TAGS = ["ai", "llm", "python"]


class QiitaCollector(SourceCollector):
    source_id = "qiita"

    async def collect(self, ctx: CollectContext) -> CollectResult:
        tags = ctx.source.option("tags") or DEFAULT_TAGS
        target = max(1, ctx.max_items)
        per_tag = per_bucket(ctx.source.option("perTag", 1), target, len(tags), 2)

        items: list[RawItem] = []
        seen: set[str] = set()
        for tag in tags:
            if len(items) >= target:
                break
            response = await ctx.http.get_json(
                "https://qiita.com/api/v2/items",
                params={"query": f"tag:{tag}", "page": 1, "per_page": per_tag},
                cache_key=f"qiita:tag:{tag}",
            )
            if response.not_modified or not isinstance(response.data, list):
                continue

            for row in response.data:
                if len(items) >= target:
                    break
                post_id = str(row.get("id") or "")
                if not post_id or post_id in seen:
                    continue
                seen.add(post_id)
                user = row.get("user") or {}
                items.append(RawItem(
                    source="qiita",
                    community=f"qiita:{tag}",
                    post_id=post_id,
                    title=str(row.get("title") or "").strip(),
                    body=to_snippet(row.get("body") or row.get("rendered_body") or row.get("title")),
                    comments_text=", ".join(t.get("name", "") for t in row.get("tags") or [] if isinstance(t, dict)),
                    author=str(user.get("id") or user.get("name") or ""),
                    created_at=row.get("created_at"),
                    score=to_int(row.get("likes_count")),
                    comments=to_int(row.get("comments_count")),
                    url=str(row.get("url") or "").strip(),
                ))

        return CollectResult(items=items)
