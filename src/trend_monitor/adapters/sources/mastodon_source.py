"""Mastodon hashtag timelines."""

from urllib.parse import quote

from trend_monitor.adapters.sources.feeds import per_bucket, strip_html, to_int, to_snippet
from trend_monitor.core.entities import RawItem
from trend_monitor.core.interfaces import CollectContext, CollectResult, SourceCollector

DEFAULT_HASHTAGS = ["ai", "llm", "vibecoding", "cursor"]


class MastodonCollector(SourceCollector):
    source_id = "mastodon"

    async def collect(self, ctx: CollectContext) -> CollectResult:
        instance = str(ctx.source.option("instance", "mastodon.social")).strip()
        hashtags = ctx.source.option("hashtags") or DEFAULT_HASHTAGS
        target = max(1, ctx.max_items)
        per_tag = per_bucket(ctx.source.option("perTag"), target, len(hashtags), 5)

        items: list[RawItem] = []
        seen: set[str] = set()
        for tag in hashtags:
            if len(items) >= target:
                break
            response = await ctx.http.get_json(
                f"https://{instance}/api/v1/timelines/tag/{quote(tag)}",
                params={"limit": per_tag},
                cache_key=f"mastodon:{instance}:{tag}",
            )
            if response.not_modified or not isinstance(response.data, list):
                continue

            for status in response.data:
                if len(items) >= target:
                    break
                post_id = str(status.get("id") or "")
                if not post_id or post_id in seen:
                    continue
                seen.add(post_id)
                content = strip_html(status.get("content"))
                account = status.get("account") or {}
                items.append(RawItem(
                    source="mastodon",
                    community=f"mastodon:{tag}",
                    post_id=post_id,
                    title=to_snippet(content, 120) or f"#{tag}",
                    body=to_snippet(content),
                    comments_text=", ".join(t.get("name", "") for t in status.get("tags") or [] if isinstance(t, dict)),
                    author=str(account.get("username") or account.get("acct") or ""),
                    created_at=status.get("created_at"),
                    score=to_int(status.get("favourites_count")) + to_int(status.get("reblogs_count")),
                    comments=to_int(status.get("replies_count")),
                    url=str(status.get("url") or "").strip(),
                ))

        return CollectResult(items=items)
