"""GitHub trending proxy: recently created repositories sorted by stars."""

import os
from datetime import timedelta
from typing import Optional

import httpx

from trend_monitor.adapters.sources.feeds import to_int, to_snippet
from trend_monitor.core.entities import RawItem
from trend_monitor.core.errors import SourceSkipped
from trend_monitor.core.interfaces import CollectContext, CollectResult, SourceCollector

SEARCH_URL = "https://api.github.com/search/repositories"


class GitHubTrendingCollector(SourceCollector):
    """Search API stand-in for the trending page."""

    source_id = "github_trending"

    def __init__(self, token: Optional[str] = None) -> None:
        self.token = token if token is not None else os.getenv("GITHUB_TOKEN", "").strip()

    async def collect(self, ctx: CollectContext) -> CollectResult:
        target = max(1, min(ctx.max_items, 50))
        days_window = max(1, to_int(ctx.source.option("createdDaysWindow", 7)))
        min_stars = max(0, to_int(ctx.source.option("minStars", 50)))
        extra_query = str(ctx.source.option("query", "")).strip()
        created_since = (ctx.now - timedelta(days=days_window)).strftime("%Y-%m-%d")

        query_parts = [f"created:>={created_since}"]
        if min_stars > 0:
            query_parts.append(f"stars:>={min_stars}")
        if extra_query:
            query_parts.append(extra_query)

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = await ctx.http.get_json(
                SEARCH_URL,
                params={"q": " ".join(query_parts), "sort": "stars", "order": "desc", "per_page": target},
                cache_key=f"github_trending:{created_since}:{min_stars}:{extra_query}",
                headers=headers,
            )
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (403, 429):
                raise SourceSkipped("rate_limited") from e
            raise

        if response.not_modified or not isinstance(response.data, dict):
            return CollectResult()

        items: list[RawItem] = []
        seen: set[str] = set()
        for repo in response.data.get("items") or []:
            if len(items) >= target:
                break
            post_id = str(repo.get("id") or "").strip()
            title = str(repo.get("full_name") or "").strip()
            if not post_id or not title or post_id in seen:
                continue
            seen.add(post_id)

            tags = []
            if repo.get("language"):
                tags.append(f"lang:{repo['language']}")
            tags.extend(str(t).strip() for t in repo.get("topics") or [] if t)

            items.append(RawItem(
                source="github_trending",
                community="github:trending-proxy",
                post_id=post_id,
                title=title,
                body=to_snippet(repo.get("description")),
                comments_text=", ".join(tags),
                author=str((repo.get("owner") or {}).get("login") or ""),
                created_at=repo.get("created_at") or repo.get("updated_at"),
                score=to_int(repo.get("stargazers_count")),
                comments=to_int(repo.get("open_issues_count")),
                url=str(repo.get("html_url") or "").strip(),
            ))

        return CollectResult(items=items)
