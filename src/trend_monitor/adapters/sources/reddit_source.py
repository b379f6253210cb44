"""Reddit source: OAuth JSON listing when credentials exist, Atom RSS otherwise."""

import os
from typing import Any, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from trend_monitor.adapters.sources.feeds import hash_like, parse_atom_entries, per_bucket, to_int, to_snippet
from trend_monitor.core.entities import RawItem
from trend_monitor.core.interfaces import CollectContext, CollectResult, SourceCollector

DEFAULT_SUBREDDITS = ["technology", "programming", "MachineLearning", "artificial", "opensource"]
TOKEN_URL = "https://www.reddit.com/api/v1/access_token"


def _post_url(data: dict[str, Any]) -> str:
    explicit = str(data.get("url_overridden_by_dest") or data.get("url") or "").strip()
    if explicit.lower().startswith(("http://", "https://")):
        return explicit
    permalink = str(data.get("permalink") or "").strip()
    return f"https://www.reddit.com{permalink}" if permalink else ""


class RedditCollector(SourceCollector):
    """Collect subreddit listings."""

    source_id = "reddit"

    def __init__(self, env: Optional[dict[str, str]] = None) -> None:
        self.env = os.environ if env is None else env

    async def _access_token(self, explicit: Optional[str], user_agent: str) -> str:
        """Client-credentials token; the token call is not part of the byte budget."""
        if explicit:
            return str(explicit).strip()
        client_id = self.env.get("REDDIT_CLIENT_ID", "").strip()
        client_secret = self.env.get("REDDIT_CLIENT_SECRET", "").strip()
        if not client_id or not client_secret:
            return ""

        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.post(
                TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=(client_id, client_secret),
                headers={"User-Agent": user_agent},
            )
            response.raise_for_status()
            return str(response.json().get("access_token") or "").strip()

    async def collect(self, ctx: CollectContext) -> CollectResult:
        subreddits = ctx.source.option("subreddits") or DEFAULT_SUBREDDITS
        target = max(1, ctx.max_items)
        per_subreddit = per_bucket(ctx.source.option("perSubreddit"), target, len(subreddits), 10)
        feed_type = str(ctx.source.option("feedType", "hot")).lower()
        if feed_type not in {"hot", "new", "top"}:
            feed_type = "hot"
        user_agent = self.env.get("REDDIT_USER_AGENT", "") or ctx.source.option("userAgent", "trend-monitor/0.1")

        try:
            token = await self._access_token(ctx.source.option("oauthToken"), user_agent)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"reddit: OAuth token unavailable, using RSS: {e}")
            token = ""

        items: list[RawItem] = []
        seen: set[str] = set()

        for subreddit in subreddits:
            if len(items) >= target:
                break

            if token:
                try:
                    await self._collect_oauth(ctx, subreddit, feed_type, per_subreddit, token, user_agent, target, items, seen)
                    continue
                except httpx.HTTPError as e:
                    logger.warning(f"reddit: OAuth listing failed for r/{subreddit}, switching to RSS: {e}")
                    token = ""

            await self._collect_rss(ctx, subreddit, feed_type, per_subreddit, user_agent, target, items, seen)

        return CollectResult(items=items)

    async def _collect_oauth(
        self,
        ctx: CollectContext,
        subreddit: str,
        feed_type: str,
        limit: int,
        token: str,
        user_agent: str,
        target: int,
        items: list[RawItem],
        seen: set[str],
    ) -> None:
        response = await ctx.http.get_json(
            f"https://oauth.reddit.com/r/{quote(subreddit)}/{feed_type}",
            params={"limit": limit, "raw_json": 1},
            cache_key=f"reddit:{subreddit}",
            headers={"Authorization": f"Bearer {token}", "User-Agent": user_agent},
        )
        if response.not_modified or not isinstance(response.data, dict):
            return

        for child in (response.data.get("data") or {}).get("children") or []:
            if len(items) >= target:
                break
            data = child.get("data") if isinstance(child, dict) else None
            if not data:
                continue
            post_id = str(data.get("name") or data.get("id") or "").strip()
            title = str(data.get("title") or "").strip()
            if not post_id or not title or post_id in seen:
                continue
            seen.add(post_id)

            items.append(RawItem(
                source="reddit",
                community=f"reddit:r/{str(data.get('subreddit') or subreddit).strip()}",
                post_id=post_id,
                title=title,
                body=to_snippet(data.get("selftext")),
                comments_text=to_snippet(data.get("link_flair_text"), 100),
                author=str(data.get("author") or ""),
                created_at=data.get("created_utc") or data.get("created"),
                score=to_int(data.get("score")),
                comments=to_int(data.get("num_comments")),
                url=_post_url(data),
            ))

    async def _collect_rss(
        self,
        ctx: CollectContext,
        subreddit: str,
        feed_type: str,
        limit: int,
        user_agent: str,
        target: int,
        items: list[RawItem],
        seen: set[str],
    ) -> None:
        response = await ctx.http.get_text(
            f"https://www.reddit.com/r/{quote(subreddit)}/{feed_type}/.rss",
            params={"limit": limit},
            cache_key=f"reddit:rss:{subreddit}",
            headers={
                "Accept": "application/atom+xml,application/xml,text/xml;q=0.9,*/*;q=0.8",
                "User-Agent": user_agent,
            },
        )
        if response.not_modified:
            return

        for entry in parse_atom_entries(response.data, limit):
            if len(items) >= target:
                break
            title = entry["title"].strip()
            post_id = entry["id"].strip() or hash_like(f"{entry['link']}:{title}")
            if not title or post_id in seen:
                continue
            seen.add(post_id)

            items.append(RawItem(
                source="reddit",
                community=f"reddit:r/{subreddit.strip()}",
                post_id=post_id,
                title=title,
                body=to_snippet(entry["content"]),
                author=entry["author"].removeprefix("/u/"),
                created_at=entry["published"],
                url=entry["link"],
            ))
