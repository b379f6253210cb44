"""StackExchange questions by tag."""

from datetime import timedelta

from trend_monitor.adapters.sources.feeds import to_int, to_snippet
from trend_monitor.core.entities import RawItem
from trend_monitor.core.interfaces import CollectContext, CollectResult, SourceCollector

DEFAULT_TAGGED = ["artificial-intelligence", "large-language-model"]
# Overlap with the previous run so late-indexed questions are not missed
FROMDATE_OVERLAP = timedelta(minutes=30)


class StackExchangeCollector(SourceCollector):
    source_id = "stackexchange"

    async def collect(self, ctx: CollectContext) -> CollectResult:
        site = str(ctx.source.option("site", "stackoverflow")).strip()
        tagged = ctx.source.option("tagged") or DEFAULT_TAGGED
        target = max(1, min(ctx.max_items, 20))

        params = {
            "order": "desc",
            "sort": "creation",
            "site": site,
            "pagesize": target,
            "tagged": ";".join(tagged),
        }
        if ctx.state.last_run_at is not None:
            params["fromdate"] = max(0, int((ctx.state.last_run_at - FROMDATE_OVERLAP).timestamp()))

        response = await ctx.http.get_json(
            "https://api.stackexchange.com/2.3/questions",
            params=params,
            cache_key=f"stackexchange:{site}:{';'.join(tagged)}",
        )
        if response.not_modified or not isinstance(response.data, dict):
            return CollectResult()

        items: list[RawItem] = []
        for question in (response.data.get("items") or [])[:target]:
            post_id = str(question.get("question_id") or "")
            title = str(question.get("title") or "").strip()
            if not post_id or not title:
                continue
            items.append(RawItem(
                source="stackexchange",
                community=f"stackexchange:{site}",
                post_id=post_id,
                title=title,
                body=to_snippet(", ".join(question.get("tags") or [])),
                author=str((question.get("owner") or {}).get("display_name") or ""),
                created_at=question.get("creation_date"),
                score=to_int(question.get("score")),
                comments=to_int(question.get("answer_count")),
                url=str(question.get("link") or "").strip(),
            ))

        return CollectResult(items=items)
