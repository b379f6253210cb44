"""Digest orchestration: collect, score, select, write (or fall back), deliver, persist."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from loguru import logger

from trend_monitor.adapters.digest.template_digest import (
    DigestPayload,
    build_digest_payload,
    build_event_text,
    build_interest_keywords,
    build_writer_fallback_alert,
    build_writer_prompt,
    fnv1a_hash,
)
from trend_monitor.adapters.llm.writer_client import DigestWriterClient, WriterOutput
from trend_monitor.adapters.notifications.delivery import DeliveryChain
from trend_monitor.adapters.storage.sqlite_store import NewsStore
from trend_monitor.config import NewsConfig
from trend_monitor.core.digest_state import DigestStateStore, previous_if_fresh
from trend_monitor.core.entities import (
    CollectRunSummary,
    DeliveryResult,
    DigestState,
    Trend,
    TrendScanResult,
    WriterExecution,
    to_jsonable,
)
from trend_monitor.core.errors import ErrorCode
from trend_monitor.core.outcome import Fallback, Ok, Strategy, run_chain
from trend_monitor.core.timeutils import utc_now
from trend_monitor.use_cases.alerts import AlertEvaluator
from trend_monitor.use_cases.collector import Collector
from trend_monitor.use_cases.trends import TrendEngine

DIGEST_LOOKBACK = timedelta(hours=24)
DIGEST_TREND_LIMIT = 50
DIGEST_RECENT_ITEMS = 5
EVENT_MIN_LOOKBACK_MINUTES = 180
EVENT_TREND_LIMIT = 20


@dataclass
class PipelineResult:
    """COLLECT and SCORE stage results; None when the stage was skipped."""

    collect: Optional[CollectRunSummary] = None
    trends: Optional[TrendScanResult] = None


@dataclass
class WriterFallbackAlert:
    """Operator notice sent when the writer did not produce the digest."""

    attempted: bool = False
    sent: bool = False
    message: str = ""
    delivery: Optional[DeliveryResult] = None


@dataclass
class DigestRunResult:
    success: bool
    action: str
    generated_at: datetime
    digest_text: str
    writer_execution: WriterExecution
    delivery: DeliveryResult
    writer_fallback_alert: WriterFallbackAlert = field(default_factory=WriterFallbackAlert)
    digest_meta: dict[str, Any] = field(default_factory=dict)
    pipeline: PipelineResult = field(default_factory=PipelineResult)
    error_code: Optional[str] = None
    reply: str = ""

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)


@dataclass
class EventRunResult:
    success: bool
    triggered: int
    events: list[Trend]
    alert_ids: list[int] = field(default_factory=list)
    delivery: DeliveryResult = field(default_factory=lambda: DeliveryResult(requested=False))
    pipeline: PipelineResult = field(default_factory=PipelineResult)
    error_code: Optional[str] = None
    reply: str = ""

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)


class DigestOrchestrator:
    """One sequential digest (or event) run over the shared store and state files."""

    def __init__(
        self,
        store: NewsStore,
        config: NewsConfig,
        collector: Collector,
        engine: TrendEngine,
        writer: DigestWriterClient,
        digest_state: DigestStateStore,
        delivery: Optional[DeliveryChain] = None,
    ) -> None:
        self.store = store
        self.config = config
        self.collector = collector
        self.engine = engine
        self.writer = writer
        self.digest_state = digest_state
        self.delivery = delivery

    async def run_pipeline(
        self,
        *,
        skip_collect: bool = False,
        skip_trend: bool = False,
        force: bool = False,
        window_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> PipelineResult:
        """COLLECT then SCORE; each stage finishes before the next reads the store."""
        result = PipelineResult()
        if not skip_collect:
            result.collect = await self.collector.collect(force=force, now=now)
        if not skip_trend:
            self.store.ensure_keywords(self.config.keywords)
            result.trends = self.engine.scan(window_minutes or self.config.thresholds.window_minutes, now=now)
        return result

    async def _deliver(self, text: str) -> DeliveryResult:
        if self.delivery is None:
            return DeliveryResult(requested=True, direct_reason="delivery_unconfigured")
        return await self.delivery.deliver(text)

    async def _write(self, payload: DigestPayload, prompt: str) -> WriterOutput:
        """WRITE with the external writer, FALLBACK to the template text."""
        policy = self.config.digest_policy
        stage = policy.model_stages["write"]

        async def external() -> Union[Ok[WriterOutput], Fallback]:
            try:
                return await self.writer.generate(
                    prompt, stage, policy.writer_timeout_seconds, enabled=policy.model_writer_enabled
                )
            except OSError as e:
                logger.warning(f"Digest writer unavailable: {e}")
                return Fallback("writer_failed", {"mode": "fallback", "error": str(e)})

        async def template() -> Ok[WriterOutput]:
            return Ok(WriterOutput(
                text=payload.text,
                execution=WriterExecution(
                    ok=False, mode="fallback", model=stage.model, alias=stage.alias, reasoning=stage.reasoning
                ),
            ))

        chain = await run_chain([Strategy("writer", external), Strategy("template", template)])
        output = chain.outcome.value
        fallback = chain.first_fallback
        if chain.winner == "template" and fallback is not None:
            output.execution.reason = fallback.reason
            output.execution.mode = str(fallback.detail.get("mode") or "fallback")
            output.execution.backend = str(fallback.detail.get("backend") or "")
            logger.warning(f"Digest writer fell back to template: {fallback.reason}")
        return output

    async def run(
        self,
        *,
        enqueue: bool = False,
        skip_collect: bool = False,
        skip_trend: bool = False,
        force: bool = False,
        window_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> DigestRunResult:
        """Build the digest and, when ``enqueue`` is set, deliver it.

        Digest state is overwritten whatever the delivery outcome. A failed
        requested delivery is reported with ``NEWS_TELEGRAM_DELIVERY_FAILED``
        and the digest text is still returned.
        """
        pipeline = await self.run_pipeline(
            skip_collect=skip_collect, skip_trend=skip_trend, force=force, window_minutes=window_minutes, now=now
        )
        generated_at = now or utc_now()
        policy = self.config.digest_policy

        # SELECT
        since = generated_at - DIGEST_LOOKBACK
        trends = self.store.recent_trends(limit=DIGEST_TREND_LIMIT, since=since)
        recent_items = self.store.recent_items(limit=DIGEST_RECENT_ITEMS, since=since)
        previous = previous_if_fresh(self.digest_state.read(), policy.similarity_lookback_hours, generated_at)
        interests = build_interest_keywords(self.config, trends, recent_items)
        payload = build_digest_payload(trends, recent_items, generated_at, policy, previous, interests)

        # WRITE | FALLBACK
        prompt = build_writer_prompt(payload, recent_items, interests, previous)
        output = await self._write(payload, prompt)
        digest_text = output.text

        # DELIVER
        alert = WriterFallbackAlert()
        if enqueue and not output.execution.ok:
            message = build_writer_fallback_alert(
                output.execution.reason or "unknown",
                output.execution.backend,
                policy.model_stages["write"],
                generated_at,
                policy.tz,
            )
            alert_delivery = await self._deliver(message)
            alert = WriterFallbackAlert(
                attempted=True, sent=alert_delivery.delivered, message=message, delivery=alert_delivery
            )

        if enqueue:
            delivery = await self._deliver(digest_text)
        else:
            delivery = DeliveryResult(requested=False, direct_reason="enqueue_disabled")

        # PERSIST_STATE
        self.digest_state.write(DigestState(
            updated_at=utc_now(),
            last_digest_at=generated_at,
            last_digest_hash=str(fnv1a_hash(digest_text)),
            last_digest_keywords=payload.top_keywords,
            last_repeated_keywords=payload.repeated_keywords,
            last_personalized_keywords=payload.personalized_keywords,
            last_digest_trends=payload.snapshots(),
        ))

        result = DigestRunResult(
            success=True,
            action="send" if enqueue else "digest",
            generated_at=generated_at,
            digest_text=digest_text,
            writer_execution=output.execution,
            delivery=delivery,
            writer_fallback_alert=alert,
            digest_meta=payload.meta(),
            pipeline=pipeline,
            reply=digest_text,
        )
        if enqueue and not delivery.delivered:
            logger.error(f"Digest delivery failed: {delivery.direct_reason}")
            result.success = False
            result.error_code = ErrorCode.DELIVERY_FAILED
            result.reply = f"Tech trend report delivery failed: {delivery.direct_reason or 'unknown'}"
        return result

    async def run_event(
        self,
        *,
        enqueue: bool = False,
        skip_collect: bool = False,
        skip_trend: bool = False,
        force: bool = False,
        window_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> EventRunResult:
        """Run the pipeline, evaluate alerts and deliver the hot-event text if any fired."""
        pipeline = await self.run_pipeline(
            skip_collect=skip_collect, skip_trend=skip_trend, force=force, window_minutes=window_minutes, now=now
        )
        window = window_minutes or self.config.thresholds.window_minutes
        lookback = timedelta(minutes=max(EVENT_MIN_LOOKBACK_MINUTES, window * 2))
        evaluator = AlertEvaluator(self.store, self.config.event_thresholds, self.config.thresholds.cooldown_hours)
        alerts = evaluator.evaluate(lookback, now=now, limit=EVENT_TREND_LIMIT)
        events = [a.trend for a in alerts if a.trend is not None]
        reply = build_event_text(events)

        if enqueue and alerts:
            delivery = await self._deliver(reply)
        else:
            delivery = DeliveryResult(requested=False, direct_reason="enqueue_disabled" if alerts else "no_event")

        result = EventRunResult(
            success=True,
            triggered=len(alerts),
            events=events,
            alert_ids=[a.id for a in alerts if a.id is not None],
            delivery=delivery,
            pipeline=pipeline,
            reply=reply,
        )
        if delivery.requested and not delivery.delivered:
            result.success = False
            result.error_code = ErrorCode.DELIVERY_FAILED
            result.reply = f"Event alert delivery failed: {delivery.direct_reason or 'unknown'}"
        return result
