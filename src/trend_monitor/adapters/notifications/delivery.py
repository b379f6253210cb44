"""Delivery chain: direct send, then the queue fallback."""

from typing import Optional, Union

from loguru import logger

from trend_monitor.core.entities import DeliveryResult
from trend_monitor.core.interfaces import MessageQueue, NotificationService
from trend_monitor.core.outcome import Fallback, Ok, Strategy, run_chain


class DeliveryChain:
    """Try one direct send; enqueue for the worker only if that fails and fallback is on."""

    def __init__(
        self,
        notifier: Optional[NotificationService],
        queue: Optional[MessageQueue],
        *,
        target: str,
        direct_enabled: bool = True,
        queue_fallback: bool = False,
        unavailable_reason: str = "missing_credentials",
    ) -> None:
        self.notifier = notifier
        self.queue = queue
        self.target = target
        self.direct_enabled = direct_enabled
        self.queue_fallback = queue_fallback
        self.unavailable_reason = unavailable_reason

    async def deliver(self, text: str) -> DeliveryResult:
        result = DeliveryResult(requested=True, target=self.target, queue_fallback_enabled=self.queue_fallback)

        async def direct() -> Union[Ok[str], Fallback]:
            if not self.direct_enabled:
                return Fallback("disabled")
            if self.notifier is None:
                return Fallback(self.unavailable_reason)
            sent = await self.notifier.send(text)
            result.direct_status_code = sent.status_code
            return Ok("sent") if sent.sent else Fallback(sent.reason or "http_error")

        async def queued() -> Union[Ok[str], Fallback]:
            if not self.queue_fallback:
                return Fallback("queue_fallback_disabled")
            if self.queue is None:
                return Fallback("queue_unavailable")
            try:
                payload = self.queue.enqueue(text)
            except OSError as e:
                logger.warning(f"Queue fallback failed: {e}")
                return Fallback(f"queue_failed:{e}")
            result.task_id = payload.get("taskId")
            return Ok("queued")

        chain = await run_chain([Strategy("direct", direct), Strategy("queue", queued)])

        for name, attempt in chain.attempts:
            if name == "direct":
                result.direct_sent = isinstance(attempt, Ok)
                result.direct_reason = "sent" if isinstance(attempt, Ok) else attempt.reason
            elif name == "queue":
                result.queued = isinstance(attempt, Ok)
                result.queue_reason = "queued" if isinstance(attempt, Ok) else attempt.reason

        if not chain.ok:
            logger.warning(f"Delivery failed for {self.target}: {result.direct_reason} / {result.queue_reason}")
        return result
