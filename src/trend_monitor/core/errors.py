"""Error types shared across the pipeline."""

from typing import Any, Optional


class ErrorCode:
    """Machine-readable codes reported in command results."""

    DELIVERY_FAILED = "NEWS_TELEGRAM_DELIVERY_FAILED"
    UNKNOWN_COMMAND = "UNKNOWN_NEWS_COMMAND"
    COMMAND_FAILED = "NEWS_COMMAND_FAILED"


class BudgetExceededError(Exception):
    """A response would push byte usage past the source or global ceiling."""

    SOURCE = "source"
    GLOBAL = "global"

    def __init__(self, scope: str, source_id: str, detail: Optional[dict[str, Any]] = None) -> None:
        super().__init__(f"{scope} budget exceeded ({source_id})")
        self.scope = scope
        self.source_id = source_id
        self.detail = detail or {}

    @property
    def is_global(self) -> bool:
        return self.scope == self.GLOBAL


class SourceSkipped(Exception):
    """Soft signal from a source adapter: nothing to do this run."""

    def __init__(self, reason: str = "collector_skipped") -> None:
        super().__init__(reason)
        self.reason = reason


class UnknownSourceError(LookupError):
    """No collector is registered for the source id."""

    def __init__(self, source_id: str) -> None:
        super().__init__(f"unsupported source id: {source_id}")
        self.source_id = source_id


class LockTimeoutError(TimeoutError):
    """The model switch lock could not be acquired in time."""

    def __init__(self, path: Any, timeout: float) -> None:
        super().__init__(f"digest writer lock timeout after {timeout:.0f}s: {path}")
        self.path = path
        self.timeout = timeout


class WriterError(RuntimeError):
    """The external digest writer failed; ``reason`` is machine-readable."""

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail
