"""Core domain layer."""

from trend_monitor.core.digest_state import DigestStateStore
from trend_monitor.core.entities import (
    Alert,
    CollectRunSummary,
    DeliveryResult,
    DigestState,
    FetchState,
    NewsItem,
    RawItem,
    SourceRunResult,
    SourceState,
    SourceStatus,
    Trend,
    TrendLevel,
    TrendRef,
    TrendScanResult,
    TrendSnapshot,
    WriterExecution,
)
from trend_monitor.core.errors import (
    BudgetExceededError,
    ErrorCode,
    LockTimeoutError,
    SourceSkipped,
    UnknownSourceError,
    WriterError,
)
from trend_monitor.core.fetch_state import FetchStateStore
from trend_monitor.core.interfaces import (
    CollectContext,
    CollectResult,
    MessageQueue,
    NotificationService,
    SendResult,
    SourceCollector,
)

__all__ = [
    "Alert",
    "CollectRunSummary",
    "DeliveryResult",
    "DigestState",
    "FetchState",
    "NewsItem",
    "RawItem",
    "SourceRunResult",
    "SourceState",
    "SourceStatus",
    "Trend",
    "TrendLevel",
    "TrendRef",
    "TrendScanResult",
    "TrendSnapshot",
    "WriterExecution",
    "BudgetExceededError",
    "ErrorCode",
    "LockTimeoutError",
    "SourceSkipped",
    "UnknownSourceError",
    "WriterError",
    "FetchStateStore",
    "DigestStateStore",
    "CollectContext",
    "CollectResult",
    "MessageQueue",
    "NotificationService",
    "SendResult",
    "SourceCollector",
]
