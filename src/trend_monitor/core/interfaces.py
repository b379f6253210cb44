"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from trend_monitor.core.entities import RawItem, SourceState

if TYPE_CHECKING:
    from trend_monitor.adapters.http.budgeted_client import BudgetedHttpClient
    from trend_monitor.config import SourceConfig


@dataclass
class CollectContext:
    """Everything a source adapter may use for one run."""

    source: "SourceConfig"
    state: SourceState
    http: "BudgetedHttpClient"
    max_items: int
    now: datetime


@dataclass
class CollectResult:
    """Raw items plus a patch merged into the source's fetch state."""

    items: list[RawItem] = field(default_factory=list)
    state_patch: dict[str, Any] = field(default_factory=dict)


@dataclass
class SendResult:
    """One delivery attempt."""

    sent: bool
    status_code: int | None = None
    reason: str | None = None


class SourceCollector(ABC):
    """Interface for collecting raw items from one source."""

    source_id: str = ""

    @abstractmethod
    async def collect(self, ctx: CollectContext) -> CollectResult:
        """Collect raw items; may raise SourceSkipped or BudgetExceededError."""
        pass


class NotificationService(ABC):
    """Interface for direct message delivery."""

    @abstractmethod
    async def send(self, text: str) -> SendResult:
        """Send text; never raises for transport errors."""
        pass


class MessageQueue(ABC):
    """Interface for deferred delivery through a worker queue."""

    @abstractmethod
    def enqueue(self, text: str) -> dict[str, Any]:
        """Enqueue text and return the queued payload."""
        pass
