"""Storage adapters."""

from trend_monitor.adapters.storage.sqlite_store import NewsStore

__all__ = ["NewsStore"]
