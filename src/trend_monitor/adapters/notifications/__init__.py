"""Notification adapters."""

from typing import Mapping

from trend_monitor.adapters.notifications.delivery import DeliveryChain
from trend_monitor.adapters.notifications.file_queue import FileQueue
from trend_monitor.adapters.notifications.telegram_notifier import (
    TelegramNotifier,
    TelegramProfile,
    resolve_profile,
)
from trend_monitor.config import Settings


def build_delivery_chain(settings: Settings, env: Mapping[str, str]) -> DeliveryChain:
    """Wire the direct Telegram sender and the file queue from settings."""
    profile = resolve_profile(settings.delivery.target, env)
    return DeliveryChain(
        TelegramNotifier.from_profile(profile),
        FileQueue(settings.paths.queue_dir),
        target=profile.target,
        direct_enabled=settings.delivery.direct_enabled,
        queue_fallback=settings.delivery.queue_fallback,
        unavailable_reason=profile.missing_reason,
    )


__all__ = [
    "DeliveryChain",
    "FileQueue",
    "TelegramNotifier",
    "TelegramProfile",
    "build_delivery_chain",
    "resolve_profile",
]
