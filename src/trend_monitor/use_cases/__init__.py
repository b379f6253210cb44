"""Business logic use cases."""

from trend_monitor.use_cases.alerts import AlertEvaluator
from trend_monitor.use_cases.collector import Collector
from trend_monitor.use_cases.commands import CommandResult, CommandService, build_command_service
from trend_monitor.use_cases.digest import DigestOrchestrator, DigestRunResult, EventRunResult
from trend_monitor.use_cases.trends import TrendEngine

__all__ = [
    "AlertEvaluator",
    "Collector",
    "CommandResult",
    "CommandService",
    "DigestOrchestrator",
    "DigestRunResult",
    "EventRunResult",
    "TrendEngine",
    "build_command_service",
]
