"""Command surface: status, digest/send, event, keyword and source toggles, help."""

import re
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml
from loguru import logger

from trend_monitor.adapters.digest.template_digest import HELP_TEXT, build_status_text
from trend_monitor.adapters.llm.writer_client import DigestWriterClient
from trend_monitor.adapters.notifications import build_delivery_chain
from trend_monitor.adapters.storage.sqlite_store import NewsStore
from trend_monitor.config import NewsConfig, Settings, load_news_config, set_source_enabled
from trend_monitor.core.digest_state import DigestStateStore
from trend_monitor.core.entities import SourceStatus, to_jsonable
from trend_monitor.core.errors import ErrorCode, UnknownSourceError
from trend_monitor.core.fetch_state import FetchStateStore
from trend_monitor.use_cases.collector import Collector
from trend_monitor.use_cases.digest import DigestOrchestrator
from trend_monitor.use_cases.trends import TrendEngine

STATUS_TREND_LIMIT = 5

_KEYWORD_RE = re.compile(r"^keyword\s+(add|remove)\s+(.+)$", re.IGNORECASE)
_SOURCE_RE = re.compile(r"^source\s+(on|off)\s+([a-z0-9_-]+)$", re.IGNORECASE)


@dataclass
class CommandResult:
    """Structured reply of one command; ``reply`` is the human-readable text."""

    success: bool
    action: str
    reply: str
    error_code: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    active_model_stage: str = "collect"
    stage_model: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Flatten ``data`` under the envelope keys; all keys are snake_case."""
        result = to_jsonable(self.data)
        result.update({
            "success": self.success,
            "action": self.action,
            "error_code": self.error_code,
            "active_model_stage": self.active_model_stage,
            "stage_model": self.stage_model,
            "reply": self.reply,
        })
        return result


class CommandService:
    """Dispatch commands against one config, store and orchestrator."""

    def __init__(
        self,
        config: NewsConfig,
        store: NewsStore,
        fetch_state: FetchStateStore,
        orchestrator: DigestOrchestrator,
        settings: Optional[Settings] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.fetch_state = fetch_state
        self.orchestrator = orchestrator
        self.settings = settings or Settings()

    def __enter__(self) -> "CommandService":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.store.close()

    def _with_stage(self, result: CommandResult, stage: str) -> CommandResult:
        preferred = self.config.digest_policy.model_stages[stage]
        result.active_model_stage = stage
        result.stage_model = {"alias": preferred.alias, "model": preferred.model, "reasoning": preferred.reasoning}
        return result

    def status(self) -> CommandResult:
        state = self.fetch_state.read()
        sources = []
        for source in self.config.sources:
            if not source.id:
                continue
            source_state = state.sources.get(source.id)
            sources.append(SourceStatus(
                id=source.id,
                enabled=source.enabled,
                last_run_at=source_state.last_run_at if source_state else None,
                last_error=source_state.last_error if source_state else None,
            ))
        counts = self.store.counts()
        trends = self.store.recent_trends(limit=STATUS_TREND_LIMIT)
        return CommandResult(
            success=True,
            action="status",
            reply=build_status_text(self.config, counts, sources, trends),
            data={"db_counts": counts, "sources": sources, "latest_trends": trends},
        )

    async def digest(self, enqueue: bool = False, **options: Any) -> CommandResult:
        result = await self.orchestrator.run(enqueue=enqueue, **options)
        return CommandResult(
            success=result.success,
            action=result.action,
            reply=result.reply,
            error_code=result.error_code,
            data=result.to_dict(),
        )

    async def event(self, enqueue: bool = False, **options: Any) -> CommandResult:
        result = await self.orchestrator.run_event(enqueue=enqueue, **options)
        return CommandResult(
            success=result.success,
            action="event",
            reply=result.reply,
            error_code=result.error_code,
            data=result.to_dict(),
        )

    def keyword(self, verb: str, keyword: str) -> CommandResult:
        enabled = verb.lower() == "add"
        normalized = self.store.set_keyword_enabled(keyword, enabled)
        return CommandResult(
            success=True,
            action="keyword-add" if enabled else "keyword-disable",
            reply=f"Keyword {'added' if enabled else 'removed'}: {normalized}",
            data={"keyword": normalized},
        )

    def source(self, switch: str, source_id: str) -> CommandResult:
        enabled = switch.lower() == "on"
        source_id = source_id.lower()
        try:
            set_source_enabled(self.settings.sources_path, source_id, enabled)
        except UnknownSourceError:
            return CommandResult(
                success=False,
                action="source-toggle",
                reply=f"Source id not found: {source_id}",
                data={"source_id": source_id, "enabled": enabled},
            )
        for source in self.config.sources:
            if source.id == source_id:
                source.enabled = enabled
        return CommandResult(
            success=True,
            action="source-toggle",
            reply=f"Source {'enabled' if enabled else 'disabled'}: {source_id}",
            data={"source_id": source_id, "enabled": enabled},
        )

    async def handle(self, text: str, **options: Any) -> CommandResult:
        """Parse one free-text command and run it.

        Expected failures become a ``CommandResult`` with an error code;
        unrecognized text is ``UNKNOWN_NEWS_COMMAND``.
        """
        text = (text or "").strip()
        enqueue = bool(options.pop("enqueue", False))
        try:
            if not text or text.lower() == "status":
                return self._with_stage(self.status(), "collect")
            if text.lower() in ("digest", "summary"):
                return self._with_stage(await self.digest(enqueue=enqueue, **options), "write")
            if text.lower() == "send":
                return self._with_stage(await self.digest(enqueue=True, **options), "write")
            if text.lower() == "event":
                return self._with_stage(await self.event(enqueue=enqueue, **options), "collect")
            if text.lower() == "help":
                return self._with_stage(CommandResult(success=True, action="help", reply=HELP_TEXT), "collect")

            match = _KEYWORD_RE.match(text)
            if match:
                return self._with_stage(self.keyword(match.group(1), match.group(2)), "collect")

            match = _SOURCE_RE.match(text)
            if match:
                return self._with_stage(self.source(match.group(1), match.group(2)), "collect")

            return self._with_stage(
                CommandResult(
                    success=False,
                    action="unknown",
                    reply=f"Unknown news command: {text}",
                    error_code=ErrorCode.UNKNOWN_COMMAND,
                ),
                "collect",
            )
        except (OSError, sqlite3.Error, yaml.YAMLError, ValueError) as e:
            logger.error(f"Command failed: {text}: {e}")
            return self._with_stage(
                CommandResult(
                    success=False,
                    action="error",
                    reply=f"News command failed: {e}",
                    error_code=ErrorCode.COMMAND_FAILED,
                    data={"error": str(e)},
                ),
                "collect",
            )


def build_command_service(settings: Settings) -> CommandService:
    """Wire config, store, collector, trend engine, writer and delivery from settings."""
    config = load_news_config(settings.sources_path)
    store = NewsStore(settings.db_path)
    fetch_state = FetchStateStore(settings.paths.state_path)
    orchestrator = DigestOrchestrator(
        store=store,
        config=config,
        collector=Collector(store, fetch_state, config),
        engine=TrendEngine(store, config.thresholds),
        writer=DigestWriterClient(settings.writer, settings.paths.lock_path),
        digest_state=DigestStateStore(settings.paths.digest_state_path),
        delivery=build_delivery_chain(settings, settings.env),
    )
    return CommandService(config, store, fetch_state, orchestrator, settings)
