"""CLI entry point for trend monitor."""

import asyncio
import json
from typing import Any, Optional

import typer

from trend_monitor.config import get_settings
from trend_monitor.core.entities import to_jsonable
from trend_monitor.logging_setup import configure_logging
from trend_monitor.use_cases import build_command_service

app = typer.Typer(help="Trend detection and digest pipeline.", add_completion=False)


def _emit(payload: dict[str, Any], success: bool = True) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    if not success:
        raise typer.Exit(code=1)


async def async_command(text: str, **options: Any) -> dict[str, Any]:
    """Run one command through the command service and return its result dict."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)
    if options.get("window_minutes") is None:
        options["window_minutes"] = settings.window_minutes

    with build_command_service(settings) as service:
        result = await service.handle(text, **options)
    return result.to_dict()


def _run(text: str, **options: Any) -> None:
    result = asyncio.run(async_command(text, **options))
    _emit(result, bool(result.get("success")))


@app.command()
def status() -> None:
    """Show db counts, source health and the latest trends."""
    _run("status")


@app.command()
def digest(
    force: bool = typer.Option(False, "--force", help="Ignore per-source poll intervals"),
    skip_collect: bool = typer.Option(False, "--skip-collect", help="Do not run the collector"),
    skip_trend: bool = typer.Option(False, "--skip-trend", help="Do not run the trend scan"),
    window_minutes: Optional[int] = typer.Option(None, "--window-minutes", min=1),
) -> None:
    """Run the pipeline and build the digest without sending it."""
    _run("digest", force=force, skip_collect=skip_collect, skip_trend=skip_trend, window_minutes=window_minutes)


@app.command()
def send(
    force: bool = typer.Option(False, "--force", help="Ignore per-source poll intervals"),
    skip_collect: bool = typer.Option(False, "--skip-collect", help="Do not run the collector"),
    skip_trend: bool = typer.Option(False, "--skip-trend", help="Do not run the trend scan"),
    window_minutes: Optional[int] = typer.Option(None, "--window-minutes", min=1),
) -> None:
    """Run the pipeline, build the digest and deliver it."""
    _run("send", force=force, skip_collect=skip_collect, skip_trend=skip_trend, window_minutes=window_minutes)


@app.command()
def event(
    no_send: bool = typer.Option(False, "--no-send", help="Evaluate alerts without delivering"),
    force: bool = typer.Option(False, "--force", help="Ignore per-source poll intervals"),
    window_minutes: Optional[int] = typer.Option(None, "--window-minutes", min=1),
) -> None:
    """Run the pipeline and deliver a hot-event alert if one fired."""
    _run("event", enqueue=not no_send, force=force, window_minutes=window_minutes)


@app.command()
def collect(
    force: bool = typer.Option(False, "--force", help="Ignore per-source poll intervals"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Normalize and dedup without storing"),
) -> None:
    """Run the collector only."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)

    async def run() -> Any:
        with build_command_service(settings) as service:
            return await service.orchestrator.collector.collect(force=force, dry_run=dry_run)

    summary = asyncio.run(run())
    _emit({"success": True, "action": "collect", **to_jsonable(summary)})


@app.command()
def trends(window_minutes: Optional[int] = typer.Option(None, "--window-minutes", min=1)) -> None:
    """Run the trend scan only."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)

    with build_command_service(settings) as service:
        service.store.ensure_keywords(service.config.keywords)
        result = service.orchestrator.engine.scan(window_minutes or settings.window_minutes)
    _emit({"success": True, "action": "trends", **to_jsonable(result)})


@app.command()
def command(text: list[str] = typer.Argument(None, help="Free-text command, e.g. 'keyword add mcp'")) -> None:
    """Run a free-text command (status, digest, event, keyword ..., source ..., help)."""
    _run(" ".join(text or []))


if __name__ == "__main__":
    app()
