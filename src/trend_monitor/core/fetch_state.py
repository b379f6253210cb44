"""Persisted per-source fetch cursors."""

import json
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from trend_monitor.core.entities import FetchState, SourceState
from trend_monitor.core.timeutils import parse_instant, to_iso, utc_now


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON via a temp file and rename, so readers never see half a file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
        f.write("\n")
    os.replace(tmp_path, path)


def read_json(path: Path) -> Optional[Any]:
    """Read a JSON file; missing or corrupt files yield None."""
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable state file {path}: {e}")
        return None


def should_poll(state: Optional[SourceState], poll_minutes: float, now: datetime) -> bool:
    """True when the poll interval has elapsed since the last run."""
    if not poll_minutes or poll_minutes <= 0:
        return True
    if state is None or state.last_run_at is None:
        return True
    return now - state.last_run_at >= timedelta(minutes=poll_minutes)


class FetchStateStore:
    """Read and rewrite ``fetchState.json`` wholesale."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self) -> FetchState:
        raw = read_json(self.path)
        if not isinstance(raw, dict):
            return FetchState()

        sources = {
            str(source_id): SourceState.from_dict(data)
            for source_id, data in (raw.get("sources") or {}).items()
            if isinstance(data, dict)
        }
        return FetchState(
            version=int(raw.get("version") or 1),
            updated_at=parse_instant(raw.get("updatedAt")),
            sources=sources,
        )

    def write(self, state: FetchState) -> None:
        state.updated_at = utc_now()
        write_json_atomic(
            self.path,
            {
                "version": state.version,
                "updatedAt": to_iso(state.updated_at),
                "sources": {sid: s.to_dict() for sid, s in state.sources.items()},
            },
        )
