"""Persisted digest state, used only to bias the next digest run."""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from trend_monitor.core.entities import DigestState, TrendSnapshot
from trend_monitor.core.fetch_state import read_json, write_json_atomic
from trend_monitor.core.timeutils import parse_instant, to_iso, utc_now

SCHEMA_VERSION = 1


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if str(v).strip()]


class DigestStateStore:
    """Read and overwrite ``digestState.json``."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self) -> Optional[DigestState]:
        raw = read_json(self.path)
        if not isinstance(raw, dict):
            return None

        trends = {
            str(keyword): TrendSnapshot.from_dict(data)
            for keyword, data in (raw.get("lastDigestTrends") or {}).items()
            if isinstance(data, dict)
        }
        return DigestState(
            updated_at=parse_instant(raw.get("updatedAt")),
            last_digest_at=parse_instant(raw.get("lastDigestAt")),
            last_digest_hash=str(raw.get("lastDigestHash") or ""),
            last_digest_keywords=_string_list(raw.get("lastDigestKeywords")),
            last_repeated_keywords=_string_list(raw.get("lastRepeatedKeywords")),
            last_personalized_keywords=_string_list(raw.get("lastPersonalizedKeywords")),
            last_digest_trends=trends,
        )

    def write(self, state: DigestState) -> None:
        state.updated_at = state.updated_at or utc_now()
        write_json_atomic(
            self.path,
            {
                "schemaVersion": SCHEMA_VERSION,
                "updatedAt": to_iso(state.updated_at),
                "lastDigestAt": to_iso(state.last_digest_at) if state.last_digest_at else None,
                "lastDigestHash": state.last_digest_hash,
                "lastDigestKeywords": state.last_digest_keywords,
                "lastRepeatedKeywords": state.last_repeated_keywords,
                "lastPersonalizedKeywords": state.last_personalized_keywords,
                "lastDigestTrends": {k: v.to_dict() for k, v in state.last_digest_trends.items()},
            },
        )


def previous_if_fresh(
    state: Optional[DigestState], lookback_hours: float, now: datetime
) -> Optional[DigestState]:
    """Return the state only if its last digest is within the lookback."""
    if state is None or state.last_digest_at is None:
        return None
    age = now - state.last_digest_at
    if age < timedelta(0) or age > timedelta(hours=lookback_hours):
        return None
    return state
