"""Digest rendering adapters."""

from trend_monitor.adapters.digest.template_digest import (
    HELP_TEXT,
    DigestPayload,
    build_digest_payload,
    build_event_text,
    build_interest_keywords,
    build_status_text,
    build_writer_fallback_alert,
    build_writer_prompt,
    fnv1a_hash,
    pick_ranked_trends,
)

__all__ = [
    "HELP_TEXT",
    "DigestPayload",
    "build_digest_payload",
    "build_event_text",
    "build_interest_keywords",
    "build_status_text",
    "build_writer_fallback_alert",
    "build_writer_prompt",
    "fnv1a_hash",
    "pick_ranked_trends",
]
