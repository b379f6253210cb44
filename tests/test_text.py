"""Tests for text helpers and instant parsing."""

from datetime import datetime, timezone

from trend_monitor.core.text import (
    canonicalize_url,
    clip_text,
    contains_any,
    keyword_variants,
    make_fingerprint,
    normalize_keyword,
    normalize_text,
)
from trend_monitor.core.timeutils import parse_instant, to_iso


def test_clip_text_collapses_whitespace_and_clips() -> None:
    """Test clipping adds an ellipsis only when needed."""
    assert clip_text("  a \n  b  ") == "a b"
    clipped = clip_text("x" * 20, 10)
    assert len(clipped) == 10
    assert clipped.endswith("…")


def test_normalize_text_keeps_latin_digits_and_hangul() -> None:
    """Test normalization lowercases and collapses separators."""
    assert normalize_text("GPT-5: Vibe_Coding!!") == "gpt 5 vibe coding"
    assert normalize_text("바이브 코딩, 최고") == "바이브 코딩 최고"
    assert normalize_keyword("  Vibe   Coding ") == "vibe coding"


def test_canonicalize_url_strips_tracking_and_fragment() -> None:
    """Test tracking params are dropped and the query is sorted."""
    url = "HTTPS://Example.COM/post?b=2&utm_source=x&a=1&fbclid=zz#comments"
    assert canonicalize_url(url) == "https://example.com/post?a=1&b=2"
    assert canonicalize_url("https://example.com") == "https://example.com/"
    assert canonicalize_url("not a url") == "not a url"
    assert canonicalize_url("") == ""


def test_make_fingerprint_prefers_url() -> None:
    """Test fingerprints fall back to the normalized title."""
    assert make_fingerprint("https://a.b/", "Title") == "url:https://a.b/"
    assert make_fingerprint("", "Hello, World") == "title:hello world"
    assert make_fingerprint("", "") == ""


def test_keyword_variants_include_aliases() -> None:
    """Test alias expansion for a known keyword."""
    variants = keyword_variants("Vibe Coding")
    assert variants[0] == "vibe coding"
    assert "vibecoding" in variants
    assert keyword_variants("rust") == ["rust"]


def test_keyword_variants_expand_from_any_spelling() -> None:
    """Test every spelling in an alias group yields the whole group."""
    assert keyword_variants("vibecoding") == ["vibecoding", "vibe coding"]
    assert set(keyword_variants("gpt5")) == {"gpt5", "gpt 5"}
    assert set(keyword_variants("GPT-5")) == {"gpt 5", "gpt5"}
    assert "claude opus 4 6" in keyword_variants("opus4.6")
    content = normalize_text("Vibe coding is eating the world")
    assert contains_any(content, keyword_variants("vibecoding"))


def test_contains_any_is_token_bounded() -> None:
    """Test alias matching does not fire inside longer words."""
    content = normalize_text("Trying vibecoding with GPT-5 today")
    assert contains_any(content, keyword_variants("vibe coding"))
    assert contains_any(content, keyword_variants("gpt 5"))
    assert not contains_any(normalize_text("aiming high"), ["ai"])


def test_parse_instant_formats() -> None:
    """Test epoch seconds, epoch millis, ISO and RFC 2822 inputs."""
    expected = datetime(2026, 2, 14, 12, 0, tzinfo=timezone.utc)
    assert parse_instant(int(expected.timestamp())) == expected
    assert parse_instant(int(expected.timestamp()) * 1000) == expected
    assert parse_instant("2026-02-14T12:00:00Z") == expected
    assert parse_instant("Sat, 14 Feb 2026 12:00:00 +0000") == expected
    assert parse_instant("garbage", expected) == expected
    assert parse_instant(None) is None


def test_to_iso_is_millisecond_utc() -> None:
    """Test the stored timestamp format."""
    value = datetime(2026, 2, 14, 12, 0, 1, 123456, tzinfo=timezone.utc)
    assert to_iso(value) == "2026-02-14T12:00:01.123Z"
