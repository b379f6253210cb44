"""Text normalization, URL canonicalization and fingerprints."""

import re
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

# Clip limits applied to stored item fields
TITLE_MAX = 220
SNIPPET_MAX = 160
SOURCE_MAX = 32
COMMUNITY_MAX = 64
POST_ID_MAX = 128
AUTHOR_MAX = 80
URL_MAX = 500

TRACKING_PARAMS = {"fbclid", "gclid", "si"}

KEYWORD_ALIASES: dict[str, list[str]] = {
    "vibe coding": ["vibe coding", "vibecoding"],
    "opus 4.6": ["opus 4.6", "opus4.6", "claude opus 4.6"],
    "gpt 5": ["gpt 5", "gpt-5", "gpt5"],
}

_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^a-z0-9가-힣]+")


def clip_text(value: Optional[str], max_len: int = SNIPPET_MAX) -> str:
    """Collapse whitespace and clip to ``max_len`` characters with an ellipsis."""
    text = _WHITESPACE_RE.sub(" ", str(value or "")).strip()
    if len(text) <= max_len:
        return text
    return text[: max(0, max_len - 1)].rstrip() + "…"


def normalize_text(value: Optional[str]) -> str:
    """Lowercase and collapse every non-alphanumeric run to one space."""
    return _NON_WORD_RE.sub(" ", str(value or "").lower()).strip()


def normalize_keyword(value: Optional[str]) -> str:
    return _WHITESPACE_RE.sub(" ", str(value or "").strip().lower())


def _is_tracking_param(key: str) -> bool:
    lowered = key.lower()
    return lowered.startswith("utm_") or lowered in TRACKING_PARAMS


def canonicalize_url(raw: Optional[str]) -> str:
    """Strip tracking params and fragment, lowercase scheme/host, sort the query."""
    text = str(raw or "").strip()
    if not text:
        return ""

    try:
        parts = urlsplit(text)
    except ValueError:
        return text.lower()[:URL_MAX]
    if not parts.scheme or not parts.netloc:
        return text.lower()[:URL_MAX]

    query = sorted(
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(k)
    )
    canonical = urlunsplit((
        parts.scheme.lower(),
        parts.netloc.lower(),
        parts.path or "/",
        urlencode(query),
        "",
    ))
    return canonical[:URL_MAX]


def make_fingerprint(url: Optional[str], title: Optional[str]) -> str:
    """Dedup key: canonical URL when present, normalized title otherwise."""
    if url:
        return f"url:{url}"
    normalized = normalize_text(title)
    return f"title:{normalized}" if normalized else ""


def keyword_variants(keyword: str, aliases: Optional[dict[str, list[str]]] = None) -> list[str]:
    """Normalized match forms for a keyword, the keyword itself first.

    An alias group matches from any of its spellings, so ``gpt5`` expands to
    the whole ``gpt 5`` group just as ``gpt 5`` does.
    """
    table = KEYWORD_ALIASES if aliases is None else aliases
    base = normalize_text(normalize_keyword(keyword))
    variants = [base]
    for name, alias_list in table.items():
        group = [name, *alias_list]
        if base in {normalize_text(spelling) for spelling in group}:
            variants.extend(group)

    result: list[str] = []
    for variant in variants:
        normalized = normalize_text(variant)
        if normalized and normalized not in result:
            result.append(normalized)
    return result


def contains_any(normalized_content: str, variants: Iterable[str]) -> bool:
    """Token-bounded substring match against already normalized content."""
    padded = f" {normalized_content} "
    return any(f" {variant} " in padded for variant in variants)
