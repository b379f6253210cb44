"""Helpers shared by source adapters: HTML stripping and RSS/Atom parsing."""

import hashlib
import re
import warnings
from typing import Any, Optional
from xml.etree import ElementTree as ET

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning
from loguru import logger

from trend_monitor.core.text import SNIPPET_MAX, clip_text

ATOM_NS = "{http://www.w3.org/2005/Atom}"
DC_CREATOR = "{http://purl.org/dc/elements/1.1/}creator"


def strip_html(value: Optional[str]) -> str:
    """Drop tags, decode entities and collapse whitespace."""
    text = str(value or "")
    if not text.strip():
        return ""
    if "<" not in text and "&" not in text:
        return re.sub(r"\s+", " ", text).strip()
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", MarkupResemblesLocatorWarning)
        soup = BeautifulSoup(text, "html.parser")
    return re.sub(r"\s+", " ", soup.get_text(" ")).strip()


def to_snippet(value: Optional[str], max_len: int = SNIPPET_MAX) -> str:
    return clip_text(strip_html(value), max_len)


def hash_like(value: str) -> str:
    """Short stable id for feed entries that carry none."""
    return hashlib.md5(value.encode("utf-8")).hexdigest()[:12]


def to_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _text(element: Optional[ET.Element]) -> str:
    if element is None or element.text is None:
        return ""
    return element.text.strip()


def parse_rss_items(xml_content: str, limit: int = 10) -> list[dict[str, str]]:
    """Parse RSS 2.0 ``<item>`` elements."""
    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError as e:
        logger.warning(f"RSS parse error: {e}")
        return []

    items = []
    for item in root.findall(".//item")[:limit]:
        items.append({
            "title": strip_html(_text(item.find("title"))),
            "link": _text(item.find("link")),
            "description": _text(item.find("description")),
            "pub_date": _text(item.find("pubDate")),
            "author": _text(item.find(DC_CREATOR)) or _text(item.find("author")),
        })
    return items


def parse_atom_entries(xml_content: str, limit: int = 10) -> list[dict[str, str]]:
    """Parse Atom ``<entry>`` elements."""
    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError as e:
        logger.warning(f"Atom parse error: {e}")
        return []

    entries = []
    for entry in root.findall(f"{ATOM_NS}entry")[:limit]:
        link = ""
        for link_elem in entry.findall(f"{ATOM_NS}link"):
            if link_elem.get("rel", "alternate") == "alternate" and link_elem.get("href"):
                link = link_elem.get("href", "").strip()
                break

        author = entry.find(f"{ATOM_NS}author")
        entries.append({
            "id": _text(entry.find(f"{ATOM_NS}id")),
            "title": strip_html(_text(entry.find(f"{ATOM_NS}title"))),
            "published": _text(entry.find(f"{ATOM_NS}published")) or _text(entry.find(f"{ATOM_NS}updated")),
            "author": strip_html(_text(author.find(f"{ATOM_NS}name")) if author is not None else ""),
            "link": link,
            "content": strip_html(_text(entry.find(f"{ATOM_NS}content")) or _text(entry.find(f"{ATOM_NS}summary"))),
        })
    return entries


def per_bucket(source_value: Any, target: int, buckets: int, ceiling: int) -> int:
    """Items to request per tag/topic/feed: an even split, clamped to [1, ceiling]."""
    try:
        requested = int(source_value) if source_value else -(-target // max(1, buckets))
    except (TypeError, ValueError):
        requested = -(-target // max(1, buckets))
    return max(1, min(requested, ceiling))
