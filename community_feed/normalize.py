"""Normalisation functions: raw upstream entries → FeedItem.

Two entry shapes are supported, one normaliser each:

Syndication entries (``feedparser`` dicts, RSS or Atom):
    title, link, published_parsed / updated_parsed, published / updated,
    content[] (``content:encoded``), summary / summary_detail

Platform posts (``/api/v1/posts`` JSON objects):
    title, canonical_url, post_date, body_html, subtitle

Description precedence is deliberately different between the two: a
syndication entry prefers its richest content field, a platform post its
full HTML body.
"""

from __future__ import annotations

import calendar
import logging
import time
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as dtparser

from .common_types import FeedItem, PlatformPost, RawEntry, Source, SyndicationEntry

logger = logging.getLogger(__name__)


# ── Shared helpers ──────────────────────────────────────────────

# Minimum length for a date string to be considered valid.
# Shortest valid format: "YYYYMMDD" = 8 chars.  Shorter strings like
# "5" or "12" are ambiguously parsed by dateutil (e.g. "5" → Feb 5).
_MIN_DATE_LEN = 8


def _to_datetime(s: Any) -> datetime | None:
    """Parse a date/time string to an aware UTC ``datetime``.

    Returns ``None`` for empty, too-short, or unparseable strings.
    Naive datetimes (no timezone info) are assumed UTC to guarantee
    deterministic ordering regardless of server timezone.
    """
    if not s or not isinstance(s, str):
        return None
    s_stripped = s.strip()
    if len(s_stripped) < _MIN_DATE_LEN:
        logger.warning("Date string too short (%d chars): %r — treating as undated.", len(s_stripped), s_stripped)
        return None
    try:
        dt = dtparser.parse(s_stripped)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        # Offsets near datetime.min/max overflow on conversion
        return dt.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        logger.warning("Unparseable date %r — treating as undated.", s_stripped[:80])
        return None


def _from_struct_time(st: Any) -> datetime | None:
    """feedparser ``*_parsed`` values are UTC ``time.struct_time``s."""
    if not isinstance(st, time.struct_time):
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(st), tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return None


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


# ── Syndication (RSS / Atom) ────────────────────────────────────

def _syndication_description(entry: Any) -> str:
    # 1) content:encoded (feedparser: content[].value)
    for block in entry.get("content") or []:
        value = block.get("value") if isinstance(block, dict) else None
        if value:
            return str(value)

    summary = entry.get("summary") or ""
    detail = entry.get("summary_detail") or {}

    # 2) plain-text snippet
    if summary and detail.get("type") == "text/plain":
        return str(summary)

    # 3) generic content field
    return str(summary or entry.get("description") or "")


def normalize_syndication_entry(entry: Any, source: Source) -> FeedItem:
    """Normalise one ``feedparser`` entry."""
    published = (
        _from_struct_time(entry.get("published_parsed"))
        or _from_struct_time(entry.get("updated_parsed"))
        or _to_datetime(entry.get("published") or entry.get("updated"))
    )
    return FeedItem(
        title=_text(entry.get("title")),
        link=_text(entry.get("link")),
        published_at=published,
        raw_description=_syndication_description(entry),
        organisation_name=source.organisation_name,
    )


# ── Platform posts ──────────────────────────────────────────────

def normalize_platform_post(post: dict[str, Any], source: Source) -> FeedItem:
    """Normalise one platform ``/api/v1/posts`` object."""
    return FeedItem(
        title=_text(post.get("title")),
        link=_text(post.get("canonical_url")),
        published_at=_to_datetime(post.get("post_date")),
        raw_description=str(post.get("body_html") or post.get("subtitle") or ""),
        organisation_name=source.organisation_name,
    )


def normalize(raw: RawEntry, source: Source) -> FeedItem:
    """Dispatch *raw* to the normaliser for its variant."""
    if isinstance(raw, SyndicationEntry):
        return normalize_syndication_entry(raw.data, source)
    if isinstance(raw, PlatformPost):
        return normalize_platform_post(raw.data, source)
    raise TypeError(f"Unsupported raw entry type: {type(raw).__name__}")
