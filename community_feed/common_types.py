"""Unified internal schema shared across the ingestion pipeline.

Every upstream entry, whether a syndication item or a platform JSON post,
is normalised into a ``FeedItem`` before entering the aggregate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union


@dataclass(frozen=True)
class Source:
    """One organisation's feed endpoint as listed in the directory."""

    organisation_name: str
    feed_url: str


@dataclass(frozen=True)
class FeedItem:
    """Provider-agnostic canonical item."""

    title: str
    link: str
    published_at: datetime | None  # tz-aware UTC; None when missing/unparseable
    raw_description: str  # untouched upstream HTML, sanitised only at render time
    organisation_name: str


# ── Raw entry variants ──────────────────────────────────────────

@dataclass(frozen=True)
class SyndicationEntry:
    """One entry as returned by ``feedparser``."""

    data: Any  # feedparser.FeedParserDict (dict subclass)


@dataclass(frozen=True)
class PlatformPost:
    """One post object from a platform ``/api/v1/posts`` response."""

    data: dict[str, Any]


RawEntry = Union[SyndicationEntry, PlatformPost]


# ── Run bookkeeping ─────────────────────────────────────────────

@dataclass
class SourceResult:
    """Terminal state of one source: succeeded with items, or failed."""

    source: Source
    items: list[FeedItem] = field(default_factory=list)
    error: str | None = None
    via_fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunReport:
    """Outcome of one ``pipeline.run()``."""

    sources_total: int
    sources_failed: list[tuple[str, str]]  # (feed_url, scrubbed error), one per failed row
    items_collected: int
    items_written: int
    output_path: str

    @property
    def sources_succeeded(self) -> int:
        return self.sources_total - len(self.sources_failed)
