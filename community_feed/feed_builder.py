"""Sort, cap and render the aggregate as one RSS 2.0 document."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime

from .common_types import FeedItem
from .config import Config
from .sanitize import sanitize

ATOM_NS = "http://www.w3.org/2005/Atom"
GENERATOR = "community-feed"

# Undated items sort as the earliest possible moment.
_UNDATED = datetime.min.replace(tzinfo=timezone.utc)

# Characters XML 1.0 cannot represent, even escaped.
_XML_ILLEGAL_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


@dataclass(frozen=True)
class FeedEntry:
    title: str
    description: str  # sanitised plain text
    link: str
    guid: str
    published_at: datetime | None
    organisation_name: str


@dataclass
class FeedDocument:
    """Channel metadata plus entries in output order."""

    title: str
    description: str
    site_url: str
    feed_url: str
    language: str
    extension_ns: str
    entries: list[FeedEntry] = field(default_factory=list)
    build_date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def sort_items(items: list[FeedItem]) -> list[FeedItem]:
    """Newest first; stable; undated items after all dated ones."""
    return sorted(items, key=lambda it: it.published_at or _UNDATED, reverse=True)


def cap_items(items: list[FeedItem], max_items: int) -> list[FeedItem]:
    return items[: max(0, max_items)]


def build_document(items: list[FeedItem], cfg: Config) -> FeedDocument:
    """Sort + cap *items* and wrap them with the channel metadata from *cfg*."""
    latest = cap_items(sort_items(items), cfg.max_items)
    entries = [
        FeedEntry(
            title=it.title,
            description=sanitize(it.raw_description, cfg.description_max_length),
            link=it.link,
            guid=it.link,
            published_at=it.published_at,
            organisation_name=it.organisation_name,
        )
        for it in latest
    ]
    return FeedDocument(
        title=cfg.feed_title,
        description=cfg.feed_description,
        site_url=cfg.site_url,
        feed_url=cfg.feed_url,
        language=cfg.feed_language,
        extension_ns=cfg.site_url.rstrip("/") + "/ns/community",
        entries=entries,
    )


def _sub(parent: ET.Element, tag: str, text: str, **attrib: str) -> ET.Element:
    attrib = {k: _XML_ILLEGAL_RE.sub("", v) for k, v in attrib.items()}
    el = ET.SubElement(parent, tag, attrib)
    el.text = _XML_ILLEGAL_RE.sub("", text)
    return el


def render_rss(doc: FeedDocument) -> bytes:
    """Serialise *doc* to indented UTF-8 RSS 2.0 bytes."""
    ET.register_namespace("atom", ATOM_NS)
    ET.register_namespace("community", doc.extension_ns)

    rss = ET.Element("rss", {"version": "2.0"})
    channel = ET.SubElement(rss, "channel")
    _sub(channel, "title", doc.title)
    _sub(channel, "description", doc.description)
    _sub(channel, "link", doc.site_url)
    ET.SubElement(channel, f"{{{ATOM_NS}}}link", {
        "href": doc.feed_url, "rel": "self", "type": "application/rss+xml",
    })
    _sub(channel, "language", doc.language)
    _sub(channel, "generator", GENERATOR)
    _sub(channel, "lastBuildDate", format_datetime(doc.build_date, usegmt=True))

    for entry in doc.entries:
        item = ET.SubElement(channel, "item")
        _sub(item, "title", entry.title)
        _sub(item, "description", entry.description)
        if entry.link:
            _sub(item, "link", entry.link)
            _sub(item, "guid", entry.guid, isPermaLink="true")
        if entry.published_at is not None:
            _sub(item, "pubDate", format_datetime(entry.published_at.astimezone(timezone.utc), usegmt=True))
        _sub(item, f"{{{doc.extension_ns}}}organisation", entry.organisation_name)

    ET.indent(rss, space="  ")
    return ET.tostring(rss, encoding="utf-8", xml_declaration=True)
