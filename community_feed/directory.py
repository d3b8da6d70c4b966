"""Organisation directory loader.

The directory is a CSV document (one row per organisation) hosted
remotely.  Only rows with a non-empty feed URL become ``Source``s.

Quoting follows RFC 4180: doubled quotes inside quoted fields, commas
and line breaks inside quoted fields are part of the value.
"""

from __future__ import annotations

import csv
import io
import logging

import httpx

from ._http import _sanitize_exc, _sanitize_url
from .common_types import Source
from .errors import DirectoryFetchError, DirectoryParseError

logger = logging.getLogger(__name__)


def parse_directory(text: str) -> list[dict[str, str]]:
    """Parse CSV *text* into rows keyed by (trimmed) header name.

    Values are trimmed; fields missing from a short row default to ``""``;
    fields beyond the header are ignored.  Blank lines are skipped.
    Raises ``DirectoryParseError`` if there is no header row or the CSV
    is malformed.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    try:
        records = [r for r in csv.reader(io.StringIO(text, newline=""), skipinitialspace=True) if r]
    except csv.Error as exc:
        raise DirectoryParseError(f"Malformed directory CSV: {exc}") from exc

    if not records:
        raise DirectoryParseError("Directory CSV is empty")

    headers = [h.strip() for h in records[0]]
    if not any(headers):
        raise DirectoryParseError("Directory CSV has no header row")

    rows: list[dict[str, str]] = []
    for record in records[1:]:
        rows.append({
            header: (record[i].strip() if i < len(record) else "")
            for i, header in enumerate(headers)
        })
    return rows


def sources_from_rows(
    rows: list[dict[str, str]],
    name_column: str = "Organisation",
    feed_column: str = "RSS Feed",
) -> list[Source]:
    """Rows with a feed URL → ``Source`` list, in directory order."""
    sources = [
        Source(organisation_name=row.get(name_column, ""), feed_url=row[feed_column])
        for row in rows
        if row.get(feed_column)
    ]
    if rows and not sources:
        logger.warning("No directory rows have a %r value.", feed_column)
    return sources


def fetch_directory(client: httpx.Client, url: str) -> str:
    """GET the directory CSV.  Any failure is a ``DirectoryFetchError``."""
    safe_url = _sanitize_url(url)
    try:
        r = client.get(url)
    except httpx.HTTPError as exc:
        raise DirectoryFetchError(
            f"Failed to fetch directory {safe_url}: {_sanitize_exc(exc)}", url=url,
        ) from exc
    if not r.is_success:
        raise DirectoryFetchError(
            f"Failed to fetch directory {safe_url}: HTTP {r.status_code}",
            url=url,
            status_code=r.status_code,
        )
    return r.text


def load_sources(
    client: httpx.Client,
    url: str,
    name_column: str = "Organisation",
    feed_column: str = "RSS Feed",
) -> list[Source]:
    """Fetch + parse the directory and return the feed-bearing sources."""
    logger.info("Fetching organisations directory %s", _sanitize_url(url))
    text = fetch_directory(client, url)
    try:
        rows = parse_directory(text)
    except DirectoryParseError as exc:
        exc.url = url
        raise
    sources = sources_from_rows(rows, name_column, feed_column)
    logger.info("Directory lists %d organisations, %d with a feed.", len(rows), len(sources))
    return sources
