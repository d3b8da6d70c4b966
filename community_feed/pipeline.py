"""Single-run pipeline: Directory → per-source fetch (pooled) → Sort/Cap → Render → Write.

Each run recomputes the aggregate from scratch; nothing is carried over
between runs.  A directory failure aborts the run before anything is
written.  Source failures only cost that source its items.

Call ``run(cfg)`` once per scheduled invocation.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

import httpx

from ._http import _sanitize_exc, _sanitize_url, build_client
from .common_types import FeedItem, RunReport, Source, SourceResult
from .config import Config
from .directory import load_sources
from .feed_builder import build_document, render_rss
from .feed_export import write_feed
from .ingest_feed import FeedFetcher

logger = logging.getLogger(__name__)


# ── Aggregation ─────────────────────────────────────────────────

def aggregate(
    sources: list[Source],
    fetcher: FeedFetcher,
    workers: int = 4,
) -> tuple[list[FeedItem], list[SourceResult]]:
    """Run *fetcher* over every source with at most *workers* in flight.

    Returns ``(items, results)``.  Items are concatenated in directory
    order so the later stable sort is deterministic; *results* has one
    entry per source, also in directory order.
    """
    if not sources:
        return [], []

    results: list[SourceResult | None] = [None] * len(sources)
    n_workers = max(1, min(int(workers), len(sources)))
    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        future_map = {
            executor.submit(fetcher.fetch_source, source): idx
            for idx, source in enumerate(sources)
        }
        for future in as_completed(future_map):
            idx = future_map[future]
            try:
                results[idx] = future.result()
            except Exception as exc:  # fetch_source normally reports failures itself
                source = sources[idx]
                logger.warning(
                    "Unexpected error fetching %s: %s",
                    _sanitize_url(source.feed_url), _sanitize_exc(exc),
                )
                results[idx] = SourceResult(source, error=_sanitize_exc(exc))

    done = [r for r in results if r is not None]
    items = [it for r in done if r.ok for it in r.items]
    return items, done


# ── Core single run ─────────────────────────────────────────────

def run(
    cfg: Config | None = None,
    transport: httpx.BaseTransport | None = None,
) -> RunReport:
    """Generate and write the aggregate feed once.

    Raises ``DirectoryError`` if the organisation directory cannot be
    loaded; nothing is written in that case.  *transport* is passed to
    the HTTP client (tests use ``httpx.MockTransport``).
    """
    if cfg is None:
        cfg = Config()

    logger.info("Generating community RSS feed…")
    client = build_client(cfg, transport=transport)
    try:
        sources = load_sources(
            client,
            cfg.directory_csv_url,
            cfg.directory_name_column,
            cfg.directory_feed_column,
        )
        logger.info("Fetching %d RSS feeds…", len(sources))
        fetcher = FeedFetcher(client, cfg)
        items, results = aggregate(sources, fetcher, cfg.fetch_workers)
    finally:
        client.close()

    failed = [(r.source.feed_url, r.error or "") for r in results if not r.ok]
    via_fallback = sum(1 for r in results if r.ok and r.via_fallback)

    doc = build_document(items, cfg)
    logger.info("Building RSS feed (%d items)…", len(doc.entries))
    write_feed(cfg.output_path, render_rss(doc))

    logger.info(
        "community feed: sources=%d ok=%d (fallback=%d) failed=%d → %d items collected, %d written",
        len(sources), len(sources) - len(failed), via_fallback, len(failed),
        len(items), len(doc.entries),
    )
    logger.info("Feed written to %s", cfg.output_path)

    return RunReport(
        sources_total=len(sources),
        sources_failed=failed,
        items_collected=len(items),
        items_written=len(doc.entries),
        output_path=cfg.output_path,
    )
