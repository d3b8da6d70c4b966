"""Global configuration for the community feed aggregator.

One ``Config`` is built per run and handed to ``pipeline.run()``.
All tunables can be overridden via environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_DIRECTORY_CSV_URL = (
    "https://raw.githubusercontent.com/deelion/"
    "folkestone-hythe-community-directory/data/organisations.csv"
)
DEFAULT_USER_AGENT = (
    "CommunityFeedBot/1.0 "
    "(+https://github.com/deelion/folkestone-hythe-community-feed)"
)


def _env_float(key: str, default: float) -> float:
    """Read an env var as float, returning *default* on parse failure."""
    try:
        return float(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def _env_int(key: str, default: int) -> int:
    """Read an env var as int, returning *default* on parse failure."""
    try:
        return int(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


@dataclass(frozen=True)
class Config:
    """Central configuration – one instance per run.

    Environment variables are read at **instantiation** time (not module
    import time) so callers can set them programmatically before
    creating a ``Config``.
    """

    # ── Directory ───────────────────────────────────────────────
    directory_csv_url: str = field(default_factory=lambda: os.getenv("DIRECTORY_CSV_URL", DEFAULT_DIRECTORY_CSV_URL))
    directory_name_column: str = field(default_factory=lambda: os.getenv("DIRECTORY_NAME_COLUMN", "Organisation"))
    directory_feed_column: str = field(default_factory=lambda: os.getenv("DIRECTORY_FEED_COLUMN", "RSS Feed"))

    # ── Outbound feed metadata ──────────────────────────────────
    site_url: str = field(default_factory=lambda: os.getenv("SITE_URL", "https://folke.world"))
    feed_title: str = field(default_factory=lambda: os.getenv("FEED_TITLE", "Local Community Updates"))
    feed_description: str = field(default_factory=lambda: os.getenv(
        "FEED_DESCRIPTION",
        "Updates from local community organisations",
    ))
    feed_language: str = field(default_factory=lambda: os.getenv("FEED_LANGUAGE", "en"))

    # ── Output ──────────────────────────────────────────────────
    output_path: str = field(default_factory=lambda: os.getenv("OUTPUT_PATH", "public/feed.xml"))

    # ── Caps ────────────────────────────────────────────────────
    max_items: int = field(default_factory=lambda: _env_int("MAX_ITEMS", 100))
    items_per_source: int = field(default_factory=lambda: _env_int("ITEMS_PER_SOURCE", 5))
    description_max_length: int = field(default_factory=lambda: _env_int("DESCRIPTION_MAX_LENGTH", 300))

    # ── Fetching ────────────────────────────────────────────────
    fetch_workers: int = field(default_factory=lambda: _env_int("FETCH_WORKERS", 4))
    # Minimum spacing between two requests to the same host; 0 disables.
    per_host_delay_s: float = field(default_factory=lambda: _env_float("PER_HOST_DELAY_S", 0.0))
    http_timeout_s: float = field(default_factory=lambda: _env_float("HTTP_TIMEOUT_S", 15.0))
    user_agent: str = field(default_factory=lambda: os.getenv("USER_AGENT", DEFAULT_USER_AGENT))

    # Comma-separated hosting platforms that expose /api/v1/posts.
    fallback_platform_hosts: str = field(default_factory=lambda: os.getenv("FALLBACK_PLATFORM_HOSTS", "substack.com"))

    # ── Derived helpers ─────────────────────────────────────────

    @property
    def feed_url(self) -> str:
        """Public URL of the generated feed."""
        return self.site_url.rstrip("/") + "/feed.xml"

    @property
    def platform_hosts(self) -> tuple[str, ...]:
        """Lower-cased platform host suffixes eligible for the JSON fallback."""
        return tuple(
            h.strip().lower().lstrip(".")
            for h in self.fallback_platform_hosts.split(",")
            if h.strip()
        )
