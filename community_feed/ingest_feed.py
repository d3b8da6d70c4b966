"""Synchronous per-source feed adapter.

For each ``Source``:
 1. GET ``feed_url`` and parse it as RSS/Atom with ``feedparser``.
 2. If that fails and the URL is on a recognised hosting platform,
    resolve redirects with a HEAD request and read
    ``{resolved origin}/api/v1/posts`` instead.

``fetch_source()`` never raises: every failure is logged and reported as a
failed ``SourceResult`` so one bad source cannot affect another.
"""

from __future__ import annotations

import io
import json
import logging
from typing import Any
from urllib.parse import urlsplit

import feedparser
import httpx

from ._http import HostThrottle, _sanitize_exc, _sanitize_url, log_fetch_warning, origin_of
from .common_types import FeedItem, PlatformPost, Source, SourceResult, SyndicationEntry
from .config import Config
from .errors import FallbackError, FeedFetchError, FeedParseError
from .normalize import normalize

logger = logging.getLogger(__name__)

PLATFORM_POSTS_PATH = "/api/v1/posts"

# Content-type and encoding complaints; the document itself parsed fine.
_BENIGN_BOZO = (feedparser.NonXMLContentType, feedparser.CharacterEncodingOverride)


def is_platform_url(url: str, platform_hosts: tuple[str, ...]) -> bool:
    """True if *url*'s host is, or is a subdomain of, a platform host."""
    host = (urlsplit(url).hostname or "").lower()
    if not host:
        return False
    return any(host == p or host.endswith("." + p) for p in platform_hosts)


def _as_list(x: Any) -> list[dict[str, Any]]:
    """Keep only the dict elements of a JSON array."""
    return [item for item in x if isinstance(item, dict)]


class FeedFetcher:
    """Fetch and normalise one source at a time; thread-safe."""

    def __init__(
        self,
        client: httpx.Client,
        cfg: Config,
        throttle: HostThrottle | None = None,
    ) -> None:
        self.client = client
        self.items_per_source = max(0, cfg.items_per_source)
        self.platform_hosts = cfg.platform_hosts
        self.throttle = throttle or HostThrottle(cfg.per_host_delay_s)

    # ── HTTP ────────────────────────────────────────────────────

    def _request(self, method: str, url: str, error_cls: type) -> httpx.Response:
        self.throttle.wait(url)
        try:
            r = self.client.request(method, url)
        except httpx.HTTPError as exc:
            raise error_cls(f"{method} {_sanitize_url(url)}: {_sanitize_exc(exc)}", url=url) from exc
        return r

    def _get_ok(self, url: str, error_cls: type) -> httpx.Response:
        r = self._request("GET", url, error_cls)
        if not r.is_success:
            raise error_cls(f"HTTP {r.status_code} from {_sanitize_url(str(r.url))}", url=url)
        return r

    # ── Primary: RSS / Atom ─────────────────────────────────────

    def fetch_syndication(self, source: Source) -> list[FeedItem]:
        """GET + parse ``source.feed_url``; raises ``FeedFetchError``/``FeedParseError``."""
        r = self._get_ok(source.feed_url, FeedFetchError)
        parsed = feedparser.parse(
            io.BytesIO(r.content),
            sanitize_html=False,
            resolve_relative_uris=False,
        )
        entries = parsed.get("entries") or []
        reason = parsed.get("bozo_exception")
        if parsed.get("bozo") and not entries and not isinstance(reason, _BENIGN_BOZO):
            reason = reason or "not a syndication document"
            raise FeedParseError(
                f"Unreadable feed at {_sanitize_url(source.feed_url)}: {reason}",
                url=source.feed_url,
            )
        return [
            normalize(SyndicationEntry(entry), source)
            for entry in entries[: self.items_per_source]
        ]

    # ── Fallback: platform JSON API ─────────────────────────────

    def resolve_posts_endpoint(self, feed_url: str) -> str:
        """HEAD *feed_url* following redirects; posts endpoint at the final origin."""
        r = self._request("HEAD", feed_url, FallbackError)
        return origin_of(str(r.url)) + PLATFORM_POSTS_PATH

    def fetch_platform_posts(self, source: Source) -> list[FeedItem]:
        """Read ``/api/v1/posts`` at the redirect-resolved origin."""
        endpoint = self.resolve_posts_endpoint(source.feed_url)
        logger.info(
            "Trying platform fallback for %s via %s",
            _sanitize_url(source.feed_url), _sanitize_url(endpoint),
        )
        r = self._get_ok(endpoint, FallbackError)
        try:
            payload = r.json()
        except (json.JSONDecodeError, ValueError) as exc:
            ct = r.headers.get("content-type", "")
            raise FallbackError(
                f"Non-JSON posts response (content-type={ct!r}) from {_sanitize_url(endpoint)}",
                url=source.feed_url,
            ) from exc
        if not isinstance(payload, list):
            raise FallbackError(
                f"Posts endpoint returned {type(payload).__name__} instead of list: {_sanitize_url(endpoint)}",
                url=source.feed_url,
            )
        return [
            normalize(PlatformPost(post), source)
            for post in _as_list(payload)[: self.items_per_source]
        ]

    # ── Per-source state machine ────────────────────────────────

    def fetch_source(self, source: Source) -> SourceResult:
        """Succeeded(items) or Failed; never raises."""
        try:
            return SourceResult(source, self.fetch_syndication(source))
        except Exception as exc:
            log_fetch_warning("RSS", source.feed_url, exc)
            primary_exc = exc

        if not is_platform_url(source.feed_url, self.platform_hosts):
            return SourceResult(source, error=_sanitize_exc(primary_exc))

        try:
            return SourceResult(source, self.fetch_platform_posts(source), via_fallback=True)
        except Exception as exc:
            log_fetch_warning("Platform fallback", source.feed_url, exc)
            return SourceResult(source, error=_sanitize_exc(exc), via_fallback=True)
