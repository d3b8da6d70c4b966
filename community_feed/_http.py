"""Shared HTTP helpers for the directory and feed fetchers.

Centralises client construction and URL/exception sanitisation so that
credentials embedded in feed URLs are never logged in plain text,
regardless of which fetcher raises the error.

Also provides ``HostThrottle``, the per-host politeness delay shared by
all fetch workers.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from urllib.parse import urlsplit

import httpx

from .config import Config

logger = logging.getLogger(__name__)

# Regex to strip API keys/tokens from URLs before logging.
_TOKEN_RE = re.compile(r"(apikey|api_key|token|key)=[^&\s]+", re.IGNORECASE)


def _sanitize_url(url: str) -> str:
    """Remove apikey/token query params from a URL for safe logging."""
    return _TOKEN_RE.sub(r"\1=***", url)


def _sanitize_exc(exc: BaseException) -> str:
    """Strip API keys/tokens from exception text for safe logging."""
    return _TOKEN_RE.sub(r"\1=***", str(exc) or type(exc).__name__)


def build_client(cfg: Config, transport: httpx.BaseTransport | None = None) -> httpx.Client:
    """Create the run-wide client.  *transport* is for tests."""
    return httpx.Client(
        timeout=cfg.http_timeout_s,
        follow_redirects=True,
        headers={"User-Agent": cfg.user_agent},
        transport=transport,
    )


def origin_of(url: str) -> str:
    """``scheme://host[:port]`` of *url*."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def log_fetch_warning(label: str, url: str, exc: BaseException) -> None:
    """Log one source failure with the offending URL and scrubbed message."""
    logger.warning("%s failed: %s (%s)", label, _sanitize_url(url), _sanitize_exc(exc))


class HostThrottle:
    """Enforce a minimum interval between requests to the same host.

    Safe to share between worker threads.  With ``min_interval_s <= 0``
    ``wait()`` returns immediately.
    """

    def __init__(self, min_interval_s: float) -> None:
        self.min_interval_s = max(0.0, float(min_interval_s))
        self._next_slot: dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, url: str) -> None:
        if self.min_interval_s <= 0:
            return
        host = (urlsplit(url).hostname or "").lower()
        # Reserve the next slot under the lock, sleep outside it.
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot.get(host, 0.0))
            self._next_slot[host] = slot + self.min_interval_s
        delay = slot - now
        if delay > 0:
            logger.debug("Throttling %s for %.2fs", host, delay)
            time.sleep(delay)
