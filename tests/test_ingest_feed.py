"""Tests for the per-source fetcher: RSS/Atom path, platform fallback,
failure isolation and the per-host throttle."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

# Ensure project root is on the path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from community_feed._http import HostThrottle, origin_of
from community_feed.common_types import Source
from community_feed.config import Config
from community_feed.errors import FallbackError, FeedFetchError, FeedParseError
from community_feed.ingest_feed import FeedFetcher, is_platform_url

RSS_BODY = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/">
  <channel>
    <title>Harbour Arts</title>
    <link>https://arts.example/</link>
    <description>News</description>
    <item>
      <title>Open studios</title>
      <link>https://arts.example/open-studios</link>
      <pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate>
      <description>Short teaser</description>
      <content:encoded><![CDATA[<p>Full <b>write-up</b> of open studios</p>]]></content:encoded>
    </item>
    <item>
      <title>Undated note</title>
      <link>https://arts.example/note</link>
      <description><![CDATA[<p>Hello world</p>]]></description>
    </item>
  </channel>
</rss>
"""

ATOM_BODY = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Library</title>
  <id>tag:library.example,2024:feed</id>
  <updated>2024-02-01T09:00:00Z</updated>
  <entry>
    <title>Reading club</title>
    <id>tag:library.example,2024:1</id>
    <link rel="alternate" href="https://library.example/reading-club"/>
    <updated>2024-02-01T09:00:00Z</updated>
    <summary>Monthly meetup</summary>
  </entry>
</feed>
"""

POSTS = [
    {
        "title": "Beach clean",
        "canonical_url": "https://news.example.org/p/beach-clean",
        "post_date": "2024-04-02T08:00:00.000Z",
        "body_html": "<p>Bring gloves</p>",
        "subtitle": "Saturday",
    },
    {
        "title": "Minutes",
        "canonical_url": "https://news.example.org/p/minutes",
        "post_date": "2024-03-28T08:00:00.000Z",
        "body_html": None,
        "subtitle": "From the AGM",
    },
    "not-a-post",
]


def _rss_with(n: int) -> str:
    items = "".join(
        f"<item><title>Item {i}</title><link>https://many.example/{i}</link></item>"
        for i in range(n)
    )
    return f'<?xml version="1.0"?><rss version="2.0"><channel><title>Many</title>{items}</channel></rss>'


class Recorder:
    """MockTransport handler that routes by (method, url) and records calls."""

    def __init__(self, routes):
        self.routes = routes
        self.calls: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, str(request.url))
        self.calls.append(key)
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        return route


def _fetcher(handler, **overrides) -> FeedFetcher:
    cfg = Config(per_host_delay_s=0.0, **overrides)
    client = httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)
    return FeedFetcher(client, cfg)


# ═══════════════════════════════════════════════════════════════
# Syndication path
# ═══════════════════════════════════════════════════════════════


class TestSyndication:

    def test_rss_entries_normalised(self):
        rec = Recorder({
            ("GET", "https://arts.example/feed"): httpx.Response(
                200, text=RSS_BODY, headers={"content-type": "application/rss+xml"},
            ),
        })
        result = _fetcher(rec).fetch_source(Source("Harbour Arts", "https://arts.example/feed"))

        assert result.ok and not result.via_fallback
        first, second = result.items
        assert first.title == "Open studios"
        assert first.link == "https://arts.example/open-studios"
        assert first.published_at == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
        assert "write-up" in first.raw_description
        assert "Short teaser" not in first.raw_description
        assert first.organisation_name == "Harbour Arts"

        assert second.published_at is None
        assert "Hello world" in second.raw_description

    def test_atom_feed(self):
        rec = Recorder({
            ("GET", "https://library.example/atom"): httpx.Response(200, text=ATOM_BODY),
        })
        result = _fetcher(rec).fetch_source(Source("Library", "https://library.example/atom"))
        assert result.ok
        assert [it.link for it in result.items] == ["https://library.example/reading-club"]
        assert result.items[0].published_at == datetime(2024, 2, 1, 9, 0, tzinfo=timezone.utc)
        assert result.items[0].raw_description == "Monthly meetup"

    def test_per_source_cap_keeps_document_order(self):
        rec = Recorder({("GET", "https://many.example/feed"): httpx.Response(200, text=_rss_with(9))})
        fetcher = _fetcher(rec, items_per_source=5)
        items = fetcher.fetch_syndication(Source("Many", "https://many.example/feed"))
        assert [it.title for it in items] == [f"Item {i}" for i in range(5)]

    def test_empty_but_valid_feed_succeeds(self):
        rec = Recorder({("GET", "https://quiet.example/feed"): httpx.Response(200, text=_rss_with(0))})
        result = _fetcher(rec).fetch_source(Source("Quiet", "https://quiet.example/feed"))
        assert result.ok
        assert result.items == []

    def test_feed_served_as_text_plain_is_accepted(self):
        plain = {"content-type": "text/plain; charset=utf-8"}
        rec = Recorder({
            ("GET", "https://raw.example/empty.xml"): httpx.Response(200, content=_rss_with(0).encode(), headers=plain),
            ("GET", "https://raw.example/two.xml"): httpx.Response(200, content=_rss_with(2).encode(), headers=plain),
        })
        fetcher = _fetcher(rec)
        empty = fetcher.fetch_source(Source("Raw", "https://raw.example/empty.xml"))
        assert empty.ok and empty.items == []
        two = fetcher.fetch_source(Source("Raw", "https://raw.example/two.xml"))
        assert [it.title for it in two.items] == ["Item 0", "Item 1"]

    def test_raw_description_kept_verbatim(self):
        body = RSS_BODY.replace(
            "<p>Full <b>write-up</b> of open studios</p>",
            '<p style="color:red">Full write-up <img src="/rel.jpg"></p>',
        )
        rec = Recorder({("GET", "https://arts.example/feed"): httpx.Response(200, text=body)})
        items = _fetcher(rec).fetch_syndication(Source("Harbour Arts", "https://arts.example/feed"))
        assert 'src="/rel.jpg"' in items[0].raw_description
        assert 'style="color:red"' in items[0].raw_description

    def test_http_error_raises_fetch_error(self):
        rec = Recorder({("GET", "https://gone.example/feed"): httpx.Response(410)})
        with pytest.raises(FeedFetchError, match="HTTP 410"):
            _fetcher(rec).fetch_syndication(Source("Gone", "https://gone.example/feed"))

    def test_non_feed_body_raises_parse_error(self):
        rec = Recorder({
            ("GET", "https://html.example/feed"): httpx.Response(
                200, text="<html><body><p>Welcome <b>home</p></body>", headers={"content-type": "text/html"},
            ),
        })
        with pytest.raises(FeedParseError):
            _fetcher(rec).fetch_syndication(Source("Html", "https://html.example/feed"))


# ═══════════════════════════════════════════════════════════════
# Failure handling and platform fallback
# ═══════════════════════════════════════════════════════════════


class TestFallback:

    def test_is_platform_url(self):
        hosts = ("substack.com",)
        assert is_platform_url("https://choir.substack.com/feed", hosts)
        assert is_platform_url("https://SUBSTACK.com/feed", hosts)
        assert not is_platform_url("https://notsubstack.com/feed", hosts)
        assert not is_platform_url("https://substack.com.evil.example/feed", hosts)
        assert not is_platform_url("not a url", hosts)

    def test_origin_of(self):
        assert origin_of("https://news.example.org:8443/feed?x=1") == "https://news.example.org:8443"

    def test_unrecognised_host_fails_without_fallback(self, caplog):
        rec = Recorder({("GET", "https://down.example/feed"): httpx.ConnectError("Connection refused")})
        with caplog.at_level("WARNING"):
            result = _fetcher(rec).fetch_source(Source("Down", "https://down.example/feed"))

        assert not result.ok
        assert result.items == []
        assert not result.via_fallback
        assert "Connection refused" in result.error
        assert rec.calls == [("GET", "https://down.example/feed")]
        assert "https://down.example/feed" in caplog.text

    def test_fallback_uses_redirect_resolved_origin(self):
        rec = Recorder({
            ("GET", "https://harbour.substack.com/feed"): httpx.Response(403, text="bot check"),
            ("HEAD", "https://harbour.substack.com/feed"): httpx.Response(
                301, headers={"Location": "https://news.example.org/feed"},
            ),
            ("HEAD", "https://news.example.org/feed"): httpx.Response(200),
            ("GET", "https://news.example.org/api/v1/posts"): httpx.Response(200, json=POSTS),
        })
        result = _fetcher(rec).fetch_source(Source("Harbour", "https://harbour.substack.com/feed"))

        assert result.ok and result.via_fallback
        assert ("GET", "https://news.example.org/api/v1/posts") in rec.calls
        assert ("GET", "https://harbour.substack.com/api/v1/posts") not in rec.calls
        assert [it.title for it in result.items] == ["Beach clean", "Minutes"]
        assert result.items[0].raw_description == "<p>Bring gloves</p>"
        assert result.items[1].raw_description == "From the AGM"
        assert result.items[0].organisation_name == "Harbour"

    def test_fallback_respects_per_source_cap(self):
        posts = [dict(POSTS[0], title=f"Post {i}") for i in range(8)]
        rec = Recorder({
            ("GET", "https://x.substack.com/feed"): httpx.Response(500),
            ("HEAD", "https://x.substack.com/feed"): httpx.Response(200),
            ("GET", "https://x.substack.com/api/v1/posts"): httpx.Response(200, json=posts),
        })
        result = _fetcher(rec, items_per_source=3).fetch_source(Source("X", "https://x.substack.com/feed"))
        assert [it.title for it in result.items] == ["Post 0", "Post 1", "Post 2"]

    def test_fallback_out_of_range_date_keeps_other_posts(self):
        posts = [POSTS[0], dict(POSTS[0], title="Ancient", post_date="0001-01-01T00:00:00+01:00")]
        rec = Recorder({
            ("GET", "https://x.substack.com/feed"): httpx.Response(500),
            ("HEAD", "https://x.substack.com/feed"): httpx.Response(200),
            ("GET", "https://x.substack.com/api/v1/posts"): httpx.Response(200, json=posts),
        })
        result = _fetcher(rec).fetch_source(Source("X", "https://x.substack.com/feed"))
        assert result.ok
        assert [it.title for it in result.items] == ["Beach clean", "Ancient"]
        assert result.items[0].published_at == datetime(2024, 4, 2, 8, 0, tzinfo=timezone.utc)
        assert result.items[1].published_at is None

    def test_fallback_non_json_fails_source(self):
        rec = Recorder({
            ("GET", "https://x.substack.com/feed"): httpx.Response(500),
            ("HEAD", "https://x.substack.com/feed"): httpx.Response(200),
            ("GET", "https://x.substack.com/api/v1/posts"): httpx.Response(200, text="<html>"),
        })
        result = _fetcher(rec).fetch_source(Source("X", "https://x.substack.com/feed"))
        assert not result.ok and result.via_fallback
        assert "Non-JSON" in result.error

    def test_fallback_dict_payload_fails(self):
        rec = Recorder({
            ("GET", "https://x.substack.com/feed"): httpx.Response(500),
            ("HEAD", "https://x.substack.com/feed"): httpx.Response(200),
            ("GET", "https://x.substack.com/api/v1/posts"): httpx.Response(200, json={"error": "nope"}),
        })
        with pytest.raises(FallbackError, match="instead of list"):
            _fetcher(rec).fetch_platform_posts(Source("X", "https://x.substack.com/feed"))

    def test_fallback_head_transport_error_fails_source(self):
        rec = Recorder({
            ("GET", "https://x.substack.com/feed"): httpx.Response(500),
            ("HEAD", "https://x.substack.com/feed"): httpx.ReadTimeout("timed out"),
        })
        result = _fetcher(rec).fetch_source(Source("X", "https://x.substack.com/feed"))
        assert not result.ok
        assert "timed out" in result.error

    def test_unexpected_exception_is_contained(self):
        rec = Recorder({("GET", "https://arts.example/feed"): httpx.Response(200, text=RSS_BODY)})
        fetcher = _fetcher(rec)
        with patch("community_feed.ingest_feed.normalize", side_effect=RuntimeError("boom")):
            result = fetcher.fetch_source(Source("Arts", "https://arts.example/feed"))
        assert not result.ok
        assert result.error == "boom"


# ═══════════════════════════════════════════════════════════════
# HostThrottle
# ═══════════════════════════════════════════════════════════════


class TestHostThrottle:

    def test_disabled_never_sleeps(self):
        with patch("community_feed._http.time.sleep") as sleep:
            t = HostThrottle(0)
            t.wait("https://a.example/1")
            t.wait("https://a.example/2")
        sleep.assert_not_called()

    def test_spaces_requests_per_host(self):
        with patch("community_feed._http.time.monotonic", return_value=100.0), \
                patch("community_feed._http.time.sleep") as sleep:
            t = HostThrottle(0.5)
            t.wait("https://a.example/1")
            t.wait("https://b.example/1")
            sleep.assert_not_called()
            t.wait("https://a.example/2")
            sleep.assert_called_once_with(pytest.approx(0.5))
