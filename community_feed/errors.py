"""Exception hierarchy for the community feed aggregator.

Directory errors are fatal to a run.  Source errors are caught at the
source boundary and only cost that one source its items.
"""
from __future__ import annotations


class CommunityFeedError(Exception):
    """Base error for all community_feed subsystems."""
    pass


# ---------------------------------------------------------------------------
# Fatal: the set of sources cannot be established
# ---------------------------------------------------------------------------

class DirectoryError(CommunityFeedError):
    """The organisation directory could not be loaded."""

    def __init__(self, message: str, *, url: str = ""):
        self.url = url
        super().__init__(message)


class DirectoryFetchError(DirectoryError):
    """Directory unreachable or answered with a non-success status."""

    def __init__(self, message: str, *, url: str = "", status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, url=url)


class DirectoryParseError(DirectoryError):
    """Directory body is empty, headerless or not valid CSV."""
    pass


# ---------------------------------------------------------------------------
# Recoverable: one source contributes zero items
# ---------------------------------------------------------------------------

class SourceError(CommunityFeedError):
    """Base error for a single source's fetch."""

    def __init__(self, message: str, *, url: str = ""):
        self.url = url
        super().__init__(message)


class FeedFetchError(SourceError):
    """Transport failure or HTTP error status on the syndication fetch."""
    pass


class FeedParseError(SourceError):
    """Response could not be read as a syndication document."""
    pass


class FallbackError(SourceError):
    """The platform JSON fallback failed (HEAD, GET or payload shape)."""
    pass
