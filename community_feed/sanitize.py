"""Plain-text summaries for outbound feed descriptions.

Heuristic regex stripping, not an HTML parser: malformed markup may leave
stray characters behind, but never raises.  The ellipsis appended on
truncation is not counted against ``max_length``.
"""

from __future__ import annotations

import re

ELLIPSIS = "…"

_IMG_TAG_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
# Platform shortcodes: [caption id="x"], [/caption], [gallery ids="1,2"/]
_SHORTCODE_RE = re.compile(r"\[/?[A-Za-z][\w-]*(?:[\s/][^\[\]]*)?\]")
_HTML_TAG_RE = re.compile(r"<[^>]+>")

# Removing a match can join the surrounding text into a new one
# (e.g. "[cap[b]tion]" → "[caption]"), so strip until nothing changes.
# Every pass that changes the text shortens it, so this terminates.


def _strip_markup(text: str) -> str:
    while True:
        stripped = _IMG_TAG_RE.sub("", text)
        stripped = _SHORTCODE_RE.sub("", stripped)
        stripped = _HTML_TAG_RE.sub(" ", stripped)
        if stripped == text:
            break
        text = stripped
    return text


def sanitize(raw_html: str | None, max_length: int = 300) -> str:
    """Strip images, shortcodes and tags; collapse whitespace; truncate."""
    if not raw_html:
        return ""
    text = " ".join(_strip_markup(str(raw_html)).split())
    if len(text) > max_length:
        text = text[:max_length].rstrip() + ELLIPSIS
    return text
