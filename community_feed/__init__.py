"""community_feed – one RSS feed from many community organisations.

Reads the organisation directory (CSV), fetches each organisation's
RSS/Atom feed with a platform JSON fallback, normalises every entry into
a ``FeedItem``, and writes the newest items as a single RSS 2.0 file.

Run once per schedule via ``python -m community_feed.run`` or
``pipeline.run(cfg)``.
"""
