"""Entry point: ``python -m community_feed.run``

One-shot batch job, meant to be scheduled (cron / CI).  Exits 0 after
the feed is written, 1 if the run was aborted.

Environment variables override the defaults in ``Config``, e.g.:
    OUTPUT_PATH=public/feed.xml
    MAX_ITEMS=100
    FETCH_WORKERS=4
"""

from __future__ import annotations

import logging
import sys

from .config import Config
from .errors import DirectoryError
from .pipeline import run


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    log = logging.getLogger(__name__)
    cfg = Config()
    try:
        run(cfg)
    except DirectoryError as exc:
        log.error("Feed generation failed: %s", exc)
        return 1
    except Exception:
        log.exception("Feed generation failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
