"""Atomic artifact writer.

Writes the rendered feed using a tempfile → rename pattern so readers
never see a partially-written file and a failed write leaves the previous
artifact in place.
"""

from __future__ import annotations

import os
import tempfile


def write_feed(path: str, data: bytes) -> None:
    """Atomically write *data* to *path*, creating parent directories."""
    dest_dir = os.path.dirname(path) or "."
    os.makedirs(dest_dir, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=dest_dir, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        # mkstemp creates 0600; the feed is public.
        os.chmod(tmp, 0o644)
        os.replace(tmp, path)
    except BaseException:
        # Clean up temp file on any failure
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
