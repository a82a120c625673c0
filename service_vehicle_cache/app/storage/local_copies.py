"""
Local materialized copies of remote objects.

Each track keeps the last downloaded bytes of every document on disk so the
change detector can compare size and modification time across passes.
"""

import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from shared.logging import get_logger


class LocalCopyStore:
    """Files named by object key under a single data directory."""

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)
        self.logger = get_logger("vehicle-cache.local_copies")

    def path_for(self, key: str) -> Path:
        return self.data_dir / key

    def stat(self, key: str) -> Optional[os.stat_result]:
        """Return the local copy's stat, or None when there is no copy."""
        try:
            return self.path_for(key).stat()
        except FileNotFoundError:
            return None

    def read(self, key: str) -> bytes:
        return self.path_for(key).read_bytes()

    def replace(self, key: str, content: bytes, modified: Optional[datetime] = None) -> Path:
        """Atomically replace the local copy with ``content``.

        The previous copy is removed first; the new one is written to a
        temporary file in the same directory and renamed into place. When
        ``modified`` is given it becomes the file's mtime.
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        path.unlink(missing_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(content)
            if modified is not None:
                ts = modified.timestamp()
                os.utime(tmp_name, (ts, ts))
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return path

    def purge(self) -> List[Path]:
        """Delete every JSON copy left by a previous run."""
        removed: List[Path] = []
        if not self.data_dir.is_dir():
            return removed
        for path in self.data_dir.glob("*.json"):
            try:
                path.unlink()
                removed.append(path)
            except OSError as e:
                self.logger.warning("Failed to remove stale local copy", path=str(path), error=str(e))
        if removed:
            self.logger.info("Purged local copies", count=len(removed), data_dir=str(self.data_dir))
        return removed
