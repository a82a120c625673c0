"""
In-memory snapshot of published documents.
"""

import threading
from typing import Dict, Iterator, Optional


class SnapshotStore:
    """Concurrent key -> bytes map shared by refresh loops and request handlers.

    Writers serialise on an internal lock; readers never take it. Values are
    immutable ``bytes`` and a write swaps the whole value in one dict
    assignment, so a reader sees either the previous or the new content,
    never a mix.
    """

    def __init__(self):
        self._entries: Dict[str, bytes] = {}
        self._versions: Dict[str, int] = {}
        self._write_lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        return self._entries.get(key)

    def set(self, key: str, content: bytes) -> int:
        """Create or replace ``key`` and return its new version number."""
        content = bytes(content)
        with self._write_lock:
            self._entries[key] = content
            version = self._versions.get(key, 0) + 1
            self._versions[key] = version
        return version

    def version(self, key: str) -> int:
        """Number of writes to ``key`` so far (0 when never published)."""
        return self._versions.get(key, 0)

    def keys(self):
        return list(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._entries)
