"""
Change detection between remote objects and their local copies.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from shared.errors import ObjectFetchError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..storage.local_copies import LocalCopyStore
from ..storage.object_client import ObjectMetadata, ObjectStoreClient


class RefreshStatus(Enum):
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    FETCH_FAILED = "fetch_failed"


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of checking one object.

    ``content`` is only set for CHANGED (and may legitimately be empty);
    ``reason`` is only set for FETCH_FAILED.
    """
    status: RefreshStatus
    content: Optional[bytes] = None
    metadata: Optional[ObjectMetadata] = None
    reason: Optional[str] = None

    @classmethod
    def unchanged(cls, metadata: Optional[ObjectMetadata] = None) -> "RefreshResult":
        return cls(RefreshStatus.UNCHANGED, metadata=metadata)

    @classmethod
    def changed(cls, content: bytes, metadata: ObjectMetadata) -> "RefreshResult":
        return cls(RefreshStatus.CHANGED, content=content, metadata=metadata)

    @classmethod
    def failed(cls, reason: str) -> "RefreshResult":
        return cls(RefreshStatus.FETCH_FAILED, reason=reason)

    @property
    def is_changed(self) -> bool:
        return self.status is RefreshStatus.CHANGED


class ChangeDetector:
    """Decides per object key whether the remote copy differs from the local one.

    Equality of ANY of entity tag, modification time (whole seconds) or size
    counts as unchanged. A same-size, same-mtime update with a new tag can
    therefore be missed; that is the accepted trade-off for skipping
    downloads.
    """

    def __init__(self, client: ObjectStoreClient, copies: LocalCopyStore,
                 metrics: Optional[MetricsCollector] = None):
        self.client = client
        self.copies = copies
        self.metrics = metrics
        self.logger = get_logger("vehicle-cache.detector")
        self._etags: Dict[str, str] = {}

    def etag(self, key: str) -> Optional[str]:
        """Entity tag recorded at the last successful download of ``key``."""
        return self._etags.get(key)

    def is_unchanged(self, key: str, remote: ObjectMetadata) -> bool:
        local = self.copies.stat(key)
        if local is None:
            return False

        cached_etag = self._etags.get(key)
        if cached_etag is not None and cached_etag == remote.etag:
            return True
        if remote.last_modified is not None and int(local.st_mtime) == int(remote.last_modified.timestamp()):
            return True
        return local.st_size == remote.size

    def refresh(self, key: str) -> RefreshResult:
        """Check ``key`` and download it if it changed. Never raises."""
        try:
            remote = self.client.stat(key)
        except ObjectFetchError as e:
            return self._fail(key, "stat", e)

        try:
            unchanged = self.is_unchanged(key, remote)
        except OSError as e:
            return self._fail(key, "local_stat", e)

        if unchanged:
            self.logger.debug("Object unchanged", key=key, etag=remote.etag, size=remote.size)
            return RefreshResult.unchanged(remote)

        try:
            content = self.client.get(key)
        except ObjectFetchError as e:
            return self._fail(key, "get", e)

        try:
            self.copies.replace(key, content, remote.last_modified)
        except OSError as e:
            return self._fail(key, "write", e)

        self._etags[key] = remote.etag
        self.logger.info("Object downloaded", key=key, size=len(content), etag=remote.etag)
        if self.metrics:
            self.metrics.record_refresh(key)
        return RefreshResult.changed(content, remote)

    def _fail(self, key: str, operation: str, error: Exception) -> RefreshResult:
        self.logger.error(
            "Object refresh failed",
            key=key,
            operation=operation,
            error=str(error),
            error_type=type(error).__name__
        )
        if self.metrics:
            self.metrics.record_refresh_failure(key)
        return RefreshResult.failed(f"{operation}: {error}")
