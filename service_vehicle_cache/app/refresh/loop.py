"""
Per-track refresh loop.

One loop runs per track for the lifetime of the process. It bootstraps the
mandatory shapes document, then polls the remaining documents forever and
publishes real changes into the shared snapshot store. When no polled
document changes for too long, the loop replaces vehicles with an empty
feature collection instead of serving arbitrarily old positions, and backs
off.
"""

import asyncio
import contextlib
import time
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Sequence

from shared.errors import BootstrapError
from shared.logging import get_logger, set_track_context
from shared.metrics import MetricsCollector
from ..documents import DOCUMENTS, EMPTY_FEATURE_COLLECTION, VEHICLES, DocumentDefinition, Track
from ..snapshot.store import SnapshotStore
from ..storage.local_copies import LocalCopyStore
from ..storage.object_client import ObjectStoreClient
from .detector import ChangeDetector, RefreshResult, RefreshStatus


DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_STALE_THRESHOLD = 60


class LoopState(Enum):
    BOOTSTRAPPING = "bootstrapping"
    POLLING = "polling"
    STALE_FALLBACK = "stale_fallback"


class RefreshLoop:
    """Keeps one track's documents current in the snapshot store.

    The loop is the only writer for its track's keys. Its detector, local
    copies and staleness counter are private; request handlers only see
    the store.
    """

    def __init__(
        self,
        track: Track,
        client: ObjectStoreClient,
        copies: LocalCopyStore,
        store: SnapshotStore,
        *,
        documents: Sequence[DocumentDefinition] = DOCUMENTS,
        stale_document: DocumentDefinition = VEHICLES,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stale_threshold: int = DEFAULT_STALE_THRESHOLD,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not documents:
            raise ValueError("at least one document is required")
        self.track = track
        self.copies = copies
        self.store = store
        self.documents = tuple(documents)
        self.stale_document = stale_document
        self.poll_interval = poll_interval
        self.stale_threshold = stale_threshold
        self.metrics = metrics
        self.detector = ChangeDetector(client, copies, metrics=metrics)
        self.logger = get_logger(f"vehicle-cache.refresh.{track.name}")
        self._sleep = sleep

        self.state = LoopState.BOOTSTRAPPING
        self.stale_count = 0
        self.passes = 0
        self.last_change: Dict[str, float] = {}

    @property
    def bootstrap_document(self) -> DocumentDefinition:
        return self.documents[0]

    @property
    def polled_documents(self) -> Sequence[DocumentDefinition]:
        return self.documents[1:]

    async def _refresh(self, document: DocumentDefinition) -> RefreshResult:
        key = self.track.object_key(document)
        timer = (
            self.metrics.time_operation("vc_refresh_duration_seconds", key=key)
            if self.metrics else contextlib.nullcontext()
        )
        with timer:
            return await asyncio.to_thread(self.detector.refresh, key)

    def _publish(self, document: DocumentDefinition, content: bytes) -> None:
        self.store.set(self.track.store_key(document), content)
        self.last_change[document.name] = time.time()

    async def bootstrap(self) -> bytes:
        """Load the bootstrap document synchronously.

        Raises BootstrapError when it cannot be fetched; the service cannot
        usefully serve without it.
        """
        set_track_context(self.track.name)
        document = self.bootstrap_document
        key = self.track.object_key(document)
        result = await self._refresh(document)

        if result.status is RefreshStatus.FETCH_FAILED:
            raise BootstrapError(
                f"Unable to load {key}",
                details={"track": self.track.name, "key": key, "reason": result.reason}
            )

        if result.is_changed:
            content = result.content
        else:
            try:
                content = await asyncio.to_thread(self.copies.read, key)
            except OSError as e:
                raise BootstrapError(
                    f"Unable to read local copy of {key}",
                    details={"track": self.track.name, "key": key, "reason": str(e)}
                ) from e

        self._publish(document, content)
        self.state = LoopState.POLLING
        self.logger.info("Bootstrap complete", key=key, size=len(content))
        return content

    async def poll(self) -> Dict[str, RefreshResult]:
        """Run one polling pass over every non-bootstrap document."""
        results: Dict[str, RefreshResult] = {}
        changed = False
        for document in self.polled_documents:
            result = await self._refresh(document)
            results[document.name] = result

            if result.is_changed:
                self._publish(document, result.content)
                changed = True

        # Any real change resets staleness; failures count as no change.
        self.stale_count = 0 if changed else self.stale_count + 1

        self.passes += 1
        if self.metrics:
            self.metrics.set_gauge("vc_staleness_passes", self.stale_count, track=self.track.name)
        return results

    async def step(self) -> Dict[str, RefreshResult]:
        """One full cycle: poll, fall back if stale, then wait for the next pass."""
        results = await self.poll()
        if self.stale_count >= self.stale_threshold:
            await self._stale_fallback()
        await self._sleep(self.poll_interval)
        return results

    async def _stale_fallback(self) -> None:
        self.state = LoopState.STALE_FALLBACK
        self.store.set(self.track.store_key(self.stale_document), EMPTY_FEATURE_COLLECTION)
        self.logger.warning(
            "Feed stale, published empty placeholder",
            document=self.stale_document.name,
            stale_passes=self.stale_count,
            backoff_seconds=self.stale_count
        )
        if self.metrics:
            self.metrics.record_stale_fallback(self.track.name, self.stale_count)
        # Linear backoff; the counter keeps growing until a real change resets it.
        await self._sleep(self.stale_count)
        self.state = LoopState.POLLING

    async def run(self) -> None:
        """Bootstrap if needed, then poll until the process exits."""
        set_track_context(self.track.name)
        if self.state is LoopState.BOOTSTRAPPING:
            await self.bootstrap()

        self.logger.info(
            "Refresh loop started",
            documents=[doc.name for doc in self.polled_documents],
            poll_interval=self.poll_interval
        )
        while True:
            try:
                await self.step()
            except Exception as e:
                self.logger.error("Refresh pass failed", error=str(e), exc_info=True)
                if self.metrics:
                    self.metrics.record_error("refresh_pass_failed")
                await self._sleep(self.poll_interval)

    def status(self) -> Dict[str, object]:
        """Read-only summary for health reporting."""
        return {
            "state": self.state.value,
            "stale_passes": self.stale_count,
            "passes": self.passes,
            "last_change": dict(self.last_change),
        }
