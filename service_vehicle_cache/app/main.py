"""
Vehicle Cache service.

Serves the latest shapes, alerts and vehicles documents for a primary and a
preview ("dev") track from memory, refreshed in the background from an
S3-compatible bucket.
"""

import argparse
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import Request

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.metrics import MetricsCollector
from .documents import PRIMARY_TRACK, alternate_track
from .refresh.loop import RefreshLoop
from .routing.resolver import KeyResolver
from .routing.responder import DocumentResponder
from .snapshot.store import SnapshotStore
from .storage.local_copies import LocalCopyStore
from .storage.object_client import ObjectStoreClient

SERVICE_NAME = "vehicle-cache"


class VehicleCacheService(BaseService):
    """Vehicle Cache service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        object_client: Optional[ObjectStoreClient] = None,
        store: Optional[SnapshotStore] = None,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(SERVICE_NAME, config=config, metrics=metrics)
        self.store = store if store is not None else SnapshotStore()
        self.object_client = object_client
        self.tracks = (PRIMARY_TRACK, alternate_track(self.config.dev_prefix))
        self.resolver = KeyResolver(self.tracks[0], self.tracks[1])
        self.responder = DocumentResponder(self.store, self.metrics)
        self.loops: Dict[str, RefreshLoop] = {}
        self._tasks: List[asyncio.Task] = []
        self._sleep = sleep

        self._setup_document_routes()

    def _build_loops(self) -> Dict[str, RefreshLoop]:
        return {
            track.name: RefreshLoop(
                track,
                self.object_client,
                LocalCopyStore(self.config.data_dir),
                self.store,
                poll_interval=self.config.poll_interval_seconds,
                stale_threshold=self.config.stale_threshold,
                metrics=self.metrics,
                sleep=self._sleep,
            )
            for track in self.tracks
        }

    async def startup(self):
        """Purge old copies, bootstrap every track, then start polling.

        ConfigurationError and BootstrapError propagate and abort startup.
        """
        await asyncio.to_thread(LocalCopyStore(self.config.data_dir).purge)

        if self.object_client is None:
            self.object_client = ObjectStoreClient.from_config(self.config)

        self.loops = self._build_loops()
        for loop in self.loops.values():
            await loop.bootstrap()

        self._tasks = [
            asyncio.create_task(loop.run(), name=f"refresh-{name}")
            for name, loop in self.loops.items()
        ]
        self.logger.info("Refresh loops started", tracks=list(self.loops))

    async def shutdown(self):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def _check_dependencies(self) -> Dict[str, Any]:
        return {
            "tracks": {name: loop.status() for name, loop in self.loops.items()},
            "published": sorted(self.store.keys()),
        }

    def _setup_document_routes(self):
        """Set up document routes. Registered last so /health and /metrics win."""

        @self.app.get("/{path:path}", include_in_schema=False)
        async def serve_document(request: Request):
            """Serve a published document for the resolved track."""
            path = request.url.path
            return self.responder.render(self.resolver.resolve(path), path)


def create_app():
    """Create FastAPI application."""
    service = VehicleCacheService()
    return service.app


def main(argv=None):
    parser = argparse.ArgumentParser(description="Serve cached vehicle, shape and alert documents")
    parser.add_argument("--debug", action="store_true", help="sets log level to debug")
    args = parser.parse_args(argv)

    overrides = {"log_level": "debug"} if args.debug else {}
    service = VehicleCacheService(config=get_config(SERVICE_NAME, **overrides))
    service.run()


if __name__ == "__main__":
    main()
