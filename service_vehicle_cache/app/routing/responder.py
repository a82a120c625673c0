"""
Rendering of published documents as HTTP responses.
"""

import hashlib
from typing import Optional

from fastapi import Response
from fastapi.responses import PlainTextResponse

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..snapshot.store import SnapshotStore
from .resolver import ResolvedKey

logger = get_logger("vehicle-cache.responder")

NOT_FOUND_BODY = "not found"
ERROR_BODY = "unable to load data"


def content_etag(content: bytes) -> str:
    """Hex SHA-256 of the exact bytes being served."""
    return hashlib.sha256(content).hexdigest()


class DocumentResponder:
    """Serves snapshot store entries with an integrity tag.

    Lookups never block and never touch the object store. A missing entry
    or an unresolved path is a 404; a failure while building the response
    is a 500. Neither propagates.
    """

    def __init__(self, store: SnapshotStore, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.metrics = metrics

    def _record(self, resolved: Optional[ResolvedKey], status_code: int) -> None:
        if self.metrics is None:
            return
        if resolved is None:
            self.metrics.record_document_request("none", "none", status_code)
        else:
            self.metrics.record_document_request(resolved.track.name, resolved.document.name, status_code)

    def not_found(self, resolved: Optional[ResolvedKey] = None, path: Optional[str] = None) -> Response:
        logger.warning(
            "Document not found",
            path=path,
            key=resolved.store_key if resolved else None
        )
        self._record(resolved, 404)
        return PlainTextResponse(NOT_FOUND_BODY, status_code=404)

    def render(self, resolved: Optional[ResolvedKey], path: Optional[str] = None) -> Response:
        if resolved is None:
            return self.not_found(None, path)

        # Read once: the hash and the body must come from the same bytes.
        content = self.store.get(resolved.store_key)
        if content is None:
            return self.not_found(resolved, path)

        try:
            etag = content_etag(content)
            response = Response(
                content=content,
                media_type="application/json",
                headers={
                    "ETag": etag,
                    "Access-Control-Allow-Origin": "*",
                },
            )
        except Exception as e:
            logger.error("Failed to render document", key=resolved.store_key, error=str(e))
            if self.metrics:
                self.metrics.record_error("render_failed")
            self._record(resolved, 500)
            return PlainTextResponse(ERROR_BODY, status_code=500)

        self._record(resolved, 200)
        return response
