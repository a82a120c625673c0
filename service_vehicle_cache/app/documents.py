"""
Document and track definitions for the Vehicle Cache Service.
"""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class DocumentDefinition:
    """A logical document and the object key it is stored under."""
    name: str
    object_key: str


@dataclass(frozen=True)
class Track:
    """Key-space namespace for an isolated copy of the pipeline."""
    name: str
    prefix: str = ""

    def object_key(self, document: DocumentDefinition) -> str:
        """Remote object key (and local copy file name) for a document."""
        return f"{self.prefix}{document.object_key}"

    def store_key(self, document: DocumentDefinition) -> str:
        """Snapshot store key for a document."""
        return f"{self.prefix}{document.name}.json"


SHAPES = DocumentDefinition("shapes", "shapes.json")
ALERTS = DocumentDefinition("alerts", "alerts.json")
VEHICLES = DocumentDefinition("vehicles", "vehicles.json")

# Order matters: the first document is loaded synchronously at bootstrap.
DOCUMENTS: Tuple[DocumentDefinition, ...] = (SHAPES, ALERTS, VEHICLES)
DOCUMENTS_BY_NAME = {doc.name: doc for doc in DOCUMENTS}

PRIMARY_TRACK = Track("live", "")
DEFAULT_ALTERNATE_PREFIX = "dev_"

# Published for vehicles once the feed has been stale for too long.
EMPTY_FEATURE_COLLECTION = b'{"type": "FeatureCollection", "features": []}'


def alternate_track(prefix: str = DEFAULT_ALTERNATE_PREFIX) -> Track:
    return Track("dev", prefix)
