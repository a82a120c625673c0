"""
Request path to (track, document) resolution.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from ..documents import ALERTS, PRIMARY_TRACK, SHAPES, VEHICLES, DocumentDefinition, Track, alternate_track


ROUTES: Dict[str, DocumentDefinition] = {
    "/alerts": ALERTS,
    "/shapes": SHAPES,
    "/": VEHICLES,
    "/vehicles": VEHICLES,
}

DEFAULT_ALTERNATE_PATH = "/dev"


@dataclass(frozen=True)
class ResolvedKey:
    track: Track
    document: DocumentDefinition

    @property
    def store_key(self) -> str:
        return self.track.store_key(self.document)


class KeyResolver:
    """Maps inbound paths onto the static route table.

    A path under ``alternate_path`` resolves on the alternate track with
    that prefix stripped; an empty remainder means vehicles. Anything not in
    the table resolves to None, never to a default document.
    """

    def __init__(
        self,
        primary: Track = PRIMARY_TRACK,
        alternate: Optional[Track] = None,
        alternate_path: str = DEFAULT_ALTERNATE_PATH,
        routes: Optional[Dict[str, DocumentDefinition]] = None,
    ):
        self.primary = primary
        self.alternate = alternate or alternate_track()
        self.alternate_path = alternate_path.rstrip("/")
        self.routes = dict(routes or ROUTES)

    def _split_track(self, path: str):
        if path == self.alternate_path or path.startswith(self.alternate_path + "/"):
            return self.alternate, path[len(self.alternate_path):]
        return self.primary, path

    def resolve(self, path: str) -> Optional[ResolvedKey]:
        track, remainder = self._split_track(path)
        if track is self.alternate and remainder == "":
            return ResolvedKey(track, VEHICLES)

        document = self.routes.get(remainder)
        if document is None:
            return None
        return ResolvedKey(track, document)
