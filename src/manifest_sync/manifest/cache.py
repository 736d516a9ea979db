"""In-memory cache of validated manifests."""
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from manifest_sync.manifest.schema import ValidatedManifest
from manifest_sync.mirror.handle import MirrorKind


@dataclass(frozen=True)
class CacheEntry:
    repository_id: str
    kind: MirrorKind
    manifest: ValidatedManifest
    source_revision: Optional[str] = None


class ManifestCache:
    """Last validated manifest per repository id and mirror kind.

    Entries never expire on their own; the refresh pipeline replaces or
    invalidates them whenever a mirror was refreshed.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, MirrorKind], CacheEntry] = {}
        self._write_lock = threading.Lock()

    def entry(self, repository_id: str, kind: MirrorKind = MirrorKind.FULL) -> Optional[CacheEntry]:
        return self._entries.get((repository_id, MirrorKind(kind)))

    def get(self, repository_id: str, kind: MirrorKind = MirrorKind.FULL) -> Optional[ValidatedManifest]:
        entry = self.entry(repository_id, kind)
        return entry.manifest if entry is not None else None

    def put(
        self,
        repository_id: str,
        manifest: ValidatedManifest,
        kind: MirrorKind = MirrorKind.FULL,
        source_revision: Optional[str] = None,
    ) -> CacheEntry:
        entry = CacheEntry(
            repository_id=repository_id,
            kind=MirrorKind(kind),
            manifest=manifest,
            source_revision=source_revision,
        )
        with self._write_lock:
            self._entries[(repository_id, entry.kind)] = entry
        return entry

    def invalidate(self, repository_id: str, kind: Optional[MirrorKind] = None) -> None:
        """Drop the entry for one kind, or for every kind when kind is None."""
        kinds = list(MirrorKind) if kind is None else [MirrorKind(kind)]
        with self._write_lock:
            for k in kinds:
                self._entries.pop((repository_id, k), None)

    def clear(self) -> None:
        with self._write_lock:
            self._entries.clear()

    def __contains__(self, repository_id: str) -> bool:
        return any(key[0] == repository_id for key in list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
