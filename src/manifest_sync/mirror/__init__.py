"""Local mirrors of remote repositories and their freshness policies."""
from manifest_sync.mirror.archive import FileArchive
from manifest_sync.mirror.handle import MirrorKind, MirrorState, RepositoryHandle
from manifest_sync.mirror.staleness import StalenessOracle
from manifest_sync.mirror.store import (
    FullMirrorStrategy,
    LocalMirrorStore,
    ManifestOnlyStrategy,
    MirrorStrategy,
    raw_manifest_url,
)

__all__ = [
    "FileArchive",
    "FullMirrorStrategy",
    "LocalMirrorStore",
    "ManifestOnlyStrategy",
    "MirrorKind",
    "MirrorState",
    "MirrorStrategy",
    "RepositoryHandle",
    "StalenessOracle",
    "raw_manifest_url",
]
