"""manifest-sync: keep executable manifests of remote repositories current and safe."""
from manifest_sync.core.config import SyncConfig
from manifest_sync.manifest import ManifestCache, ManifestValidator, ValidatedManifest
from manifest_sync.mirror import LocalMirrorStore, MirrorKind, RepositoryHandle, StalenessOracle
from manifest_sync.persistence import JsonRepositoryRegistry, RepositoryStore
from manifest_sync.pipeline import RefreshPipeline

__version__ = "0.1.0"

__all__ = [
    "JsonRepositoryRegistry",
    "LocalMirrorStore",
    "ManifestCache",
    "ManifestValidator",
    "MirrorKind",
    "RefreshPipeline",
    "RepositoryHandle",
    "RepositoryStore",
    "StalenessOracle",
    "SyncConfig",
    "ValidatedManifest",
]
