"""Core configuration and error types."""
from manifest_sync.core.config import SyncConfig
from manifest_sync.core.errors import (
    ConfigError,
    CorruptLocalMirror,
    FatalSyncError,
    GitOperationError,
    ManifestMissing,
    ManifestParseError,
    ManifestSyncError,
    MirrorSyncError,
    RemoteUnreachable,
    RepositoryNotFoundError,
)

__all__ = [
    "SyncConfig",
    "ConfigError",
    "CorruptLocalMirror",
    "FatalSyncError",
    "GitOperationError",
    "ManifestMissing",
    "ManifestParseError",
    "ManifestSyncError",
    "MirrorSyncError",
    "RemoteUnreachable",
    "RepositoryNotFoundError",
]
