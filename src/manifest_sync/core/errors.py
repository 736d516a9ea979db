"""Core exception types for manifest-sync."""
from typing import Optional


class ManifestSyncError(Exception):
    """Base exception for all manifest-sync errors."""
    pass


class ConfigError(ManifestSyncError):
    """Raised when a configuration file is missing or invalid."""
    pass


class RepositoryNotFoundError(ManifestSyncError):
    """Raised when a repository id is not known to the repository store."""
    pass


class GitOperationError(ManifestSyncError):
    """Raised when a git subprocess fails or times out."""
    pass


class MirrorSyncError(ManifestSyncError):
    """Base for failures tied to one repository mirror.

    Carries the repository id and mirror kind so callers can tell which
    mirror failed without parsing the message.
    """

    def __init__(
        self,
        message: str,
        repository_id: Optional[str] = None,
        mirror_kind=None,
    ):
        super().__init__(message)
        self.repository_id = repository_id
        self.mirror_kind = mirror_kind

    def __str__(self) -> str:
        message = super().__str__()
        if self.repository_id is None:
            return message
        kind = getattr(self.mirror_kind, "value", self.mirror_kind)
        return f"[{self.repository_id}/{kind}] {message}"


class RemoteUnreachable(MirrorSyncError):
    """Raised when clone, fetch or download cannot reach the remote."""
    pass


class CorruptLocalMirror(MirrorSyncError):
    """Raised when checkout, pull or log fails against an existing mirror."""
    pass


class ManifestMissing(MirrorSyncError):
    """Raised when manifest.json is absent or unreadable after a sync."""
    pass


class ManifestParseError(MirrorSyncError):
    """Raised when manifest content is not a JSON object."""
    pass


class FatalSyncError(MirrorSyncError):
    """Raised when both the first attempt and the recovery attempt failed."""

    def __init__(
        self,
        message: str,
        repository_id: Optional[str] = None,
        mirror_kind=None,
        cause: Optional[MirrorSyncError] = None,
    ):
        super().__init__(message, repository_id, mirror_kind)
        self.cause = cause
