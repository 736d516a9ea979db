"""Refresh pipeline: keep mirrors current and serve validated manifests."""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from manifest_sync.core.config import SyncConfig
from manifest_sync.core.errors import (
    CorruptLocalMirror,
    FatalSyncError,
    GitOperationError,
    ManifestMissing,
    ManifestParseError,
    MirrorSyncError,
    RemoteUnreachable,
    RepositoryNotFoundError,
)
from manifest_sync.manifest.cache import ManifestCache
from manifest_sync.manifest.schema import ValidatedManifest
from manifest_sync.manifest.validator import ManifestValidator
from manifest_sync.mirror import git
from manifest_sync.mirror.handle import MirrorKind, MirrorState, RepositoryHandle
from manifest_sync.mirror.staleness import Clock, StalenessOracle, utc_now
from manifest_sync.mirror.store import (
    FetchFunc,
    FullMirrorStrategy,
    LocalMirrorStore,
    ManifestOnlyStrategy,
)
from manifest_sync.persistence import RepositoryStore

logger = logging.getLogger(__name__)


@dataclass
class _SyncAttempt:
    """Bookkeeping for one call: the single recovery may only be spent once."""

    handle: RepositoryHandle
    kind: MirrorKind
    state: Optional[MirrorState] = None
    recovered: bool = False


class RefreshPipeline:
    """Decides between no-op, update and destroy-and-recreate for a mirror.

    State machine per call:
        Missing -> clone/download -> Fresh
        Fresh -> staleness check -> Fresh | Stale
        Stale -> update -> Fresh | Failed
        Failed -> destroy and recreate (once) -> Fresh | FatalSyncError

    Refreshes of one repository id are serialized; different ids proceed
    in parallel. One lock is kept per repository id ever requested and none
    is released, so the id set is expected to be bounded by the registry.
    """

    def __init__(
        self,
        store: LocalMirrorStore,
        oracle: StalenessOracle,
        validator: Optional[ManifestValidator] = None,
        cache: Optional[ManifestCache] = None,
        repositories: Optional[RepositoryStore] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.oracle = oracle
        self.validator = validator or ManifestValidator()
        self.cache = cache if cache is not None else ManifestCache()
        self.repositories = repositories
        self.clock = clock or utc_now

        self._repo_locks: Dict[str, threading.Lock] = {}
        self._repo_locks_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        repositories: Optional[RepositoryStore] = None,
        fetch: Optional[FetchFunc] = None,
        clock: Optional[Clock] = None,
    ) -> "RefreshPipeline":
        """Wire a pipeline with the standard strategies and a fresh cache."""
        store = LocalMirrorStore(
            config,
            strategies={
                MirrorKind.FULL: FullMirrorStrategy(config),
                MirrorKind.MANIFEST: ManifestOnlyStrategy(config, fetch=fetch),
            },
        )
        return cls(
            store=store,
            oracle=StalenessOracle(config, clock=clock),
            validator=ManifestValidator(default_hpc=config.default_hpc),
            cache=ManifestCache(),
            repositories=repositories,
            clock=clock,
        )

    def _lock_for(self, repository_id: str) -> threading.Lock:
        with self._repo_locks_lock:
            if repository_id not in self._repo_locks:
                self._repo_locks[repository_id] = threading.Lock()
            return self._repo_locks[repository_id]

    def find_repository(self, repository_id: str) -> RepositoryHandle:
        """Look up a handle in the repository store.

        Raises:
            RepositoryNotFoundError: If no store is configured or the id is unknown
        """
        handle = None
        if self.repositories is not None:
            handle = self.repositories.find_repository(repository_id)
        if handle is None:
            raise RepositoryNotFoundError(f"Repository '{repository_id}' not found")
        return handle

    def get_manifest(self, handle: RepositoryHandle, kind: MirrorKind = MirrorKind.FULL) -> ValidatedManifest:
        """Return the current validated manifest of handle's repository.

        Reuses the cached manifest when the mirror did not need a refresh.

        Raises:
            RemoteUnreachable: Initial clone/download could not reach the remote
            ManifestParseError: The manifest is not a well-formed JSON object
            FatalSyncError: The sync failed again after the one recovery attempt
        """
        kind = MirrorKind(kind)
        with self._lock_for(handle.id):
            attempt = _SyncAttempt(handle=handle, kind=kind)
            refreshed = self._refresh(attempt)

            if refreshed:
                self.cache.invalidate(handle.id, kind)
            else:
                cached = self.cache.get(handle.id, kind)
                if cached is not None:
                    logger.info(f"Using cached manifest for {handle.id}")
                    return cached

            raw_text = self._read_manifest(attempt)
            try:
                manifest = self.validator.normalize(raw_text, handle.address)
            except ManifestParseError as e:
                raise ManifestParseError(str(e), repository_id=handle.id, mirror_kind=kind) from e

            revision = attempt.state.local_revision if attempt.state is not None else None
            self.cache.put(handle.id, manifest, kind, source_revision=revision)
            return manifest

    def get_manifest_by_id(self, repository_id: str, kind: MirrorKind = MirrorKind.FULL) -> ValidatedManifest:
        """Like get_manifest, looking the handle up in the repository store first."""
        return self.get_manifest(self.find_repository(repository_id), kind)

    def get_last_commit_time(self, handle: RepositoryHandle) -> datetime:
        """Refresh the full mirror and return its head commit's committer time."""
        kind = MirrorKind.FULL
        with self._lock_for(handle.id):
            attempt = _SyncAttempt(handle=handle, kind=kind)
            if self._refresh(attempt):
                self.cache.invalidate(handle.id, kind)

            path = self.store.path_for(handle, kind)
            try:
                return git.head_commit_time(path, timeout=self.store.config.git_timeout)
            except GitOperationError as e:
                raise CorruptLocalMirror(
                    f"Cannot read last commit time: {e}", repository_id=handle.id, mirror_kind=kind
                ) from e

    def _refresh(self, attempt: _SyncAttempt) -> bool:
        """Bring the mirror up to date; return True if it was touched."""
        handle, kind = attempt.handle, attempt.kind
        self.store.clear_stale_archive(handle, kind)

        state = self.store.state(handle, kind)
        attempt.state = state

        if not state.exists_locally:
            logger.info(f"{handle.id} has no local {kind.value} mirror, creating it")
            try:
                attempt.state = self.store.ensure(handle, kind)
            except RemoteUnreachable:
                raise
            except MirrorSyncError as e:
                self._recover(attempt, e)
            self._record_sync(handle)
            return True

        if not self.oracle.is_stale(handle, state, kind):
            return False

        logger.info(f"{handle.id} is stale, updating {kind.value} mirror")
        try:
            attempt.state = self.store.update(handle, kind)
        except MirrorSyncError as e:
            self._recover(attempt, e)
        self._record_sync(handle)
        return True

    def _recover(self, attempt: _SyncAttempt, cause: MirrorSyncError) -> None:
        """Delete and recreate the mirror, at most once per attempt."""
        handle, kind = attempt.handle, attempt.kind
        if attempt.recovered:
            raise FatalSyncError(
                f"Still failing after recovery: {type(cause).__name__}: {cause}",
                repository_id=handle.id,
                mirror_kind=kind,
                cause=cause,
            ) from cause

        attempt.recovered = True
        logger.warning(
            f"{type(cause).__name__} for {handle.id}: {cause}. Deleting and recreating {kind.value} mirror"
        )
        try:
            attempt.state = self.store.destroy_and_recreate(handle, kind)
        except MirrorSyncError as e:
            raise FatalSyncError(
                f"Recovery failed after {type(cause).__name__}: {type(e).__name__}: {e}",
                repository_id=handle.id,
                mirror_kind=kind,
                cause=cause,
            ) from e

    def _read_manifest(self, attempt: _SyncAttempt) -> str:
        handle, kind = attempt.handle, attempt.kind
        try:
            return self.store.read_manifest(handle, kind)
        except ManifestMissing as e:
            self._recover(attempt, e)
            self._record_sync(handle)

        try:
            return self.store.read_manifest(handle, kind)
        except ManifestMissing as e:
            raise FatalSyncError(
                f"Manifest still unreadable after recovery: {e}",
                repository_id=handle.id,
                mirror_kind=kind,
                cause=e,
            ) from e

    def _record_sync(self, handle: RepositoryHandle) -> None:
        if self.repositories is None:
            return
        self.repositories.update_last_synced_at(handle.id, self.clock())
