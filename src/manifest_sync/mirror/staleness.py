"""Decide whether a local mirror needs refreshing."""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from manifest_sync.core.config import SyncConfig
from manifest_sync.core.errors import GitOperationError
from manifest_sync.mirror import git
from manifest_sync.mirror.handle import MirrorKind, MirrorState, RepositoryHandle

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Seconds assumed to have elapsed when a repository was never synced
NEVER_SYNCED_SECONDS = 1_000_000.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StalenessOracle:
    """Two freshness policies, one per mirror kind.

    Full mirrors compare the remote head (or pinned sha) with the local
    head, paying a network round trip per check. Manifest-only mirrors trust
    a time window since the last sync and never touch the network.
    """

    def __init__(self, config: SyncConfig, clock: Optional[Clock] = None):
        self.config = config
        self.clock = clock or utc_now

    def is_stale(self, handle: RepositoryHandle, state: MirrorState, kind: MirrorKind) -> bool:
        """Return True when the mirror must be refreshed.

        A check that cannot complete is logged and reported as stale.
        """
        if not state.exists_locally:
            return True

        if MirrorKind(kind) is MirrorKind.MANIFEST:
            return self._manifest_is_stale(handle)

        try:
            return self._full_is_stale(handle, state)
        except GitOperationError as e:
            logger.warning(f"Staleness check failed for {handle.id}, treating as stale: {e}")
            return True

    def seconds_since_sync(self, handle: RepositoryHandle) -> float:
        if handle.last_synced_at is None:
            return NEVER_SYNCED_SECONDS
        synced_at = handle.last_synced_at
        if synced_at.tzinfo is None:
            synced_at = synced_at.replace(tzinfo=timezone.utc)
        return (self.clock() - synced_at).total_seconds()

    def _manifest_is_stale(self, handle: RepositoryHandle) -> bool:
        elapsed = self.seconds_since_sync(handle)
        if elapsed > self.config.manifest_ttl_seconds:
            logger.info(f"{handle.id} is stale (last synced {elapsed:.0f}s ago)")
            return True
        logger.info(f"{handle.id} last synced {elapsed:.0f}s ago, skipping update")
        return False

    def _full_is_stale(self, handle: RepositoryHandle, state: MirrorState) -> bool:
        remote_sha = git.ls_remote_head(handle.address, timeout=self.config.git_timeout)
        if remote_sha is None:
            logger.info(f"{handle.id} remote has no head revision, treating as stale")
            return True

        if handle.sha:
            remote_sha = handle.sha

        local_sha = state.local_revision
        if local_sha is None:
            logger.warning(f"{handle.id} has no readable local revision, treating as stale")
            return True

        # A pinned mirror already at its sha still counts as stale so the
        # checkout is re-applied on every request.
        stale = bool(handle.sha and local_sha == handle.sha) or remote_sha != local_sha
        if stale:
            logger.info(f"{handle.id} is stale (local {local_sha[:12]}, wanted {remote_sha[:12]})")
        else:
            logger.info(f"{handle.id} not out of date, skipping update")
        return stale
