"""Local mirror store: full working copies and manifest-only copies."""
import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import urlparse

import requests

from manifest_sync.core.config import MANIFEST_FILENAME, SyncConfig
from manifest_sync.core.errors import (
    CorruptLocalMirror,
    GitOperationError,
    ManifestMissing,
    ManifestParseError,
    MirrorSyncError,
    RemoteUnreachable,
)
from manifest_sync.mirror import git
from manifest_sync.mirror.archive import FileArchive
from manifest_sync.mirror.handle import MirrorKind, MirrorState, RepositoryHandle

logger = logging.getLogger(__name__)

FetchFunc = Callable[[str], bytes]

REVISION_FILENAME = ".revision"


def _default_fetch(url: str, *, timeout: int = 30) -> bytes:
    resp = requests.get(url, timeout=timeout)
    resp.raise_for_status()
    return resp.content


def _mtime(path: Path) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except OSError:
        return None


def raw_manifest_url(address: str, revision: str, host_map: Dict[str, str]) -> str:
    """Build the raw-content URL of manifest.json at revision.

    Examples:
        https://github.com/org/repo.git, main
            -> https://raw.githubusercontent.com/org/repo/main/manifest.json
    """
    base = address.rstrip("/")
    if base.endswith(".git"):
        base = base[:-4]

    parsed = urlparse(base)
    if parsed.netloc in host_map:
        base = parsed._replace(netloc=host_map[parsed.netloc]).geturl()

    return f"{base}/{revision}/{MANIFEST_FILENAME}"


class MirrorStrategy(ABC):
    """How one kind of mirror is laid out, created and updated."""

    kind: MirrorKind

    def __init__(self, config: SyncConfig):
        self.config = config

    @abstractmethod
    def path_for(self, handle: RepositoryHandle) -> Path:
        """Directory holding this kind of mirror for handle."""

    @abstractmethod
    def read_state(self, handle: RepositoryHandle) -> MirrorState:
        """Inspect the mirror on disk."""

    @abstractmethod
    def create(self, handle: RepositoryHandle) -> None:
        """Build the mirror from scratch; the mirror path must not exist."""

    @abstractmethod
    def update(self, handle: RepositoryHandle) -> None:
        """Bring an existing mirror up to date."""

    def manifest_path(self, handle: RepositoryHandle) -> Path:
        return self.path_for(handle) / MANIFEST_FILENAME

    def _error(self, error_cls, handle: RepositoryHandle, message: str) -> MirrorSyncError:
        return error_cls(message, repository_id=handle.id, mirror_kind=self.kind)


class FullMirrorStrategy(MirrorStrategy):
    """A git working copy at ``<root>/<id>``, checked out to the pinned sha if set."""

    kind = MirrorKind.FULL

    def path_for(self, handle: RepositoryHandle) -> Path:
        return Path(self.config.root_path) / handle.id

    def read_state(self, handle: RepositoryHandle) -> MirrorState:
        path = self.path_for(handle)
        state = MirrorState(repository_id=handle.id, kind=self.kind, path=path)
        if not path.exists():
            return state

        state.exists_locally = True
        state.last_fetched_at = _mtime(path / ".git" / "FETCH_HEAD") or _mtime(path)
        if not (path / ".git").exists():
            logger.warning(f"Full mirror of {handle.id} at {path} has no .git directory")
            return state
        try:
            state.local_revision = git.head_commit(path, timeout=self.config.git_timeout)
        except GitOperationError as e:
            logger.warning(f"Cannot read local revision of {handle.id}: {e}")
        return state

    def create(self, handle: RepositoryHandle) -> None:
        path = self.path_for(handle)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Clone next to the final location so a failed clone leaves nothing behind
        with tempfile.TemporaryDirectory(prefix=f".{handle.id}-clone-", dir=path.parent) as tmpdir:
            tmp_path = Path(tmpdir) / "repo"
            try:
                git.clone(handle.address, tmp_path, timeout=self.config.clone_timeout)
            except GitOperationError as e:
                raise self._error(RemoteUnreachable, handle, f"Failed to clone {handle.address}: {e}") from e

            if handle.sha:
                try:
                    git.checkout(tmp_path, handle.sha, timeout=self.config.git_timeout)
                except GitOperationError as e:
                    raise self._error(
                        CorruptLocalMirror, handle, f"Cannot check out pinned revision {handle.sha}: {e}"
                    ) from e

            shutil.move(str(tmp_path), str(path))

        logger.info(f"Installed full mirror of {handle.id} at {path}")

    def update(self, handle: RepositoryHandle) -> None:
        path = self.path_for(handle)

        if handle.sha:
            try:
                git.fetch(path, timeout=self.config.clone_timeout)
            except GitOperationError as e:
                raise self._error(RemoteUnreachable, handle, f"Failed to fetch {handle.address}: {e}") from e
            try:
                git.checkout(path, handle.sha, timeout=self.config.git_timeout)
            except GitOperationError as e:
                raise self._error(
                    CorruptLocalMirror, handle, f"Cannot check out pinned revision {handle.sha}: {e}"
                ) from e
            return

        try:
            git.pull(path, timeout=self.config.clone_timeout)
        except GitOperationError as e:
            raise self._error(CorruptLocalMirror, handle, f"Failed to pull into {path}: {e}") from e


class ManifestOnlyStrategy(MirrorStrategy):
    """Just manifest.json, downloaded from the raw-content host.

    Lives at ``<root>/manifests/<id>``. The revision it was downloaded at is
    kept in a ``.revision`` file beside it.
    """

    kind = MirrorKind.MANIFEST

    def __init__(self, config: SyncConfig, fetch: Optional[FetchFunc] = None):
        super().__init__(config)
        self.fetch = fetch or (lambda url: _default_fetch(url, timeout=config.http_timeout))

    def path_for(self, handle: RepositoryHandle) -> Path:
        return self.config.manifests_root / handle.id

    def read_state(self, handle: RepositoryHandle) -> MirrorState:
        path = self.path_for(handle)
        state = MirrorState(repository_id=handle.id, kind=self.kind, path=path)
        if not path.exists():
            return state

        state.exists_locally = True
        state.last_fetched_at = _mtime(path / MANIFEST_FILENAME)
        revision_file = path / REVISION_FILENAME
        if revision_file.is_file():
            state.local_revision = revision_file.read_text().strip() or None
        return state

    def resolve_revision(self, handle: RepositoryHandle) -> str:
        """Pinned sha if set, else the remote default branch name."""
        if handle.sha:
            return handle.sha

        try:
            branch = git.resolve_default_branch(handle.address, timeout=self.config.git_timeout)
        except GitOperationError as e:
            logger.warning(
                f"Cannot resolve default branch of {handle.id}, using {self.config.fallback_branch}: {e}"
            )
            return self.config.fallback_branch

        return branch or self.config.fallback_branch

    def create(self, handle: RepositoryHandle) -> None:
        path = self.path_for(handle)
        path.mkdir(parents=True, exist_ok=True)
        try:
            self._download(handle)
        except MirrorSyncError:
            shutil.rmtree(path, ignore_errors=True)
            raise

    def update(self, handle: RepositoryHandle) -> None:
        self.path_for(handle).mkdir(parents=True, exist_ok=True)
        self._download(handle)

    def _download(self, handle: RepositoryHandle) -> None:
        revision = self.resolve_revision(handle)
        url = raw_manifest_url(handle.address, revision, self.config.raw_host_map)
        logger.info(f"Downloading {url}")

        try:
            payload = self.fetch(url)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 404:
                raise self._error(ManifestMissing, handle, f"No manifest at {url}") from e
            raise self._error(RemoteUnreachable, handle, f"Failed to download {url}: {e}") from e
        except requests.RequestException as e:
            raise self._error(RemoteUnreachable, handle, f"Failed to download {url}: {e}") from e

        path = self.path_for(handle)
        tmp_file = path / f".{MANIFEST_FILENAME}.part"
        tmp_file.write_bytes(payload)
        tmp_file.replace(path / MANIFEST_FILENAME)
        (path / REVISION_FILENAME).write_text(revision + "\n")
        logger.info(f"Saved manifest of {handle.id} at revision {revision} ({len(payload)} bytes)")


class LocalMirrorStore:
    """On-disk mirrors keyed by repository id, one strategy per mirror kind."""

    def __init__(
        self,
        config: SyncConfig,
        strategies: Optional[Dict[MirrorKind, MirrorStrategy]] = None,
        archive: Optional[FileArchive] = None,
    ):
        self.config = config
        self.strategies = strategies or {
            MirrorKind.FULL: FullMirrorStrategy(config),
            MirrorKind.MANIFEST: ManifestOnlyStrategy(config),
        }
        self.archive = archive or FileArchive()

    def strategy(self, kind: MirrorKind) -> MirrorStrategy:
        try:
            return self.strategies[MirrorKind(kind)]
        except KeyError:
            raise ValueError(f"No mirror strategy registered for kind '{kind}'")

    def path_for(self, handle: RepositoryHandle, kind: MirrorKind) -> Path:
        return self.strategy(kind).path_for(handle)

    def state(self, handle: RepositoryHandle, kind: MirrorKind) -> MirrorState:
        return self.strategy(kind).read_state(handle)

    def clear_stale_archive(self, handle: RepositoryHandle, kind: MirrorKind) -> None:
        self.archive.remove_stale_archive(self.path_for(handle, kind))

    def ensure(self, handle: RepositoryHandle, kind: MirrorKind) -> MirrorState:
        """Create the mirror if it does not exist yet."""
        strategy = self.strategy(kind)
        if not strategy.path_for(handle).exists():
            strategy.create(handle)
        return strategy.read_state(handle)

    def update(self, handle: RepositoryHandle, kind: MirrorKind) -> MirrorState:
        """Incrementally refresh an existing mirror."""
        strategy = self.strategy(kind)
        strategy.update(handle)
        return strategy.read_state(handle)

    def destroy_and_recreate(self, handle: RepositoryHandle, kind: MirrorKind) -> MirrorState:
        """Delete the mirror directory and build it again from the remote."""
        strategy = self.strategy(kind)
        path = strategy.path_for(handle)
        self.clear_stale_archive(handle, kind)

        if path.exists():
            logger.info(f"Deleting {strategy.kind.value} mirror of {handle.id} at {path}")
            shutil.rmtree(path)

        strategy.create(handle)
        return strategy.read_state(handle)

    def read_manifest(self, handle: RepositoryHandle, kind: MirrorKind) -> str:
        """Return the raw text of the mirror's manifest.json.

        Raises:
            ManifestMissing: If the file is absent or unreadable
            ManifestParseError: If the file is not valid UTF-8
        """
        strategy = self.strategy(kind)
        manifest_path = strategy.manifest_path(handle)
        try:
            raw_bytes = manifest_path.read_bytes()
        except OSError as e:
            raise ManifestMissing(
                f"Cannot read {manifest_path}: {e}",
                repository_id=handle.id,
                mirror_kind=strategy.kind,
            ) from e

        try:
            return raw_bytes.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ManifestParseError(
                f"{manifest_path} is not valid UTF-8: {e}",
                repository_id=handle.id,
                mirror_kind=strategy.kind,
            ) from e
