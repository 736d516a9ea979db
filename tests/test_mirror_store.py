"""Tests for local mirrors (full working copies and manifest-only copies)."""
import json
import subprocess
from pathlib import Path

import pytest
import requests

from manifest_sync.core.config import SyncConfig
from manifest_sync.core.errors import GitOperationError, ManifestMissing, ManifestParseError, RemoteUnreachable
from manifest_sync.mirror import git
from manifest_sync.mirror.handle import MirrorKind, RepositoryHandle
from manifest_sync.mirror.store import (
    FullMirrorStrategy,
    LocalMirrorStore,
    ManifestOnlyStrategy,
    raw_manifest_url,
)


def _head(repo_path: Path) -> str:
    result = subprocess.run(
        ["git", "-C", str(repo_path), "rev-parse", "HEAD"],
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


class FakeFetch:
    """Records requested URLs and serves canned payloads."""

    def __init__(self, payload: bytes = b'{"name": "demo"}', error: Exception = None):
        self.payload = payload
        self.error = error
        self.urls = []

    def __call__(self, url: str) -> bytes:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.payload


def _http_error(status: int) -> requests.HTTPError:
    response = requests.Response()
    response.status_code = status
    return requests.HTTPError(f"{status} error", response=response)


def _manifest_store(sync_config, fetch) -> LocalMirrorStore:
    return LocalMirrorStore(
        sync_config,
        strategies={
            MirrorKind.FULL: FullMirrorStrategy(sync_config),
            MirrorKind.MANIFEST: ManifestOnlyStrategy(sync_config, fetch=fetch),
        },
    )


class TestRawManifestUrl:
    def test_github_address(self):
        url = raw_manifest_url(
            "https://github.com/cybergis/hello-world.git", "main", {"github.com": "raw.githubusercontent.com"}
        )
        assert url == "https://raw.githubusercontent.com/cybergis/hello-world/main/manifest.json"

    def test_address_without_git_suffix(self):
        url = raw_manifest_url("https://github.com/org/repo/", "abc123", {"github.com": "raw.githubusercontent.com"})
        assert url == "https://raw.githubusercontent.com/org/repo/abc123/manifest.json"

    def test_unmapped_host_kept(self):
        url = raw_manifest_url("https://git.example.com/org/repo.git", "main", {"github.com": "raw.githubusercontent.com"})
        assert url == "https://git.example.com/org/repo/main/manifest.json"

    def test_git_inside_name_not_stripped(self):
        url = raw_manifest_url("https://github.com/org/my.gitops.git", "main", {"github.com": "raw.githubusercontent.com"})
        assert url == "https://raw.githubusercontent.com/org/my.gitops/main/manifest.json"


class TestFullMirror:
    """Full working copies obtained by git clone."""

    def test_ensure_clones_missing_mirror(self, sync_config, manifest_repo_fixture):
        """Test: ensure clones a missing mirror.

        Given: a remote repository with manifest.json and no local mirror
        When: ensure is called for the full kind
        Then:
          - <root>/<id> is a git working copy containing manifest.json
          - state reports the remote head as local revision
        """
        store = LocalMirrorStore(sync_config)
        handle = RepositoryHandle(id="demo", address=str(manifest_repo_fixture["path"]))

        state = store.ensure(handle, MirrorKind.FULL)

        path = sync_config.root_path / "demo"
        assert state.exists_locally is True
        assert state.path == path
        assert (path / ".git").exists()
        assert (path / "manifest.json").exists()
        assert state.local_revision == manifest_repo_fixture["first_sha"]

    def test_ensure_checks_out_pinned_revision(self, sync_config, manifest_repo_fixture, git_commit):
        git_commit(manifest_repo_fixture["path"], '{"name": "demo-v2"}')
        pinned = manifest_repo_fixture["first_sha"]
        store = LocalMirrorStore(sync_config)
        handle = RepositoryHandle(id="demo", address=str(manifest_repo_fixture["path"]), sha=pinned)

        state = store.ensure(handle, MirrorKind.FULL)

        assert state.local_revision == pinned
        assert _head(state.path) == pinned
        assert json.loads(store.read_manifest(handle, MirrorKind.FULL))["name"] == "demo"

    def test_update_pulls_latest(self, sync_config, manifest_repo_fixture, git_commit):
        store = LocalMirrorStore(sync_config)
        handle = RepositoryHandle(id="demo", address=str(manifest_repo_fixture["path"]))
        store.ensure(handle, MirrorKind.FULL)
        new_sha = git_commit(manifest_repo_fixture["path"], '{"name": "demo-v2"}')

        state = store.update(handle, MirrorKind.FULL)

        assert state.local_revision == new_sha
        assert json.loads(store.read_manifest(handle, MirrorKind.FULL))["name"] == "demo-v2"

    def test_clone_of_unreachable_remote_leaves_nothing(self, sync_config, tmp_path):
        store = LocalMirrorStore(sync_config)
        handle = RepositoryHandle(id="ghost", address=str(tmp_path / "does-not-exist"))

        with pytest.raises(RemoteUnreachable) as exc_info:
            store.ensure(handle, MirrorKind.FULL)

        assert exc_info.value.repository_id == "ghost"
        assert exc_info.value.mirror_kind is MirrorKind.FULL
        assert not (sync_config.root_path / "ghost").exists()
        assert list(sync_config.root_path.iterdir()) == []

    def test_destroy_and_recreate(self, sync_config, manifest_repo_fixture):
        store = LocalMirrorStore(sync_config)
        handle = RepositoryHandle(id="demo", address=str(manifest_repo_fixture["path"]))
        store.ensure(handle, MirrorKind.FULL)
        junk = sync_config.root_path / "demo" / "junk.txt"
        junk.write_text("left over")

        state = store.destroy_and_recreate(handle, MirrorKind.FULL)

        assert state.exists_locally is True
        assert not junk.exists()
        assert (state.path / "manifest.json").exists()

    def test_read_missing_manifest_raises(self, sync_config, no_manifest_repo_fixture):
        store = LocalMirrorStore(sync_config)
        handle = RepositoryHandle(id="bare", address=str(no_manifest_repo_fixture["path"]))
        store.ensure(handle, MirrorKind.FULL)

        with pytest.raises(ManifestMissing):
            store.read_manifest(handle, MirrorKind.FULL)

    def test_mirror_dir_without_git_has_no_revision(self, host_repo_fixture):
        """Test: an emptied mirror inside a project checkout is not mistaken for a clone.

        Given: the mirror root lives inside another git repository
        And: <root>/demo exists but has no .git
        When: the mirror state is read
        Then:
          - the mirror exists locally but has no local revision
          - git commands in it fail instead of reaching the enclosing repository
        """
        config = SyncConfig(root_path=host_repo_fixture["path"] / "data" / "repositories")
        mirror_path = config.root_path / "demo"
        mirror_path.mkdir(parents=True)
        store = LocalMirrorStore(config)
        handle = RepositoryHandle(id="demo", address="https://github.com/org/demo.git")

        state = store.state(handle, MirrorKind.FULL)

        assert state.exists_locally is True
        assert state.local_revision is None
        with pytest.raises(GitOperationError):
            git.head_commit(mirror_path)
        with pytest.raises(GitOperationError):
            git.pull(mirror_path)
        assert _head(host_repo_fixture["path"]) == host_repo_fixture["head"]

    def test_invalid_utf8_manifest_is_parse_error(self, sync_config, manifest_repo_fixture, commit_bytes):
        commit_bytes(manifest_repo_fixture["path"], b'{"name": "\xff"}')
        store = LocalMirrorStore(sync_config)
        handle = RepositoryHandle(id="demo", address=str(manifest_repo_fixture["path"]))
        store.ensure(handle, MirrorKind.FULL)

        with pytest.raises(ManifestParseError) as exc_info:
            store.read_manifest(handle, MirrorKind.FULL)
        assert exc_info.value.repository_id == "demo"

    def test_stale_archive_removed(self, sync_config, manifest_repo_fixture):
        store = LocalMirrorStore(sync_config)
        handle = RepositoryHandle(id="demo", address=str(manifest_repo_fixture["path"]))
        sync_config.root_path.mkdir(parents=True)
        archive = sync_config.root_path / "demo.zip"
        archive.write_bytes(b"PK\x03\x04")

        store.clear_stale_archive(handle, MirrorKind.FULL)

        assert not archive.exists()


class TestManifestOnlyMirror:
    """Manifest-only copies downloaded from the raw-content host."""

    def test_download_at_default_branch(self, sync_config, manifest_repo_fixture):
        fetch = FakeFetch()
        store = _manifest_store(sync_config, fetch)
        address = str(manifest_repo_fixture["path"])
        handle = RepositoryHandle(id="demo", address=address)

        state = store.ensure(handle, MirrorKind.MANIFEST)

        assert fetch.urls == [f"{address}/main/manifest.json"]
        assert state.path == sync_config.root_path / "manifests" / "demo"
        assert state.local_revision == "main"
        assert store.read_manifest(handle, MirrorKind.MANIFEST) == '{"name": "demo"}'

    def test_download_at_pinned_revision(self, sync_config):
        fetch = FakeFetch()
        store = _manifest_store(sync_config, fetch)
        handle = RepositoryHandle(id="demo", address="https://github.com/org/demo.git", sha="abc123")

        state = store.ensure(handle, MirrorKind.MANIFEST)

        assert fetch.urls == ["https://raw.githubusercontent.com/org/demo/abc123/manifest.json"]
        assert state.local_revision == "abc123"

    def test_unresolvable_branch_falls_back(self, sync_config, tmp_path):
        fetch = FakeFetch()
        store = _manifest_store(sync_config, fetch)
        address = str(tmp_path / "not-a-repo")
        handle = RepositoryHandle(id="demo", address=address)

        store.ensure(handle, MirrorKind.MANIFEST)

        assert fetch.urls == [f"{address}/main/manifest.json"]

    def test_http_404_is_manifest_missing(self, sync_config):
        store = _manifest_store(sync_config, FakeFetch(error=_http_error(404)))
        handle = RepositoryHandle(id="demo", address="https://github.com/org/demo.git", sha="abc123")

        with pytest.raises(ManifestMissing):
            store.ensure(handle, MirrorKind.MANIFEST)
        assert not (sync_config.root_path / "manifests" / "demo").exists()

    @pytest.mark.parametrize("error", [requests.ConnectionError("refused"), _http_error(503)])
    def test_network_failure_is_remote_unreachable(self, sync_config, error):
        store = _manifest_store(sync_config, FakeFetch(error=error))
        handle = RepositoryHandle(id="demo", address="https://github.com/org/demo.git", sha="abc123")

        with pytest.raises(RemoteUnreachable) as exc_info:
            store.ensure(handle, MirrorKind.MANIFEST)
        assert exc_info.value.mirror_kind is MirrorKind.MANIFEST

    def test_update_overwrites_manifest(self, sync_config):
        fetch = FakeFetch()
        store = _manifest_store(sync_config, fetch)
        handle = RepositoryHandle(id="demo", address="https://github.com/org/demo.git", sha="abc123")
        store.ensure(handle, MirrorKind.MANIFEST)

        fetch.payload = b'{"name": "demo-v2"}'
        store.update(handle, MirrorKind.MANIFEST)

        assert json.loads(store.read_manifest(handle, MirrorKind.MANIFEST))["name"] == "demo-v2"
        assert len(fetch.urls) == 2


def test_resolve_default_branch(manifest_repo_fixture):
    assert git.resolve_default_branch(str(manifest_repo_fixture["path"])) == "main"


def test_ls_remote_head(manifest_repo_fixture):
    assert git.ls_remote_head(str(manifest_repo_fixture["path"])) == manifest_repo_fixture["first_sha"]
