"""Pytest fixtures for manifest-sync tests."""
import json
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict

import pytest

from manifest_sync.core.config import SyncConfig
from manifest_sync.persistence import JsonRepositoryRegistry

DEMO_MANIFEST = {
    "name": "demo",
    "container": "python",
    "execution_stage": "python main.py",
    "supported_hpc": ["keeling_community", "expanse_community"],
    "slurm_input_rules": {
        "time": {"default_value": 5, "unit": "Minutes"},
        "num_of_task": {"default_value": 2},
    },
    "param_rules": {
        "input_a": {"type": "string_option", "default_value": "foo", "options": ["foo", "bar"]},
    },
}


def _git(repo_path: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=repo_path,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def _init_repo(repo_path: Path) -> None:
    repo_path.mkdir(parents=True)
    _git(repo_path, "init", "--quiet")
    _git(repo_path, "symbolic-ref", "HEAD", "refs/heads/main")
    _git(repo_path, "config", "user.email", "test@example.com")
    _git(repo_path, "config", "user.name", "Test User")


def _commit_file(repo_path: Path, filename: str, content: str, message: str) -> str:
    (repo_path / filename).write_text(content)
    _git(repo_path, "add", filename)
    _git(repo_path, "commit", "--quiet", "-m", message)
    return _git(repo_path, "rev-parse", "HEAD")


@pytest.fixture
def git_commit() -> Callable[[Path, str, str], str]:
    """Return a helper committing manifest.json content; yields the new SHA."""

    def commit(repo_path: Path, content: str, message: str = "Update manifest") -> str:
        return _commit_file(repo_path, "manifest.json", content, message)

    return commit


@pytest.fixture
def manifest_repo_fixture(tmp_path: Path) -> Dict[str, object]:
    """Create a git repository publishing DEMO_MANIFEST on branch main.

    Returns dict with:
        - path: Path to repo
        - first_sha: SHA of the commit adding manifest.json
    """
    repo_path = tmp_path / "remotes" / "demo_repo"
    _init_repo(repo_path)
    first_sha = _commit_file(repo_path, "manifest.json", json.dumps(DEMO_MANIFEST), "Add manifest")
    return {
        "path": repo_path,
        "first_sha": first_sha,
    }


@pytest.fixture
def no_manifest_repo_fixture(tmp_path: Path) -> Dict[str, object]:
    """Create a git repository with commits but no manifest.json."""
    repo_path = tmp_path / "remotes" / "bare_repo"
    _init_repo(repo_path)
    sha = _commit_file(repo_path, "README.md", "# nothing to run\n", "Initial commit")
    return {
        "path": repo_path,
        "first_sha": sha,
    }


@pytest.fixture
def sync_config(tmp_path: Path) -> SyncConfig:
    return SyncConfig(root_path=tmp_path / "mirrors")


@pytest.fixture
def registry(tmp_path: Path) -> JsonRepositoryRegistry:
    return JsonRepositoryRegistry(tmp_path / "repositories.json")


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def host_repo_fixture(tmp_path: Path) -> Dict[str, object]:
    """Create a project checkout that will contain the mirror root.

    Returns dict with:
        - path: Path to the enclosing repository
        - head: SHA of its only commit
    """
    repo_path = tmp_path / "host"
    _init_repo(repo_path)
    head = _commit_file(repo_path, "README.md", "# host project\n", "Initial commit")
    return {
        "path": repo_path,
        "head": head,
    }


@pytest.fixture
def commit_bytes() -> Callable[[Path, bytes], str]:
    """Return a helper committing raw manifest.json bytes; yields the new SHA."""

    def commit(repo_path: Path, content: bytes) -> str:
        (repo_path / "manifest.json").write_bytes(content)
        _git(repo_path, "add", "manifest.json")
        _git(repo_path, "commit", "--quiet", "-m", "Update manifest bytes")
        return _git(repo_path, "rev-parse", "HEAD")

    return commit
