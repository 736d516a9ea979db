"""Thin git subprocess primitives used by mirrors and the staleness oracle."""
import logging
import os
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from manifest_sync.core.errors import GitOperationError

logger = logging.getLogger(__name__)


def _run_git(args: List[str], timeout: int, action: str, env: Optional[Dict[str, str]] = None) -> str:
    """Run a git command and return its stripped stdout.

    Raises:
        GitOperationError: On non-zero exit, timeout, or missing git binary
    """
    try:
        result = subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
        )
    except subprocess.TimeoutExpired:
        raise GitOperationError(f"git {action} timed out after {timeout}s")
    except OSError as e:
        raise GitOperationError(f"Failed to run git {action}: {e}")

    if result.returncode != 0:
        raise GitOperationError(f"git {action} failed: {result.stderr.strip()}")

    return result.stdout.strip()


def _run_git_in(repo_path: Path, args: List[str], timeout: int, action: str) -> str:
    """Run a git command inside repo_path without discovering enclosing repositories.

    A directory without its own .git fails instead of resolving to a parent
    repository.
    """
    repo_path = Path(repo_path).resolve()
    env = {**os.environ, "GIT_CEILING_DIRECTORIES": str(repo_path.parent)}
    return _run_git(["-C", str(repo_path), *args], timeout, action, env=env)


def ls_remote_head(address: str, timeout: int = 30) -> Optional[str]:
    """Return the commit SHA the remote HEAD points at, or None if it has none.

    An empty repository has no HEAD commit, which is not an error.
    """
    output = _run_git(["ls-remote", address, "HEAD"], timeout, "ls-remote")
    for line in output.splitlines():
        parts = line.split()
        if len(parts) == 2 and parts[1] == "HEAD":
            return parts[0]
    return None


def resolve_default_branch(address: str, timeout: int = 30) -> Optional[str]:
    """Return the short name of the remote's default branch.

    Parses the symref line of ``git ls-remote --symref``:
        ref: refs/heads/main<TAB>HEAD
    """
    output = _run_git(["ls-remote", "--symref", address, "HEAD"], timeout, "ls-remote --symref")
    for line in output.splitlines():
        if not line.startswith("ref:"):
            continue
        ref = line[len("ref:"):].split()[0]
        return ref.split("/")[-1]
    return None


def clone(address: str, target_path: Path, timeout: int = 300) -> None:
    """Clone address into target_path (which must not exist yet)."""
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Cloning {address} to {target_path}")
    _run_git(["clone", "--quiet", address, str(target_path)], timeout, "clone")


def checkout(repo_path: Path, ref: str, timeout: int = 60) -> None:
    """Check out ref in an existing working copy."""
    logger.info(f"Checking out {ref} in {repo_path}")
    _run_git_in(repo_path, ["checkout", "--quiet", ref], timeout, "checkout")


def fetch(repo_path: Path, timeout: int = 300) -> None:
    """Fetch all refs from origin into an existing working copy."""
    _run_git_in(repo_path, ["fetch", "--quiet", "origin"], timeout, "fetch")


def pull(repo_path: Path, timeout: int = 300) -> None:
    """Fast-forward the checked-out branch to its upstream."""
    logger.info(f"Pulling latest into {repo_path}")
    _run_git_in(repo_path, ["pull", "--quiet", "--ff-only"], timeout, "pull")


def head_commit(repo_path: Path, timeout: int = 30) -> str:
    """Return the SHA of the most recent local history entry."""
    return _run_git_in(repo_path, ["log", "-1", "--format=%H"], timeout, "log")


def head_commit_time(repo_path: Path, timeout: int = 30) -> datetime:
    """Return the committer time of the most recent local history entry."""
    output = _run_git_in(repo_path, ["log", "-1", "--format=%ct"], timeout, "log")
    try:
        return datetime.fromtimestamp(int(output), tz=timezone.utc)
    except ValueError:
        raise GitOperationError(f"Unexpected committer timestamp from git log: '{output}'")
