"""
Git Engine — Atomic git primitives against one on-disk repository.

Every primitive runs one ``git`` subprocess and either returns its parsed
result or raises EngineOperationError. Nothing here retries.

    engine = GitEngine.clone(url, path, provider)
    engine.fetch()
    records = engine.diff_trees("HEAD", "FETCH_HEAD")
    engine.reset_hard("FETCH_HEAD")
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .credentials import (
    CredentialKind,
    CredentialProvider,
    GitAuth,
    negotiate,
    redact_url,
    requested_kind,
)
from .diff import ChangeRecord, parse_raw_diff
from .errors import EngineOperationError

logger = logging.getLogger(__name__)

REMOTE_NAME = "origin"
FETCH_HEAD = "FETCH_HEAD"

# Variables that would point git at some other repository
_REPO_ENV_VARS = (
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_OBJECT_DIRECTORY",
    "GIT_CEILING_DIRECTORIES",
)


def _git_env(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    env = {k: v for k, v in os.environ.items() if k not in _REPO_ENV_VARS}
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["LC_ALL"] = "C"
    if extra:
        env.update(extra)
    return env


def _git(
    repo: Path,
    *args: str,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    input: Optional[str] = None,
) -> subprocess.CompletedProcess:
    """Run a git command in the repo directory."""
    cmd = ["git"] + list(args)
    return subprocess.run(
        cmd,
        cwd=str(repo),
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="surrogateescape",
        env=_git_env(env),
        timeout=timeout,
        input=input,
    )


def _run(
    operation: str,
    repo: Path,
    args: Sequence[str],
    auth: Optional[GitAuth] = None,
    timeout: Optional[float] = None,
    input: Optional[str] = None,
) -> str:
    """Run git and return stdout, raising EngineOperationError on failure."""
    full_args = list(auth.config_args) if auth else []
    full_args.extend(args)
    try:
        result = _git(
            repo,
            *full_args,
            env=auth.env if auth else None,
            timeout=timeout,
            input=input,
        )
    except subprocess.TimeoutExpired:
        raise EngineOperationError(operation, f"timed out after {timeout}s")
    except FileNotFoundError:
        raise EngineOperationError(operation, "git executable not found")

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise EngineOperationError(operation, detail, result.returncode)
    return result.stdout


def normalize_remote(remote_url: str) -> str:
    """
    Make a local-path remote absolute, relative to the process working directory.

    URLs and scp-like remotes are returned unchanged.
    """
    if "://" in remote_url or requested_kind(remote_url) is not CredentialKind.NONE:
        return remote_url
    return os.path.abspath(remote_url)


def repository_exists(path: Path) -> bool:
    """
    Check whether ``path`` itself is a git repository.

    Parent directories are never searched: ``GIT_CEILING_DIRECTORIES``
    stops git from walking up out of ``path``.
    """
    path = Path(path)
    try:
        result = _git(
            path,
            "rev-parse",
            "--git-dir",
            env={"GIT_CEILING_DIRECTORIES": str(path.resolve().parent)},
        )
    except FileNotFoundError:
        raise EngineOperationError("rev-parse", "git executable not found")
    return result.returncode == 0


class GitEngine:
    """
    git primitives bound to one working copy and one remote URL.

    Instances are owned through an OwnedHandle; ``close`` is the release
    policy and makes every later primitive fail.
    """

    def __init__(
        self,
        path: Path,
        remote_url: str,
        provider: Optional[CredentialProvider] = None,
        timeout: Optional[float] = None,
    ):
        self.path = Path(path)
        self.remote_url = remote_url
        self.provider = provider
        self.timeout = timeout
        self._closed = False

    @classmethod
    def open(
        cls,
        path: Path,
        remote_url: str,
        provider: Optional[CredentialProvider] = None,
        timeout: Optional[float] = None,
    ) -> "GitEngine":
        """Open an existing repository at exactly ``path``."""
        if not repository_exists(path):
            raise EngineOperationError("open", f"no repository at {path}")
        return cls(path, remote_url, provider, timeout)

    @classmethod
    def clone(
        cls,
        remote_url: str,
        path: Path,
        provider: Optional[CredentialProvider] = None,
        timeout: Optional[float] = None,
    ) -> "GitEngine":
        """git clone <url> <path>"""
        auth = negotiate(provider, remote_url, "clone")
        logger.info(f"[mirror] Cloning {redact_url(remote_url)} into {path}")
        # cwd is the clone target; the source must not be resolved against it
        _run(
            "clone",
            Path(path),
            ["clone", "--quiet", "--", normalize_remote(remote_url), "."],
            auth=auth,
            timeout=timeout,
        )
        return cls(path, remote_url, provider, timeout)

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def _check_open(self, operation: str) -> None:
        if self._closed:
            raise EngineOperationError(operation, f"repository at {self.path} is closed")

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def fetch(self, remote: str = REMOTE_NAME) -> None:
        """git fetch origin"""
        self._check_open("fetch")
        auth = negotiate(self.provider, self.remote_url, "fetch")
        _run(
            "fetch",
            self.path,
            ["fetch", "--quiet", remote],
            auth=auth,
            timeout=self.timeout,
        )

    def origin_url(self, remote: str = REMOTE_NAME) -> Optional[str]:
        """URL the repository fetches from, or None if the remote is missing."""
        self._check_open("remote")
        result = _git(self.path, "remote", "get-url", remote)
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def set_origin_url(self, url: str, remote: str = REMOTE_NAME) -> None:
        """Point the remote at ``url``, adding it if it doesn't exist."""
        current = self.origin_url(remote)
        action = "add" if current is None else "set-url"
        _run("remote", self.path, ["remote", action, remote, url])

    def find_ref(self, name: str) -> Optional[str]:
        """Like resolve_ref, but None when the name doesn't resolve."""
        self._check_open("rev-parse")
        result = _git(self.path, "rev-parse", "--verify", "--quiet", f"{name}^{{commit}}")
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def resolve_ref(self, name: str) -> str:
        """Resolve a reference or revision to a commit id."""
        self._check_open("rev-parse")
        out = _run(
            "rev-parse",
            self.path,
            ["rev-parse", "--verify", "--quiet", f"{name}^{{commit}}"],
        )
        return out.strip()

    def head_commit(self) -> Optional[str]:
        """Commit HEAD points to, or None while the current branch is unborn."""
        self._check_open("rev-parse")
        result = _git(self.path, "rev-parse", "--verify", "--quiet", "HEAD^{commit}")
        if result.returncode == 0:
            return result.stdout.strip()
        if _git(self.path, "symbolic-ref", "--quiet", "HEAD").returncode == 0:
            return None
        raise EngineOperationError("rev-parse", "HEAD cannot be resolved", result.returncode)

    def peel_to_tree(self, spec: str) -> str:
        """Resolve a revision and peel it to its tree id."""
        self._check_open("rev-parse")
        out = _run(
            "rev-parse",
            self.path,
            ["rev-parse", "--verify", "--quiet", f"{spec}^{{tree}}"],
        )
        return out.strip()

    def empty_tree(self) -> str:
        """Id of the empty tree in this repository's hash algorithm."""
        self._check_open("hash-object")
        out = _run(
            "hash-object",
            self.path,
            ["hash-object", "-t", "tree", "--stdin"],
            input="",
        )
        return out.strip()

    def diff_trees(self, old_tree: str, new_tree: str) -> List[ChangeRecord]:
        """git diff-tree -r between two trees, one record per changed entry."""
        self._check_open("diff-tree")
        out = _run(
            "diff-tree",
            self.path,
            ["diff-tree", "-r", "-z", "--raw", "--no-renames", old_tree, new_tree],
        )
        try:
            return parse_raw_diff(out)
        except ValueError as e:
            raise EngineOperationError("diff-tree", str(e))

    def reset_hard(self, commit: str) -> None:
        """git reset --hard <commit>"""
        self._check_open("reset")
        _run("reset", self.path, ["reset", "--hard", "--quiet", commit])

    def tracked_files(self) -> List[str]:
        """git ls-files, in index order."""
        self._check_open("ls-files")
        out = _run("ls-files", self.path, ["ls-files", "-z"])
        return [p for p in out.split("\0") if p]
