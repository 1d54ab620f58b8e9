"""
Shared fixtures for mirror tests.

Provides throwaway git repositories: a bare "remote" plus a seeding work
clone that commits and pushes to it. Tests that need them are skipped
when no git executable is available.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Dict, Optional

import pytest

from repomirror.models.config import MirrorConfig

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

TOKEN = "s3cret-trigger-token"


def run_git(cwd: Path, *args: str) -> str:
    """Run git for test setup, failing loudly."""
    result = subprocess.run(
        ["git"] + list(args),
        cwd=str(cwd),
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise AssertionError(f"git {' '.join(args)} failed: {result.stderr}")
    return result.stdout


class RemoteRepo:
    """A bare repository and the work tree used to push commits into it."""

    def __init__(self, root: Path):
        self.bare = root / "remote.git"
        self.work = root / "seed"
        run_git(root, "init", "--quiet", "--bare", str(self.bare))
        run_git(self.bare, "symbolic-ref", "HEAD", "refs/heads/main")
        run_git(root, "init", "--quiet", str(self.work))
        run_git(self.work, "symbolic-ref", "HEAD", "refs/heads/main")
        run_git(self.work, "remote", "add", "origin", str(self.bare))

    @property
    def url(self) -> str:
        return str(self.bare)

    def write(self, rel: str, content: str = "x\n") -> None:
        path = self.work / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)

    def delete(self, rel: str) -> None:
        (self.work / rel).unlink()

    def commit(self, files: Optional[Dict[str, str]] = None, message: str = "update") -> str:
        """Write ``files``, commit everything and push; return the new commit id."""
        for rel, content in (files or {}).items():
            self.write(rel, content)
        run_git(self.work, "add", "-A")
        run_git(self.work, "commit", "--quiet", "-m", message)
        run_git(self.work, "push", "--quiet", "origin", "HEAD:main")
        return run_git(self.work, "rev-parse", "HEAD").strip()


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch):
    """Isolate git from the user's config and give commits an identity."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("GIT_CONFIG_GLOBAL", raising=False)
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    for role in ("AUTHOR", "COMMITTER"):
        monkeypatch.setenv(f"GIT_{role}_NAME", "Mirror Test")
        monkeypatch.setenv(f"GIT_{role}_EMAIL", "mirror@example.com")


@pytest.fixture
def remote(tmp_path: Path, git_env) -> RemoteRepo:
    """An empty remote. Call ``remote.commit(...)`` to give it history."""
    return RemoteRepo(tmp_path)


@pytest.fixture
def local_dir(tmp_path: Path) -> Path:
    """Empty directory for the mirror's working copy."""
    path = tmp_path / "mirror"
    path.mkdir()
    return path


def make_config(local_path: Path, remote_url: str, **overrides) -> MirrorConfig:
    values = {
        "name": "cards",
        "remote_url": remote_url,
        "local_path": local_path,
        "listen_port": 0,
        "listen_host": "127.0.0.1",
        "shared_token": TOKEN,
    }
    values.update(overrides)
    return MirrorConfig(**values)
