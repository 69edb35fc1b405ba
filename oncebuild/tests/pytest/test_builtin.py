"""
Tests for the built-in target owners (git and the Python interpreter).

Repository tests create a scratch repository and are skipped when git is not
installed.
"""

from __future__ import annotations

import asyncio
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

from oncebuild import InvocationFailed, RunContext
from oncebuild.builtin import Git, GitVersion, PendingChanges, Python

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(repo: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-C", str(repo), *args],
        check=True,
        capture_output=True,
        text=True,
    )


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    path = tmp_path / "repo"
    path.mkdir()
    git(path, "init", "-q")
    git(path, "config", "user.email", "build@example.com")
    git(path, "config", "user.name", "Build")
    git(path, "config", "commit.gpgsign", "false")
    (path / "README.md").write_text("readme\n", encoding="utf-8")
    git(path, "add", "README.md")
    git(path, "commit", "-q", "-m", "initial")
    return path


# =============================================================================
# GitVersion
# =============================================================================


@pytest.mark.evergreen
class TestGitVersionParse:
    def test_tagged(self) -> None:
        v = GitVersion.parse("v1.2.0-3-gabc1234\n")
        assert v == GitVersion(tag="v1.2.0", distance=3, commit="abc1234", dirty=False)
        assert v.version == "1.2.0"
        assert str(v) == "1.2.0+3.gabc1234"

    def test_on_tag(self) -> None:
        v = GitVersion.parse("v2.0-0-gdeadbee")
        assert str(v) == "2.0"

    def test_dirty(self) -> None:
        v = GitVersion.parse("release-1-4-0-0-gdeadbee-dirty")
        assert v.tag == "release-1-4-0"
        assert v.dirty
        assert str(v) == "release-1-4-0+dirty"

    def test_untagged(self) -> None:
        v = GitVersion.parse("abc1234-dirty")
        assert v.tag is None
        assert v.version == "0.0.0"
        assert str(v) == "0.0.0+0.gabc1234.dirty"

    def test_garbage(self) -> None:
        with pytest.raises(ValueError):
            GitVersion.parse("fatal: not a git repository")


# =============================================================================
# Git Targets
# =============================================================================


@requires_git
@pytest.mark.evergreen
class TestGit:
    def test_commit_hash(self, repo: Path) -> None:
        owner = Git(repo)
        commit = asyncio.run(owner.commit_hash())
        assert len(commit) == 40

    def test_version_from_tag(self, repo: Path) -> None:
        git(repo, "tag", "v0.3.0")
        version = asyncio.run(Git(repo).version())
        assert version.tag == "v0.3.0"
        assert version.distance == 0
        assert not version.dirty

    def test_clean_tree_passes(self, repo: Path) -> None:
        asyncio.run(Git(repo).ensure_no_pending_changes())

    def test_pending_changes_fail(self, repo: Path) -> None:
        (repo / "new.txt").write_text("x", encoding="utf-8")
        with pytest.raises(InvocationFailed) as exc:
            asyncio.run(Git(repo).ensure_no_pending_changes())
        cause = exc.value.root_cause
        assert isinstance(cause, PendingChanges)
        assert "new.txt" in str(cause)

    def test_rebuild_if_commit_hash_changed(self, repo: Path, tmp_path: Path) -> None:
        state = tmp_path / "state" / "commit"
        runs: list[str] = []

        async def step() -> None:
            runs.append("step")

        async def scenario(owner: Git) -> bool:
            return await owner.rebuild_if_commit_hash_changed(step, state)

        assert asyncio.run(scenario(Git(repo))) is True
        assert asyncio.run(scenario(Git(repo))) is False
        assert runs == ["step"]

        (repo / "more.txt").write_text("x", encoding="utf-8")
        git(repo, "add", "more.txt")
        git(repo, "commit", "-q", "-m", "more")
        assert asyncio.run(scenario(Git(repo))) is True
        assert runs == ["step", "step"]

    def test_owner_shared_through_context(self, repo: Path) -> None:
        context = RunContext()
        assert context.once(Git, repo) is context.once(Git, repo)


# =============================================================================
# Python
# =============================================================================


@pytest.mark.evergreen
class TestPython:
    def test_tool_is_running_interpreter(self) -> None:
        tool = asyncio.run(Python().tool())
        assert tool.command == sys.executable

    def test_version(self) -> None:
        version = asyncio.run(Python().version())
        assert version.startswith(f"Python {sys.version_info.major}.{sys.version_info.minor}")
