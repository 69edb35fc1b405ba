"""
Git operations for build programs.

Version, commit hash and working-tree checks of one repository.
"""

from __future__ import annotations

import inspect
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

from oncebuild.core.utils import log
from oncebuild.errors import OnceBuildError
from oncebuild.fs import write_text_if_changed
from oncebuild.targets import Targets, target
from oncebuild.tools import Tool

DESCRIBE_ARGS = ("describe", "--tags", "--always", "--dirty", "--long")

_TAGGED = re.compile(r"^(?P<tag>.+)-(?P<distance>\d+)-g(?P<commit>[0-9a-f]+)(?P<dirty>-dirty)?$")
_UNTAGGED = re.compile(r"^(?P<commit>[0-9a-f]+)(?P<dirty>-dirty)?$")


class PendingChanges(OnceBuildError):
    """The working tree has modified or untracked files."""


# =============================================================================
# Version
# =============================================================================


@dataclass(frozen=True)
class GitVersion:
    """Version information derived from ``git describe``."""

    tag: Optional[str]
    distance: int  # commits since tag
    commit: str  # abbreviated hash
    dirty: bool

    @classmethod
    def parse(cls, describe: str) -> "GitVersion":
        """Parse the output of ``git describe --tags --always --dirty --long``.

        Raises:
            ValueError: If the text is not in that format.
        """
        text = describe.strip()
        match = _TAGGED.match(text)
        if match:
            return cls(
                tag=match["tag"],
                distance=int(match["distance"]),
                commit=match["commit"],
                dirty=bool(match["dirty"]),
            )
        match = _UNTAGGED.match(text)
        if match:
            return cls(tag=None, distance=0, commit=match["commit"], dirty=bool(match["dirty"]))
        raise ValueError(f"cannot parse git describe output: {describe!r}")

    @property
    def version(self) -> str:
        """Tag without a leading ``v``; ``0.0.0`` for untagged histories."""
        if self.tag is None:
            return "0.0.0"
        return self.tag[1:] if self.tag[:1] in ("v", "V") else self.tag

    @property
    def informational_version(self) -> str:
        """e.g. ``1.2.0+3.gabc1234.dirty``."""
        metadata = [str(self.distance), f"g{self.commit}"] if self.distance or self.tag is None else []
        if self.dirty:
            metadata.append("dirty")
        return f"{self.version}+{'.'.join(metadata)}" if metadata else self.version

    def __str__(self) -> str:
        return self.informational_version


# =============================================================================
# Targets
# =============================================================================


class Git(Targets):
    """Targets for a git repository."""

    def __init__(self, root: Union[str, Path] = "."):
        self.root = Path(root)
        self.git_tool = Tool("git").with_arguments("-C", self.root)

    @target
    async def version(self) -> GitVersion:
        """Version of the checked-out commit from git describe."""
        result = await self.git_tool.run(*DESCRIBE_ARGS)
        version = GitVersion.parse(result.output)
        log.info(f"git version: {version}")
        return version

    @target
    async def commit_hash(self) -> str:
        """Full hash of the HEAD commit."""
        result = await self.git_tool.run("log", "-1", "--pretty=format:%H")
        return result.output.strip()

    @target
    async def ensure_no_pending_changes(self) -> None:
        """Fail if the working tree has uncommitted changes.

        Use this before releasing binaries, so that nothing built from local
        changes gets published.
        """
        result = await self.git_tool.run("ls-files", "--modified", "--others", "--exclude-standard")
        files = result.output.strip()
        if files:
            raise PendingChanges(
                "The build requires a working tree without uncommitted changes.\n"
                f"Commit the following files:\n\n{files}"
            )

    async def rebuild_if_commit_hash_changed(
        self,
        step: Callable[[], Any],
        state_file: Union[str, Path],
    ) -> bool:
        """Run ``step`` only if HEAD changed since the last recorded run.

        The commit hash is recorded in ``state_file`` after ``step`` succeeds.
        Returns whether ``step`` ran.
        """
        state_file = Path(state_file)
        recorded = state_file.read_text(encoding="utf-8").strip() if state_file.is_file() else ""
        current = await self.commit_hash()
        if recorded == current:
            log.dim(f"{state_file}: up to date at {current}")
            return False

        outcome = step()
        if inspect.isawaitable(outcome):
            await outcome
        write_text_if_changed(state_file, current)
        return True
