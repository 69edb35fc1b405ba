"""
oncebuild.builtin - Target owners for common external tools.

Obtain them once per run through the run context::

    git = self.context.once(Git, repo_root)
    version = await git.version()
"""

from oncebuild.builtin.git import Git, GitVersion, PendingChanges
from oncebuild.builtin.python import Python

__all__ = [
    "Git",
    "GitVersion",
    "PendingChanges",
    "Python",
]
