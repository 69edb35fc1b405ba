"""
Self-rebuild protocol.

A packaged build program compares its own modification time with its sources
before doing any requested work. When a source is newer, the program does
nothing but print ``REBUILD_NOTICE`` and exit with ``REBUILD_REQUIRED``; the
bootstrap launcher then rebuilds it and runs it again with the same arguments.

The only state is the timestamp comparison, recomputed on every run.
"""

from __future__ import annotations

import datetime
from pathlib import Path
from typing import Iterable, Optional

from oncebuild.config import DEFAULT_REBUILD_EXCLUDES, RunConfig
from oncebuild.core.utils import Verbosity, log
from oncebuild.fs import is_out_of_date, last_write_time
from oncebuild.glob import Glob

REBUILD_NOTICE = "Build script requires rebuild."


# =============================================================================
# Source Discovery
# =============================================================================


def build_sources(
    source_dir: Path,
    excludes: Iterable[str] = DEFAULT_REBUILD_EXCLUDES,
) -> Glob:
    """All files under ``source_dir``, build-output directories excluded."""
    sources = Glob(source_dir).include("**")
    for pattern in excludes:
        sources = sources.exclude(pattern)
    return sources


def _timestamp(mtime: Optional[float]) -> str:
    if mtime is None:
        return "missing"
    return datetime.datetime.fromtimestamp(mtime).isoformat(timespec="milliseconds")


# =============================================================================
# Staleness Check
# =============================================================================


def is_stale(
    artifact: Path,
    source_dir: Path,
    excludes: Iterable[str] = DEFAULT_REBUILD_EXCLUDES,
) -> bool:
    """Whether ``artifact`` is not strictly newer than every file of its sources."""
    return is_out_of_date(artifact, build_sources(source_dir, excludes).files())


def requires_rebuild(config: RunConfig) -> bool:
    """Check the running build program against its sources.

    Returns False when the run has no artifact or source directory configured.
    """
    if not config.checks_staleness:
        return False
    assert config.artifact is not None and config.source_dir is not None

    stale = is_stale(config.artifact, config.source_dir, config.rebuild_excludes)
    if log.enabled(Verbosity.DETAILED):
        artifact_time = last_write_time([config.artifact])
        newest = last_write_time(
            p for p in build_sources(config.source_dir, config.rebuild_excludes).files()
            if p.resolve() != config.artifact.resolve()
        )
        log.dim(f"build program {config.artifact}: {_timestamp(artifact_time)}")
        log.dim(f"newest source in {config.source_dir}: {_timestamp(newest)}")
    return stale
