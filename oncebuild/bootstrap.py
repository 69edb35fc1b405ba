"""
Bootstrap launcher for packaged build programs.

A build program is a directory with a ``__main__.py`` that calls
``oncebuild.run(...)``. The launcher packages it into a zipapp, runs it with
the forwarded arguments, and recompiles and re-runs it once when the program
reports that its sources changed (exit code ``REBUILD_REQUIRED``).

Usage:
    oncebuild-bootstrap [--build-source DIR] [--build-artifact FILE] [--clean] [args...]
"""

from __future__ import annotations

import argparse
import os
import subprocess
import sys
import zipapp
from pathlib import Path
from typing import Iterable, Optional, Sequence

from oncebuild.cli import ExitCode
from oncebuild.config import DEFAULT_REBUILD_EXCLUDES, ENV_ARTIFACT, ENV_SOURCE_DIR
from oncebuild.core.utils import log
from oncebuild.errors import ConfigurationError
from oncebuild.fs import ensure_parent_directory_exists
from oncebuild.glob import contains_run, split_pattern, wildcard_regex
from oncebuild.rebuild import REBUILD_NOTICE

DEFAULT_SOURCE_DIR = "build"
ARTIFACT_NAME = "build.pyz"


# =============================================================================
# Argument Parsing
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    # -h and unknown options belong to the build program
    parser = argparse.ArgumentParser(
        prog="oncebuild-bootstrap",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument(
        "--build-source",
        default=DEFAULT_SOURCE_DIR,
        help="Directory of the build program (default: ./build)",
    )
    parser.add_argument(
        "--build-artifact",
        default=None,
        help="Packaged build program (default: <build-source>/out/build.pyz)",
    )
    parser.add_argument(
        "--clean",
        action="store_true",
        help="Recompile the build program before running it",
    )
    return parser


def parse_bootstrap_args(argv: Sequence[str]) -> tuple[argparse.Namespace, list[str]]:
    """Split ``argv`` into launcher options and arguments for the build program."""
    argv = list(argv)
    tail: list[str] = []
    if "--" in argv:
        split = argv.index("--")
        argv, tail = argv[:split], argv[split:]
    args, forwarded = create_parser().parse_known_args(argv)
    return args, forwarded + tail


# =============================================================================
# Compile & Launch
# =============================================================================


def compile_build_program(
    source_dir: Path,
    artifact: Path,
    excludes: Iterable[str] = DEFAULT_REBUILD_EXCLUDES,
) -> Path:
    """Package ``source_dir`` into the zipapp ``artifact``.

    The archive is written next to the artifact and moved into place, so the
    artifact's modification time is later than every source it was built from.

    Raises:
        ConfigurationError: If ``source_dir`` has no ``__main__.py``.
    """
    if not (source_dir / "__main__.py").is_file():
        raise ConfigurationError(f"{source_dir}: a build program needs a __main__.py")

    patterns = [[wildcard_regex(part) for part in split_pattern(p)] for p in excludes]
    ensure_parent_directory_exists(artifact)
    partial = artifact.with_name(artifact.name + ".partial")
    skip = {artifact.resolve(), partial.resolve()}

    def include(relative: Path) -> bool:
        if (source_dir / relative).resolve() in skip:
            return False
        return not any(contains_run(relative.parts, compiled) for compiled in patterns)

    log.dim(f"compiling {source_dir} -> {artifact}")
    zipapp.create_archive(source_dir, partial, filter=include)
    os.replace(partial, artifact)
    return artifact


def launch(artifact: Path, source_dir: Path, args: Sequence[str]) -> int:
    """Run the packaged build program and return its exit code."""
    env = {
        **os.environ,
        ENV_ARTIFACT: str(artifact.resolve()),
        ENV_SOURCE_DIR: str(source_dir.resolve()),
    }
    result = subprocess.run([sys.executable, str(artifact), *args], env=env, check=False)
    return result.returncode


# =============================================================================
# Entry Point
# =============================================================================


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args, forwarded = parse_bootstrap_args(sys.argv[1:] if argv is None else argv)
    source_dir = Path(args.build_source)
    if args.build_artifact:
        artifact = Path(args.build_artifact)
    else:
        artifact = source_dir / "out" / ARTIFACT_NAME

    try:
        if args.clean or not artifact.is_file():
            log.warning(REBUILD_NOTICE)
            compile_build_program(source_dir, artifact)

        code = launch(artifact, source_dir, forwarded)
        if code == ExitCode.REBUILD_REQUIRED:
            # at most one recompile per launcher run
            compile_build_program(source_dir, artifact)
            code = launch(artifact, source_dir, forwarded)
    except ConfigurationError as e:
        log.error(str(e))
        return ExitCode.USAGE_ERROR
    return code


if __name__ == "__main__":
    sys.exit(main())
