"""
Shared pytest fixtures for oncebuild tests.

Provides sample target owners, an isolated working directory and an
in-process runner for build program command lines.

Test Tier Markers:
  @pytest.mark.evergreen - Tests that always run, never skip (production tests)
  @pytest.mark.dev       - Development/WIP tests, toggle-able
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from typing import Any, ClassVar, Generator, Optional

import pytest

from oncebuild import Option, Targets, run, target
from oncebuild.config import ENV_ARTIFACT, ENV_CONFIG, ENV_SOURCE_DIR, _reset_defaults_cache
from oncebuild.core.utils import Verbosity, log


# =============================================================================
# Sample Target Owners
# =============================================================================


class BuildTargets(Targets):
    """Compile -> Link -> Pack chain recording the order in which bodies run."""

    configuration = Option(str, "Build configuration", default="Release", short="c")
    jobs = Option(int, "Number of parallel jobs", default=1, short="j")
    clean = Option(bool, "Remove previous outputs first")

    instances: ClassVar[list["BuildTargets"]] = []

    def __init__(self) -> None:
        self.events: list[str] = []
        BuildTargets.instances.append(self)

    @target
    async def compile(self) -> str:
        """Compile the sources"""
        self.events.append("compile")
        await asyncio.sleep(0)
        return "compiled"

    @target
    async def link(self) -> None:
        """Link the objects"""
        await asyncio.gather(self.compile(), self.compile())
        self.events.append("link")

    @target(default=True)
    async def pack(self) -> None:
        """Pack the package"""
        await self.link()
        await self.compile()
        self.events.append("pack")

    @target
    async def code_coverage(self) -> None:
        """Measure code coverage"""
        self.events.append("code-coverage")

    @target
    async def greet(self, name: str) -> str:
        """Say hello"""
        self.events.append(f"greet {name}")
        return f"hello {name}"

    @target
    async def fail(self) -> None:
        """Always fails"""
        await self.compile()
        raise RuntimeError("boom")

    @target
    async def show_options(self) -> str:
        """Print the bound options"""
        result = f"{self.configuration} {self.jobs} {self.clean}"
        self.events.append(result)
        return result

    @target
    async def _prepare(self) -> None:
        self.events.append("prepare")


class NoDefaultTargets(Targets):
    @target
    async def compile(self) -> None:
        """Compile the sources"""


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test tiers."""
    config.addinivalue_line(
        "markers",
        "evergreen: tests that always run, never skip (production tests)"
    )
    config.addinivalue_line(
        "markers",
        "dev: development/WIP tests, toggle-able for active development"
    )


@pytest.fixture(autouse=True)
def isolated_run(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Run every test in an empty working directory with clean global state."""
    for name in (ENV_ARTIFACT, ENV_SOURCE_DIR, ENV_CONFIG, "NO_COLOR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(log, "verbosity", Verbosity.NORMAL)
    monkeypatch.setattr(log, "_use_color", False)
    _reset_defaults_cache()
    BuildTargets.instances.clear()
    yield tmp_path
    logger = logging.getLogger("oncebuild")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    _reset_defaults_cache()


# =============================================================================
# CLI Runner
# =============================================================================


class CLIResult:
    """Result of running a build program command line."""

    def __init__(self, returncode: int, stdout: str, stderr: str):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    def __repr__(self) -> str:
        return f"CLIResult(returncode={self.returncode}, stdout={self.stdout[:100]!r}...)"


class CLIRunner:
    """Helper class to run build programs in-process with captured output."""

    def __init__(self, owner_type: type[Targets] = BuildTargets):
        self.owner_type = owner_type

    def run(self, args: list[str], **kwargs: Any) -> CLIResult:
        """Run the command line ``args`` (without the program name)."""
        stdout_capture = io.StringIO()
        stderr_capture = io.StringIO()

        with redirect_stdout(stdout_capture), redirect_stderr(stderr_capture):
            returncode = run(self.owner_type, args, **kwargs)

        return CLIResult(
            returncode=int(returncode),
            stdout=stdout_capture.getvalue(),
            stderr=stderr_capture.getvalue(),
        )

    @property
    def owner(self) -> Optional[BuildTargets]:
        """The owner instance of the last run, for BuildTargets runs."""
        return BuildTargets.instances[-1] if BuildTargets.instances else None


@pytest.fixture
def cli_runner() -> CLIRunner:
    return CLIRunner()


# =============================================================================
# File Helpers
# =============================================================================


def set_mtime(path: Path, mtime: float) -> None:
    os.utime(path, (mtime, mtime))


def write_files(root: Path, *names: str) -> list[Path]:
    """Create files (and their parent directories) under ``root``; each contains its name."""
    paths = []
    for name in names:
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(name, encoding="utf-8")
        paths.append(path)
    return paths
