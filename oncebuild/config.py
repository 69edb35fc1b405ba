"""
Run configuration for oncebuild.

Constants, the per-run configuration dataclass and the YAML option-defaults
loader.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from oncebuild.core.utils import Verbosity
from oncebuild.errors import ConfigurationError

# =============================================================================
# Constants
# =============================================================================

# Set by the bootstrap launcher for the build program it starts
ENV_ARTIFACT = "ONCEBUILD_ARTIFACT"
ENV_SOURCE_DIR = "ONCEBUILD_SOURCE_DIR"
# Explicit path of the option defaults file
ENV_CONFIG = "ONCEBUILD_CONFIG"

DEFAULTS_FILE_NAME = "oncebuild.yaml"

# Build-output directories never count as build program sources
DEFAULT_REBUILD_EXCLUDES = ("__pycache__", "out", "dist", ".git")

DEFAULT_PROGRAM_NAME = "build"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class RunConfig:
    """Configuration for a single run of a build program."""

    verbosity: Verbosity = Verbosity.NORMAL
    no_color: bool = False
    program: str = DEFAULT_PROGRAM_NAME
    artifact: Optional[Path] = None  # packaged build program, for the staleness check
    source_dir: Optional[Path] = None  # sources the artifact was built from
    rebuild_excludes: tuple[str, ...] = DEFAULT_REBUILD_EXCLUDES
    defaults_file: Optional[Path] = None
    working_dir: Path = field(default_factory=Path.cwd)

    @classmethod
    def from_environment(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "RunConfig":
        """Build a config from environment variables; explicit overrides win."""
        if environ is None:
            environ = os.environ
        values: dict[str, Any] = {}
        if environ.get(ENV_ARTIFACT):
            values["artifact"] = Path(environ[ENV_ARTIFACT])
        if environ.get(ENV_SOURCE_DIR):
            values["source_dir"] = Path(environ[ENV_SOURCE_DIR])
        if environ.get(ENV_CONFIG):
            values["defaults_file"] = Path(environ[ENV_CONFIG])
        if "NO_COLOR" in environ:
            values["no_color"] = True
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def checks_staleness(self) -> bool:
        """Whether the self-rebuild check applies to this run."""
        return self.artifact is not None and self.source_dir is not None

    def find_defaults_file(self) -> Optional[Path]:
        """The option defaults file for this run, if any.

        An explicitly configured file must exist; the implicit
        ``oncebuild.yaml`` in the working directory is optional.
        """
        if self.defaults_file is not None:
            if not self.defaults_file.is_file():
                raise ConfigurationError(f"option defaults file not found: {self.defaults_file}")
            return self.defaults_file
        candidate = self.working_dir / DEFAULTS_FILE_NAME
        return candidate if candidate.is_file() else None


# =============================================================================
# Option Defaults Loading (cached)
# =============================================================================


@lru_cache(maxsize=8)
def load_option_defaults(path: Path) -> dict[str, Any]:
    """Load option defaults: a flat mapping of option name to value.

    Result is cached per path for the lifetime of the process.
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"{path}: invalid YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a mapping of option names to values")
    return {str(key): value for key, value in data.items()}


def _reset_defaults_cache() -> None:
    """Reset the option defaults cache (for testing)."""
    load_option_defaults.cache_clear()
