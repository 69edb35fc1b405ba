"""
oncebuild - Build programs as plain Python classes.

Targets are methods marked with ``@target``; each (target, input) pair runs at
most once per run, no matter how many targets depend on it::

    class BuildTargets(Targets):
        @target
        async def compile(self) -> None:
            ...

        @target(default=True)
        async def pack(self) -> None:
            await self.compile()

    if __name__ == "__main__":
        sys.exit(run(BuildTargets))
"""

from oncebuild.cli import ExitCode, parse_args, render_help, run, run_targets
from oncebuild.config import RunConfig
from oncebuild.context import RunContext
from oncebuild.core.utils import Verbosity, log
from oncebuild.errors import (
    ConfigurationError,
    InvocationFailed,
    OnceBuildError,
    RunAborted,
    ToolError,
    UsageError,
)
from oncebuild.fs import is_out_of_date, last_write_time
from oncebuild.glob import Glob
from oncebuild.options import Option
from oncebuild.targets import NO_INPUT, InvocationKey, Targets, target
from oncebuild.tools import Tool, ToolResult

__version__ = "0.1.0"

__all__ = [
    # Targets
    "Targets",
    "target",
    "Option",
    "InvocationKey",
    "NO_INPUT",
    "RunContext",
    # Command line
    "run",
    "run_targets",
    "parse_args",
    "render_help",
    "ExitCode",
    "RunConfig",
    "Verbosity",
    "log",
    # Errors
    "OnceBuildError",
    "ConfigurationError",
    "UsageError",
    "InvocationFailed",
    "RunAborted",
    "ToolError",
    # Collaborators
    "Tool",
    "ToolResult",
    "Glob",
    "is_out_of_date",
    "last_write_time",
]
