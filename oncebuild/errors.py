"""
Exception hierarchy for oncebuild.

ConfigurationError and UsageError are raised before any target runs.
InvocationFailed wraps the failure of a target body and is replayed to every
caller of the same invocation. ToolError reports an external process that
exited with a non-zero code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from oncebuild.tools import ToolResult


class OnceBuildError(RuntimeError):
    """Base class for all oncebuild errors."""


class ConfigurationError(OnceBuildError):
    """The target graph or option schema is malformed."""


class UsageError(OnceBuildError):
    """The command line does not resolve to targets and options."""


class RunAborted(OnceBuildError):
    """A new invocation was requested after the build had already failed."""


class InvocationFailed(OnceBuildError):
    """A target body failed. The original exception is the ``__cause__``."""

    def __init__(self, key: Any):
        super().__init__(f"{key} failed.")
        self.key = key

    @property
    def root_cause(self) -> BaseException:
        """The innermost exception that is not itself an InvocationFailed."""
        exc: BaseException = self
        while isinstance(exc, InvocationFailed) and exc.__cause__ is not None:
            exc = exc.__cause__
        return exc


class ToolError(OnceBuildError):
    """An external tool could not be started or exited with a non-zero code."""

    def __init__(self, message: str, result: Optional["ToolResult"] = None):
        super().__init__(message)
        self.result = result

    @classmethod
    def from_result(cls, result: "ToolResult") -> "ToolError":
        message = f"{result.command_line} exited with code {result.exit_code}"
        error = result.error.strip()
        if error:
            message += f": {error.splitlines()[-1]}"
        return cls(message, result)


def describe_failure(exc: BaseException) -> str:
    """One-line summary of a failure, naming every failed invocation in the chain.

    Example:
        pack > link > compile failed: RuntimeError: compiler crashed
    """
    keys = []
    current: Optional[BaseException] = exc
    while isinstance(current, InvocationFailed):
        keys.append(str(current.key))
        current = current.__cause__
    if not keys:
        return f"{type(exc).__name__}: {exc}"
    cause = current if current is not None else exc
    detail = f"{type(cause).__name__}: {cause}" if current is not None else "unknown error"
    return f"{' > '.join(keys)} failed: {detail}"
