"""
Shared utilities for oncebuild: console logging and verbosity.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from enum import IntEnum
from typing import Iterator, Optional


# =============================================================================
# Verbosity
# =============================================================================


class Verbosity(IntEnum):
    """Diagnostic output volume. Never affects control flow or exit codes."""

    QUIET = 0
    MINIMAL = 1
    NORMAL = 2
    DETAILED = 3


# stdlib logging level used for library diagnostics at each verbosity
_LOGGING_LEVELS = {
    Verbosity.QUIET: logging.ERROR,
    Verbosity.MINIMAL: logging.WARNING,
    Verbosity.NORMAL: logging.WARNING,
    Verbosity.DETAILED: logging.DEBUG,
}


# =============================================================================
# Logging
# =============================================================================


class Logger:
    """Colored console logger with a verbosity threshold and --no-color support.

    Errors always print. Success and warning messages need ``minimal``,
    info and headers need ``normal``, dim diagnostics need ``detailed``.
    """

    COLORS = {
        "reset": "\033[0m",
        "red": "\033[91m",
        "green": "\033[92m",
        "yellow": "\033[93m",
        "cyan": "\033[96m",
        "bold": "\033[1m",
        "dim": "\033[2m",
    }

    def __init__(
        self,
        use_color: Optional[bool] = None,
        verbosity: Verbosity = Verbosity.NORMAL,
    ):
        if use_color is None:
            use_color = sys.stdout.isatty() and "NO_COLOR" not in os.environ
        self._use_color = use_color
        self.verbosity = verbosity

    def set_color(self, use_color: bool) -> None:
        """Set whether to use color output."""
        self._use_color = use_color

    def set_verbosity(self, verbosity: Verbosity) -> None:
        self.verbosity = verbosity

    def enabled(self, level: Verbosity) -> bool:
        return self.verbosity >= level

    @contextmanager
    def configured(self, verbosity: Verbosity, use_color: bool) -> Iterator["Logger"]:
        """Temporarily apply verbosity and color, restoring both afterwards."""
        previous = (self.verbosity, self._use_color)
        self.verbosity, self._use_color = verbosity, use_color
        try:
            yield self
        finally:
            self.verbosity, self._use_color = previous

    def _color(self, text: str, color: str) -> str:
        if not self._use_color:
            return text
        return f"{self.COLORS.get(color, '')}{text}{self.COLORS['reset']}"

    def header(self, message: str) -> None:
        """Print a section header."""
        if self.enabled(Verbosity.NORMAL):
            print(f"\n{self._color('===', 'cyan')} {self._color(message, 'bold')} {self._color('===', 'cyan')}")

    def info(self, message: str) -> None:
        """Print an info message."""
        if self.enabled(Verbosity.NORMAL):
            print(f"  {message}")

    def success(self, message: str) -> None:
        """Print a success message."""
        if self.enabled(Verbosity.MINIMAL):
            print(f"  {self._color('[OK]', 'green')} {message}")

    def warning(self, message: str) -> None:
        """Print a warning message."""
        if self.enabled(Verbosity.MINIMAL):
            print(f"  {self._color('[WARN]', 'yellow')} {message}")

    def error(self, message: str) -> None:
        """Print an error message."""
        print(f"  {self._color('[ERROR]', 'red')} {message}")

    def dim(self, message: str) -> None:
        """Print a dim/secondary message."""
        if self.enabled(Verbosity.DETAILED):
            print(f"  {self._color(message, 'dim')}")

    def table_row(self, col1: str, col2: str, col1_width: int = 30) -> None:
        """Print a table row with two columns."""
        if self.enabled(Verbosity.NORMAL):
            print(f"  {col1:<{col1_width}} {col2}")


# Global logger instance
log = Logger()


def configure_logging(verbosity: Verbosity) -> None:
    """Route stdlib ``logging`` output of the ``oncebuild`` package by verbosity."""
    logger = logging.getLogger("oncebuild")
    logger.setLevel(_LOGGING_LEVELS[verbosity])
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)


# =============================================================================
# Text Tables
# =============================================================================


def format_table(rows: list[tuple[str, str]], indent: str = "  ") -> str:
    """Render two-column rows with the first column padded to a common width."""
    if not rows:
        return ""
    width = max(len(first) for first, _ in rows)
    lines = [f"{indent}{first:<{width}} {second}".rstrip() for first, second in rows]
    return "\n".join(lines)
