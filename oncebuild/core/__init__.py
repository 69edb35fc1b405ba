"""
oncebuild.core - Foundation layer: console logging, verbosity and timing.
"""

from oncebuild.core.utils import (
    Logger,
    Verbosity,
    configure_logging,
    format_table,
    log,
)
from oncebuild.core.timing import format_duration, slowest, timed

__all__ = [
    # Logging
    "log",
    "Logger",
    "Verbosity",
    "configure_logging",
    "format_table",
    # Timing
    "timed",
    "format_duration",
    "slowest",
]
