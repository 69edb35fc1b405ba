"""Wall-clock timing of target invocations."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator


@contextmanager
def timed(timings: dict[str, float], key: str) -> Iterator[None]:
    """Record the wall-clock duration of the block into ``timings[key]``.

    The duration is recorded whether the block succeeds or raises.
    """
    start = time.monotonic()
    try:
        yield
    finally:
        timings[key] = round(time.monotonic() - start, 3)


def format_duration(seconds: float) -> str:
    """Format seconds as human-readable duration.

    Examples:
        0.0042 -> "4ms"
        0.5 -> "0.5s"
        65.3 -> "1m 5.3s"
    """
    if seconds < 0.1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    remaining = seconds % 60

    if minutes < 60:
        return f"{minutes}m {remaining:.1f}s"

    hours = minutes // 60
    minutes = minutes % 60
    return f"{hours}h {minutes}m {remaining:.1f}s"


def slowest(timings: dict[str, float], count: int = 10) -> list[tuple[str, str]]:
    """Return the ``count`` slowest invocations as (name, duration) rows."""
    ranked = sorted(timings.items(), key=lambda item: item[1], reverse=True)
    return [(name, format_duration(seconds)) for name, seconds in ranked[:count]]
