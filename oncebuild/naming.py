"""
Name handling for the command line: CLI names and abbreviation resolution.
"""

from __future__ import annotations

from typing import Callable, Iterable, TypeVar

from oncebuild.errors import UsageError

T = TypeVar("T")


def cli_name(attribute: str) -> str:
    """Command-line name for a Python attribute: ``code_coverage`` -> ``code-coverage``."""
    return attribute.strip("_").replace("_", "-")


def normalize(name: str) -> str:
    """Comparison form of a name: case-insensitive, ``-`` and ``_`` ignored."""
    return name.replace("-", "").replace("_", "").casefold()


def find_by_name(
    candidates: Iterable[T],
    query: str,
    name: Callable[[T], str] = str,
    items_name: str = "candidates",
    allow_substring: bool = False,
) -> T:
    """Find the one candidate identified by ``query``.

    An exact (case-insensitive) name always wins. Otherwise ``query`` may be an
    abbreviation: a prefix of exactly one name, or, when ``allow_substring`` is
    set and no prefix matches, a substring of exactly one name.

    Raises:
        UsageError: If no candidate or more than one candidate matches.
    """
    candidates = list(candidates)
    wanted = normalize(query)

    if wanted:
        exact = [c for c in candidates if normalize(name(c)) == wanted]
        if len(exact) == 1:
            return exact[0]

        matches = [c for c in candidates if normalize(name(c)).startswith(wanted)]
        if not matches and allow_substring:
            matches = [c for c in candidates if wanted in normalize(name(c))]

        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            listing = "\n".join(f"  {name(c)}" for c in matches)
            raise UsageError(f'"{query}" is ambiguous. Could be\n\n{listing}\n')

    listing = "\n".join(f"  {name(c)}" for c in candidates)
    raise UsageError(f'"{query}" not found in {items_name}\n\n{listing}\n')
