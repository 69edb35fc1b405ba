"""
Lazy file search with include and exclude wildcard patterns.

Patterns are relative to the root and separated by ``/``. ``*`` matches any
run of characters within one path part, ``?`` one character, and a ``**``
part any number of directories. Matching is case-insensitive.
"""

from __future__ import annotations

import copy
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Callable, Iterator, Sequence, Union

logger = logging.getLogger(__name__)

Predicate = Callable[[Path], bool]


@lru_cache(maxsize=256)
def wildcard_regex(pattern: str) -> "re.Pattern[str]":
    """Compile one wildcard path part into an anchored, case-insensitive regex."""
    parts = []
    for char in pattern:
        if char == "?":
            parts.append(".")
        elif char == "*":
            parts.append(".*")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE)


def split_pattern(pattern: str) -> list[str]:
    return [part for part in pattern.replace("\\", "/").split("/") if part and part != "."]


def contains_run(parts: Sequence[str], patterns: Sequence["re.Pattern[str]"]) -> bool:
    """Whether ``patterns`` match a contiguous run of ``parts``."""
    for start in range(len(parts) - len(patterns) + 1):
        if all(p.match(parts[start + i]) for i, p in enumerate(patterns)):
            return True
    return False


class Glob:
    """An immutable file search. Iterating it walks the file system lazily.

    Example:
        sources = Glob("src").include("**/*.py").exclude("__pycache__")
        for path in sources.files():
            ...
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self._include: tuple[str, ...] = ()
        self._exclude: tuple[Predicate, ...] = ()

    def _copy(self) -> "Glob":
        return copy.copy(self)

    def include(self, pattern: str) -> "Glob":
        """Include paths matching ``pattern`` in the search."""
        g = self._copy()
        g._include = self._include + (pattern,)
        return g

    def exclude(self, pattern: Union[str, Predicate]) -> "Glob":
        """Exclude entries from the search and from directory traversal.

        A wildcard pattern excludes every entry whose path relative to the root
        contains a contiguous run of parts matching the pattern's parts. A
        callable excludes every entry for which it returns True.
        """
        predicate = pattern if callable(pattern) else self._exclude_wildcard(pattern)
        g = self._copy()
        g._exclude = self._exclude + (predicate,)
        return g

    def _exclude_wildcard(self, pattern: str) -> Predicate:
        compiled = [wildcard_regex(part) for part in split_pattern(pattern)]
        root = self.root

        def excluded(path: Path) -> bool:
            return contains_run(path.relative_to(root).parts, compiled)

        return excluded

    def _is_excluded(self, path: Path) -> bool:
        return any(predicate(path) for predicate in self._exclude)

    def __iter__(self) -> Iterator[Path]:
        if not self.root.exists():
            logger.debug("glob root does not exist: %s", self.root)
            return
        for pattern in self._include:
            yield from self._find(self.root, split_pattern(pattern))

    def files(self) -> Iterator[Path]:
        """Matching regular files only."""
        return (path for path in self if path.is_file())

    def _find(self, entry: Path, parts: list[str]) -> Iterator[Path]:
        if not parts:
            yield entry
            return
        if not entry.is_dir():
            return

        first, rest = parts[0], parts[1:]
        if first == "**":
            yield from self._find(entry, rest or ["*"])
            for child in sorted(entry.iterdir()):
                if child.is_dir() and not self._is_excluded(child):
                    yield from self._find(child, parts)
            return

        regex = wildcard_regex(first)
        for child in sorted(entry.iterdir()):
            if not regex.match(child.name) or self._is_excluded(child):
                continue
            if not rest:
                yield child
            elif child.is_dir():
                yield from self._find(child, rest)
