"""
File-system helpers for build targets: out-of-date checks, copying and
hardlinking trees, idempotent writes.
"""

from __future__ import annotations

import filecmp
import logging
import os
import re
import shutil
from pathlib import Path
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_INVALID_FILE_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
MAX_FILE_NAME_LENGTH = 255


# =============================================================================
# Timestamps
# =============================================================================


def last_write_time(paths: Iterable[PathLike]) -> Optional[float]:
    """Newest modification time among the existing files in ``paths``."""
    newest: Optional[float] = None
    for path in paths:
        path = Path(path)
        if not path.is_file():
            continue
        mtime = path.stat().st_mtime
        if newest is None or mtime > newest:
            newest = mtime
    return newest


def is_out_of_date(artifact: PathLike, sources: Iterable[PathLike]) -> bool:
    """Whether ``artifact`` must be rebuilt from ``sources``.

    The artifact is up to date only if it exists and is strictly newer than
    every source file. Equal timestamps count as out of date.
    """
    artifact = Path(artifact)
    if not artifact.is_file():
        return True
    itself = artifact.resolve()
    newest = last_write_time(p for p in sources if Path(p).resolve() != itself)
    if newest is None:
        return False
    return not artifact.stat().st_mtime > newest


# =============================================================================
# Directories
# =============================================================================


def ensure_directory_exists(path: PathLike) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def ensure_parent_directory_exists(path: PathLike) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def ensure_not_exists(path: PathLike) -> Path:
    """Remove a file, symlink or directory tree if present."""
    path = Path(path)
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)
    return path


def ensure_directory_is_empty(path: PathLike) -> Path:
    """Create ``path`` if needed and remove everything inside it."""
    path = ensure_directory_exists(path)
    for child in path.iterdir():
        ensure_not_exists(child)
    return path


# =============================================================================
# Files
# =============================================================================


def write_text_if_changed(path: PathLike, text: str, encoding: str = "utf-8") -> Path:
    """Write ``text`` unless the file already has exactly this content.

    Leaving unchanged files untouched keeps their timestamps, so targets that
    depend on them stay up to date.
    """
    path = Path(path)
    if path.is_file() and path.read_text(encoding=encoding) == text:
        logger.debug("unchanged: %s", path)
        return path
    ensure_parent_directory_exists(path)
    path.write_text(text, encoding=encoding)
    return path


def is_content_equal(a: PathLike, b: PathLike) -> bool:
    """Byte-wise comparison of two files or two directory trees."""
    a, b = Path(a), Path(b)
    if a.is_file() and b.is_file():
        return filecmp.cmp(a, b, shallow=False)
    if a.is_dir() and b.is_dir():
        left = sorted(p.name for p in a.iterdir())
        right = sorted(p.name for p in b.iterdir())
        return left == right and all(is_content_equal(a / name, b / name) for name in left)
    return False


def create_hardlink(source: PathLike, dest: PathLike) -> Path:
    """Make ``dest`` a hardlink of ``source``, replacing an existing ``dest``."""
    source, dest = Path(source), Path(dest)
    ensure_parent_directory_exists(dest)
    if dest.exists() or dest.is_symlink():
        if dest.exists() and os.path.samefile(source, dest):
            return dest
        dest.unlink()
    os.link(source, dest)
    return dest


def _is_up_to_date_copy(source: Path, dest: Path) -> bool:
    if not dest.is_file():
        return False
    s, d = source.stat(), dest.stat()
    if (s.st_dev, s.st_ino) == (d.st_dev, d.st_ino):
        return True
    return s.st_size == d.st_size and int(s.st_mtime) == int(d.st_mtime)


def _copy_file(source: Path, dest: Path, use_hardlinks: bool) -> None:
    if _is_up_to_date_copy(source, dest):
        return
    if use_hardlinks:
        try:
            create_hardlink(source, dest)
            return
        except OSError as e:
            # e.g. cross-device links
            logger.debug("hardlink %s -> %s failed (%s), copying", source, dest, e)
    ensure_parent_directory_exists(dest)
    shutil.copy2(source, dest)


def copy_tree(source: PathLike, dest: PathLike, use_hardlinks: bool = False) -> Path:
    """Mirror ``source`` (a file or a directory tree) to ``dest``.

    Files whose copy is already up to date (same size and modification time,
    or the same inode) are skipped.
    """
    source, dest = Path(source), Path(dest)
    if source.is_file():
        _copy_file(source, dest, use_hardlinks)
        return dest
    if not source.is_dir():
        raise FileNotFoundError(f"copy_tree: source not found: {source}")

    for directory, _dirnames, filenames in os.walk(source):
        relative = Path(directory).relative_to(source)
        ensure_directory_exists(dest / relative)
        for name in filenames:
            _copy_file(Path(directory) / name, dest / relative / name, use_hardlinks)
    return dest


# =============================================================================
# File Names
# =============================================================================


def make_valid_file_name(name: str, max_length: int = MAX_FILE_NAME_LENGTH) -> str:
    """Replace characters that are invalid in file names and shorten to ``max_length``.

    The extension is preserved when shortening.
    """
    valid = _INVALID_FILE_NAME_CHARS.sub("_", name)
    if len(valid) <= max_length:
        return valid
    stem, ext = os.path.splitext(valid)
    if len(ext) >= max_length:
        return valid[:max_length]
    return stem[: max_length - len(ext)] + ext


def is_valid_file_name(name: str, max_length: int = MAX_FILE_NAME_LENGTH) -> bool:
    return bool(name) and len(name) <= max_length and not _INVALID_FILE_NAME_CHARS.search(name)
